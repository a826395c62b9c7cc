import io
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone

from bddreport.base import find_formatter
from bddreport.feature import (
    Feature,
    FeatureChild,
    GherkinFeature,
    Location,
    Pickle,
    PickleStep,
    Scenario,
    Step,
)
from bddreport.junit import XML_HEADER, JUnit, junit_formatter, junit_time_duration
from bddreport.results import (
    PickleResult,
    PickleStepResult,
    StepResultStatus,
    TestRunStarted,
)

T0 = datetime(2020, 1, 1, tzinfo=timezone.utc)
PASSED = StepResultStatus.PASSED
FAILED = StepResultStatus.FAILED
SKIPPED = StepResultStatus.SKIPPED
UNDEFINED = StepResultStatus.UNDEFINED
PENDING = StepResultStatus.PENDING


class FakeStorage:
    def __init__(self, features, pickle_results, step_results):
        self.features = features
        self.pickle_results = pickle_results
        self.step_results = step_results

    def must_get_test_run_started(self):
        return TestRunStarted(T0)

    def must_get_features(self):
        return list(self.features)

    def must_get_pickles(self, uri):
        return [p for f in self.features for p in f.pickles if p.uri == uri]

    def must_get_pickle_result(self, pickle_id):
        return next(r for r in self.pickle_results if r.pickle_id == pickle_id)

    def must_get_pickle_step_result(self, step_id):
        return next(r for r in self.step_results if r.pickle_step_id == step_id)

    def must_get_pickle_step_results_by_pickle_id(self, pickle_id):
        return [r for r in self.step_results if r.pickle_id == pickle_id]

    def must_get_pickle_step(self, step_id):
        return next(
            s for f in self.features for p in f.pickles for s in p.steps if s.id == step_id
        )


def _build(scenarios, feature_name="Eat godogs", uri="features/eat.feature"):
    """scenarios: list of (pickle name, list of (text, status, err))."""
    children = []
    pickles = []
    pickle_results = []
    step_results = []
    next_id = 100
    for name, steps in scenarios:
        sc_id = f"sc{next_id}"
        ast_steps = []
        pickle_steps = []
        pickle_id = str(next_id)
        next_id += 1
        for offset, (text, status, err) in enumerate(steps, start=1):
            ast = Step(id=f"ast{next_id}", location=Location(4, 5), keyword="Given ", text=text)
            ps = PickleStep(id=str(next_id), text=text, ast_node_ids=[ast.id])
            next_id += 1
            ast_steps.append(ast)
            pickle_steps.append(ps)
            step_results.append(PickleStepResult(
                pickle_id, ps.id, status=status, err=err,
                finished_at=T0 + timedelta(seconds=offset),
            ))
        children.append(FeatureChild(scenario=Scenario(
            id=sc_id, location=Location(3, 3), keyword="Scenario", name=name, steps=ast_steps,
        )))
        pickles.append(Pickle(id=pickle_id, uri=uri, name=name,
                              ast_node_ids=[sc_id], steps=pickle_steps))
        pickle_results.append(PickleResult(pickle_id, T0))
    feature = Feature(
        uri=uri,
        feature=GherkinFeature(location=Location(1, 1), keyword="Feature",
                               name=feature_name, children=children),
        pickles=pickles,
    )
    return feature, pickle_results, step_results


def _storage(*builds):
    features, pickle_results, step_results = [], [], []
    for feature, prs, srs in builds:
        features.append(feature)
        pickle_results.extend(prs)
        step_results.extend(srs)
    return FakeStorage(features, pickle_results, step_results)


def _run(storage, suite="suite"):
    out = io.StringIO()
    formatter = JUnit(suite, out, clock=lambda: T0)
    formatter.set_storage(storage)
    formatter.summary()
    return out.getvalue()


def _parse(text):
    assert text.startswith(XML_HEADER)
    return ET.fromstring(text[len(XML_HEADER):])


def test_time_duration_formats():
    assert junit_time_duration(T0, T0 + timedelta(milliseconds=1500)) == "1.5"
    assert junit_time_duration(T0, T0) == "0"


def test_time_duration_has_no_exponent():
    text = junit_time_duration(T0, T0 + timedelta(microseconds=10))
    assert "e" not in text.lower()
    assert float(text) == timedelta(microseconds=10).total_seconds()


def test_registered_under_junit():
    assert find_formatter("junit") is junit_formatter
    assert isinstance(junit_formatter("s", io.StringIO()), JUnit)


def test_empty_run():
    expected = (
        XML_HEADER
        + '<testsuites name="s" tests="0" skipped="0" failures="0" errors="0" time="0"></testsuites>'
    )
    assert _run(FakeStorage([], [], []), suite="s") == expected


def test_failed_scenario():
    build = _build([("Eat 5", [("there are 12", PASSED, None), ("I eat 5", FAILED, ValueError("boom"))])])
    text = _run(_storage(build), suite="my suite")
    root = _parse(text)
    assert root.tag == "testsuites"
    assert root.get("name") == "my suite"
    assert int(root.get("tests")) == 1
    assert int(root.get("failures")) == 1
    assert int(root.get("errors")) == 0
    suite = root.find("testsuite")
    assert suite.get("name") == "Eat godogs"
    case = suite.find("testcase")
    assert case.get("status") == "failed"
    assert case.get("time") == junit_time_duration(T0, T0 + timedelta(seconds=2))
    assert case.find("failure").get("message") == "Step I eat 5: boom"
    assert case.find("failure").get("type") is None


def test_undefined_pending_and_skipped_errors():
    build = _build([
        ("Undef", [("a", UNDEFINED, None), ("b", SKIPPED, None)]),
        ("Pend", [("c", PENDING, None)]),
        ("Skip", [("d", SKIPPED, None)]),
    ])
    root = _parse(_run(_storage(build)))
    cases = root.find("testsuite").findall("testcase")
    assert [c.get("status") for c in cases] == ["undefined", "pending", ""]
    assert [(e.get("type"), e.get("message")) for e in cases[0].findall("error")] == [
        ("undefined", "Step a"),
        ("skipped", "Step b"),
    ]
    assert cases[1].find("error").get("message") == "Step c: TODO: write pending definition"
    assert int(root.get("errors")) == 2
    assert int(root.get("failures")) == 0
    assert int(root.get("tests")) == len(cases)


def test_duplicate_names_are_numbered():
    build = _build([
        ("Outline", [("x", PASSED, None)]),
        ("Outline", [("y", PASSED, None)]),
        ("Single", [("z", PASSED, None)]),
    ])
    cases = _parse(_run(_storage(build))).find("testsuite").findall("testcase")
    assert [c.get("name") for c in cases] == ["Outline #1", "Outline #2", "Single"]


def test_features_sorted_by_name():
    beta = _build([("s", [("x", PASSED, None)])], feature_name="Beta", uri="b.feature")
    alpha = _build([("s", [("x", PASSED, None)])], feature_name="Alpha", uri="a.feature")
    root = _parse(_run(_storage(beta, alpha)))
    assert [s.get("name") for s in root.findall("testsuite")] == ["Alpha", "Beta"]


def test_layout_and_empty_elements():
    build = _build([("Undef", [("a", UNDEFINED, None)])])
    text = _run(_storage(build))
    assert "\n  <testsuite " in text
    assert "\n    <testcase " in text
    assert "></error>" in text
    assert "/>" not in text
    assert text.endswith("</testsuites>")


def test_attribute_escaping_round_trips():
    name = 'Say "hi" & <bye>\nnow'
    build = _build([(name, [("x", PASSED, None)])])
    text = _run(_storage(build))
    assert "&#34;" in text and "&#xA;" in text
    case = _parse(text).find("testsuite").find("testcase")
    assert case.get("name") == name