import io
import json
import re
from datetime import datetime, timezone

import pytest

from bddreport.base import find_formatter, formatter_descriptions
from bddreport.events import Events, events_formatter
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
from bddreport.results import (
    PickleResult,
    PickleStepResult,
    StepResultStatus,
    TestRunStarted,
)
from bddreport.stepdef import StepDefinition

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
URI = "eat.feature"


def build_feature():
    steps = [
        Step(id="st1", location=Location(line=4), keyword="Given ", text="there are 12 godogs"),
        Step(id="st2", location=Location(line=5), keyword="Then ", text="there should be 7 remaining"),
    ]
    scenario = Scenario(id="s1", location=Location(line=3), keyword="Scenario", name="Eat", steps=steps)
    empty = Scenario(id="s2", location=Location(line=7), keyword="Scenario", name="Nothing")
    gherkin = GherkinFeature(
        location=Location(line=1),
        keyword="Feature",
        name="eat godogs",
        children=[FeatureChild(scenario=scenario), FeatureChild(scenario=empty)],
    )
    pickle = Pickle(
        id="10",
        uri=URI,
        name="Eat",
        ast_node_ids=["s1"],
        steps=[
            PickleStep(id="11", text=steps[0].text, ast_node_ids=["st1"]),
            PickleStep(id="12", text=steps[1].text, ast_node_ids=["st2"]),
        ],
    )
    empty_pickle = Pickle(id="20", uri=URI, name="Nothing", ast_node_ids=["s2"])
    return Feature(uri=URI, feature=gherkin, pickles=[pickle, empty_pickle])


class FakeStorage:
    def __init__(self, feature):
        self.feature = feature
        self.step_results = {}
        self.pickle_results = [PickleResult(feature.pickles[0].id, EPOCH)]
        self.matches = {}

    def record(self, pickle, step, status, err=None):
        self.step_results[step.id] = PickleStepResult(
            pickle.id, step.id, status=status, finished_at=EPOCH, err=err
        )

    def must_get_feature(self, uri):
        assert uri == self.feature.uri
        return self.feature

    def must_get_features(self):
        return [self.feature]

    def must_get_pickle(self, pickle_id):
        return next(p for p in self.feature.pickles if p.id == pickle_id)

    def must_get_pickles(self, uri):
        return list(self.feature.pickles)

    def must_get_pickle_step(self, step_id):
        return next(s for p in self.feature.pickles for s in p.steps if s.id == step_id)

    def must_get_pickle_step_result(self, step_id):
        return self.step_results[step_id]

    def must_get_pickle_step_results_by_pickle_id(self, pickle_id):
        return [r for r in self.step_results.values() if r.pickle_id == pickle_id]

    def must_get_pickle_step_results_by_status(self, status):
        return [r for r in self.step_results.values() if r.status is status]

    def must_get_pickle_results(self):
        return list(self.pickle_results)

    def must_get_pickle_result(self, pickle_id):
        return next(r for r in self.pickle_results if r.pickle_id == pickle_id)

    def must_get_test_run_started(self):
        return TestRunStarted(EPOCH)

    def must_get_step_definition_match(self, ast_id):
        return self.matches[ast_id]


@pytest.fixture
def feature():
    return build_feature()


@pytest.fixture
def storage(feature):
    return FakeStorage(feature)


@pytest.fixture
def setup(storage):
    out = io.StringIO()
    fmt = Events("suite", out, clock=lambda: EPOCH)
    fmt.set_storage(storage)
    return fmt, out


def events_of(out):
    return [json.loads(line) for line in out.getvalue().splitlines()]


def count_godogs(count: int):
    return None


def test_test_run_started(setup):
    fmt, out = setup
    fmt.test_run_started()
    assert events_of(out) == [
        {"event": "TestRunStarted", "version": "0.1.0", "timestamp": 0, "suite": "suite"}
    ]


def test_feature_source_event(setup, feature):
    fmt, out = setup
    fmt.feature(feature, URI, b"Feature: <eat>")
    (event,) = events_of(out)
    assert event["event"] == "TestSource"
    assert event["location"] == f"{URI}:{feature.feature.location.line}"
    assert event["source"] == "Feature: <eat>"
    assert "\\u003ceat\\u003e" in out.getvalue()


def test_pickle_without_steps_finishes_undefined(setup, feature):
    fmt, out = setup
    fmt.pickle(feature.pickles[1])
    events = events_of(out)
    assert [e["event"] for e in events] == ["TestCaseStarted", "TestCaseFinished"]
    assert events[1]["status"] == "undefined"
    assert events[0]["location"] == f"{URI}:7"


def test_pickle_with_steps_only_starts(setup, feature):
    fmt, out = setup
    fmt.pickle(feature.pickles[0])
    events = events_of(out)
    assert len(events) == 1
    assert events[0]["event"] == "TestCaseStarted"
    assert events[0]["location"] == f"{URI}:3"


def test_last_passed_step_finishes_case(setup, storage, feature):
    fmt, out = setup
    pickle = feature.pickles[0]
    for step in pickle.steps:
        storage.record(pickle, step, StepResultStatus.PASSED)
    fmt.passed(pickle, pickle.steps[1], None)
    events = events_of(out)
    assert [e["event"] for e in events] == ["TestStepFinished", "TestCaseFinished"]
    assert events[0]["location"] == f"{URI}:5"
    assert events[0]["status"] == "passed"
    assert "summary" not in events[0]
    assert events[1]["status"] == "passed"
    assert events[1]["location"] == f"{URI}:3"


def test_failed_step_reports_error_summary(setup, storage, feature):
    fmt, out = setup
    pickle = feature.pickles[0]
    err = ValueError("boom")
    storage.record(pickle, pickle.steps[0], StepResultStatus.FAILED, err)
    fmt.failed(pickle, pickle.steps[0], None, err)
    events = events_of(out)
    assert len(events) == 1
    assert events[0]["status"] == "failed"
    assert events[0]["summary"] == "boom"


def test_case_finished_takes_last_meaningful_status(setup, storage, feature):
    fmt, out = setup
    pickle = feature.pickles[0]
    err = ValueError("boom")
    storage.record(pickle, pickle.steps[0], StepResultStatus.FAILED, err)
    storage.record(pickle, pickle.steps[1], StepResultStatus.SKIPPED)
    fmt.skipped(pickle, pickle.steps[1], None)
    events = events_of(out)
    assert events[-1]["event"] == "TestCaseFinished"
    assert events[-1]["status"] == "failed"


def test_defined_with_definition(setup, storage, feature):
    fmt, out = setup
    pickle = feature.pickles[0]
    step = pickle.steps[0]
    expr = re.compile(r"^there are (\d+) godogs$")
    sd = StepDefinition(handler=count_godogs, expr=expr)
    storage.matches["st1"] = sd
    fmt.defined(pickle, step, sd)
    events = events_of(out)
    assert [e["event"] for e in events] == ["StepDefinitionFound", "TestStepStarted"]
    assert events[0]["arguments"] == [list(expr.search(step.text).span(1))]
    assert events[0]["definition_id"].startswith("test_events.py:")
    assert events[0]["location"] == f"{URI}:4"


def test_defined_without_definition(setup, feature):
    fmt, out = setup
    pickle = feature.pickles[0]
    fmt.defined(pickle, pickle.steps[0], None)
    events = events_of(out)
    assert [e["event"] for e in events] == ["TestStepStarted"]


@pytest.mark.parametrize(
    "statuses, expected",
    [
        ((StepResultStatus.PASSED, StepResultStatus.FAILED), "failed"),
        ((StepResultStatus.PASSED, StepResultStatus.PASSED), "passed"),
        ((StepResultStatus.PENDING, StepResultStatus.SKIPPED), "pending"),
        ((StepResultStatus.UNDEFINED, StepResultStatus.SKIPPED), "undefined"),
    ],
)
def test_summary_status(setup, storage, feature, statuses, expected):
    fmt, out = setup
    pickle = feature.pickles[0]
    for step, status in zip(pickle.steps, statuses):
        storage.record(pickle, step, status)
    fmt.summary()
    (event,) = events_of(out)
    assert event["event"] == "TestRunFinished"
    assert event["status"] == expected
    assert event["memory"] == ""


def test_summary_snippets_for_undefined(setup, storage, feature):
    fmt, out = setup
    pickle = feature.pickles[0]
    storage.record(pickle, pickle.steps[0], StepResultStatus.UNDEFINED)
    fmt.summary()
    (event,) = events_of(out)
    assert event["snippets"].startswith(
        "You can implement step definitions for undefined steps with these snippets:\n"
    )
    assert fmt.snippets() in event["snippets"]


def test_summary_without_undefined_has_no_snippets(setup, storage, feature):
    fmt, out = setup
    pickle = feature.pickles[0]
    storage.record(pickle, pickle.steps[0], StepResultStatus.PASSED)
    fmt.summary()
    assert events_of(out)[0]["snippets"] == ""


def test_registered():
    assert find_formatter("events") is events_formatter
    assert "0.1.0" in formatter_descriptions()["events"]
    fmt = events_formatter("s", io.StringIO())
    assert fmt.suite_name == "s"