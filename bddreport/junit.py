"""Formatter that renders results as JUnit XML."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from bddreport.base import (
    FAILED,
    PASSED,
    PENDING,
    SKIPPED,
    UNDEFINED,
    Base,
    register_formatter,
)
from bddreport.feature import Pickle
from bddreport.results import PickleStepResult

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'
_INDENT = "  "

_ATTR_ESCAPES = {
    '"': "&#34;",
    "'": "&#39;",
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    "\t": "&#x9;",
    "\n": "&#xA;",
    "\r": "&#xD;",
}


def _is_xml_char(char: str) -> bool:
    cp = ord(char)
    return (
        cp in (0x09, 0x0A, 0x0D)
        or 0x20 <= cp <= 0xD7FF
        or 0xE000 <= cp <= 0xFFFD
        or 0x10000 <= cp <= 0x10FFFF
    )


def _escape(text: str) -> str:
    return "".join(
        _ATTR_ESCAPES.get(char, char) if _is_xml_char(char) else "\ufffd"
        for char in text
    )


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def junit_time_duration(start: datetime, end: datetime) -> str:
    """Return the seconds between two times, as JUnit writes them."""
    delta = end - start
    ns = (delta.days * 86400 + delta.seconds) * 10**9 + delta.microseconds * 1000
    sign = -1 if ns < 0 else 1
    sec, nsec = divmod(abs(ns), 10**9)
    return _format_seconds(sign * (float(sec) + float(nsec) / 1e9))


@dataclass
class _Element:
    tag: str
    attrs: list[tuple[str, Any]]
    children: list[_Element] = field(default_factory=list)

    def render(self, depth: int = 0, first: bool = True) -> str:
        prefix = "" if first else "\n" + _INDENT * depth
        attrs = "".join(f' {name}="{_escape(str(value))}"' for name, value in self.attrs)
        inner = "".join(child.render(depth + 1, False) for child in self.children)
        closing = ("\n" + _INDENT * depth if self.children else "") + f"</{self.tag}>"
        return f"{prefix}<{self.tag}{attrs}>{inner}{closing}"


@dataclass
class _TestCase:
    name: str
    time: str = ""
    status: str = ""
    failure: str | None = None
    errors: list[tuple[str, str]] = field(default_factory=list)

    def element(self) -> _Element:
        children = []
        if self.failure is not None:
            children.append(_Element("failure", [("message", self.failure)]))
        children.extend(
            _Element("error", [("message", message), ("type", kind)])
            for kind, message in self.errors
        )
        return _Element(
            "testcase",
            [("name", self.name), ("status", self.status), ("time", self.time)],
            children,
        )


@dataclass
class _Counts:
    name: str
    tests: int = 0
    skipped: int = 0
    failures: int = 0
    errors: int = 0
    time: str = ""

    def attrs(self) -> list[tuple[str, Any]]:
        return [
            ("name", self.name),
            ("tests", self.tests),
            ("skipped", self.skipped),
            ("failures", self.failures),
            ("errors", self.errors),
            ("time", self.time),
        ]


class JUnit(Base):
    """Renders the whole run as JUnit XML in the summary."""

    def summary(self) -> None:
        """Write the JUnit XML report."""
        self.out.write(XML_HEADER)
        self.out.write(self._build_package_suite().render())

    def _build_package_suite(self) -> _Element:
        storage = self.storage
        features = sorted(storage.must_get_features(), key=lambda feat: feat.feature.name)
        run_started_at = storage.must_get_test_run_started().started_at

        suite = _Counts(self.suite_name, time=junit_time_duration(run_started_at, self.clock()))
        suite_elements = []

        for feature in features:
            pickles = sorted(storage.must_get_pickles(feature.uri), key=lambda p: int(p.id))
            ts = _Counts(feature.feature.name)
            cases: list[_TestCase] = []

            name_counts: dict[str, int] = {}
            for pickle in pickles:
                name_counts[pickle.name] = name_counts.get(pickle.name, 0) + 1

            first_started_at = run_started_at
            last_finished_at = run_started_at
            outline_no: dict[str, int] = {}

            for idx, pickle in enumerate(pickles):
                pickle_result = storage.must_get_pickle_result(pickle.id)
                if idx == 0:
                    first_started_at = pickle_result.started_at
                last_finished_at = pickle_result.started_at
                if pickle.steps:
                    last_result = storage.must_get_pickle_step_result(pickle.steps[-1].id)
                    last_finished_at = last_result.finished_at

                tc = _TestCase(
                    name=pickle.name,
                    time=junit_time_duration(pickle_result.started_at, last_finished_at),
                )
                if name_counts[pickle.name] > 1:
                    outline_no[pickle.name] = outline_no.get(pickle.name, 0) + 1
                    tc.name += f" #{outline_no[pickle.name]}"

                ts.tests += 1
                suite.tests += 1

                self._apply_step_results(
                    tc, storage.must_get_pickle_step_results_by_pickle_id(pickle.id)
                )

                if tc.status == str(FAILED):
                    ts.failures += 1
                    suite.failures += 1
                elif tc.status in (str(UNDEFINED), str(PENDING)):
                    ts.errors += 1
                    suite.errors += 1

                cases.append(tc)

            ts.time = junit_time_duration(first_started_at, last_finished_at)
            suite_elements.append(
                _Element("testsuite", ts.attrs(), [tc.element() for tc in cases])
            )

        return _Element("testsuites", suite.attrs(), suite_elements)

    def _apply_step_results(
        self, tc: _TestCase, step_results: list[PickleStepResult]
    ) -> None:
        for result in step_results:
            text = self.storage.must_get_pickle_step(result.pickle_step_id).text
            status = result.status
            if status is PASSED:
                tc.status = str(PASSED)
            elif status is FAILED:
                tc.status = str(FAILED)
                tc.failure = f"Step {text}: {result.err}"
            elif status is SKIPPED:
                tc.errors.append(("skipped", f"Step {text}"))
            elif status is UNDEFINED:
                tc.status = str(UNDEFINED)
                tc.errors.append(("undefined", f"Step {text}"))
            elif status is PENDING:
                tc.status = str(PENDING)
                tc.errors.append(("pending", f"Step {text}: TODO: write pending definition"))


def junit_formatter(suite: str, out: Any) -> JUnit:
    """Create a JUnit XML formatter."""
    return JUnit(suite, out)


def _pickle_name(pickle: Pickle) -> str:
    return pickle.name


register_formatter("junit", "Prints junit compatible xml to stdout", junit_formatter)