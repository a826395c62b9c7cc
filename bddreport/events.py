"""Formatter that writes the run as a stream of JSON events."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any

from bddreport.base import (
    FAILED,
    PASSED,
    PENDING,
    UNDEFINED,
    Base,
    definition_id,
    register_formatter,
)
from bddreport.feature import GherkinDocument, Pickle, PickleStep

SPEC = "0.1.0"

_NANOS_PER_MILLI = 1_000_000
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _unix_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    delta = moment - _EPOCH
    ns = (delta.days * 86400 + delta.seconds) * 10**9 + delta.microseconds * 1000
    millis = abs(ns) // _NANOS_PER_MILLI
    return -millis if ns < 0 else millis


def _encode(event: dict[str, Any]) -> str:
    text = json.dumps(event, separators=(",", ":"), ensure_ascii=False)
    for char, escaped in _JSON_ESCAPES.items():
        text = text.replace(char, escaped)
    return text


def _argument_spans(expr: re.Pattern[str] | None, text: str) -> list[list[int]]:
    if expr is None:
        return []
    match = expr.search(text)
    if match is None:
        return []
    offsets = [index for group in range(1, expr.groups + 1) for index in match.span(group)]
    spans = []
    for i in range(len(offsets) // 2):
        pair = offsets[i : i * 2 + 2]
        spans.append([pair[0], pair[1]])
    return spans


def _is_last_step(pickle: Pickle, step: PickleStep) -> bool:
    return pickle.steps[-1].id == step.id


class Events(Base):
    """Writes one JSON object per line for each event of the run."""

    def _event(self, event: dict[str, Any]) -> None:
        self._println(_encode(event))

    def _now(self) -> int:
        return _unix_millis(self.clock())

    def _scenario_location(self, pickle: Pickle) -> str:
        feature = self.storage.must_get_feature(pickle.uri)
        scenario = feature.find_scenario(pickle.ast_node_ids[0])
        line = scenario.location.line
        if len(pickle.ast_node_ids) == 2:
            _, row = feature.find_example(pickle.ast_node_ids[1])
            line = row.location.line
        return f"{pickle.uri}:{line}"

    def _step_location(self, pickle: Pickle, pickle_step: PickleStep) -> str:
        feature = self.storage.must_get_feature(pickle.uri)
        step = feature.find_step(pickle_step.ast_node_ids[0])
        return f"{pickle.uri}:{step.location.line}"

    def test_run_started(self) -> None:
        """Emit the TestRunStarted event."""
        super().test_run_started()
        with self.lock:
            self._event(
                {
                    "event": "TestRunStarted",
                    "version": SPEC,
                    "timestamp": self._now(),
                    "suite": self.suite_name,
                }
            )

    def feature(self, document: GherkinDocument, path: str, content: bytes) -> None:
        """Emit the TestSource event with the raw feature text."""
        super().feature(document, path, content)
        with self.lock:
            self._event(
                {
                    "event": "TestSource",
                    "location": f"{path}:{document.feature.location.line}",
                    "source": content.decode("utf-8", errors="replace"),
                }
            )

    def pickle(self, pickle: Pickle) -> None:
        """Emit TestCaseStarted, and TestCaseFinished for a scenario without steps."""
        super().pickle(pickle)
        with self.lock:
            location = self._scenario_location(pickle)
            self._event(
                {"event": "TestCaseStarted", "location": location, "timestamp": self._now()}
            )
            if not pickle.steps:
                self._event(
                    {
                        "event": "TestCaseFinished",
                        "location": location,
                        "timestamp": self._now(),
                        "status": str(UNDEFINED),
                    }
                )

    def defined(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Emit StepDefinitionFound when matched, then TestStepStarted."""
        super().defined(pickle, step, definition)
        with self.lock:
            location = self._step_location(pickle, step)
            if definition is not None:
                matched = self.storage.must_get_step_definition_match(step.ast_node_ids[0])
                self._event(
                    {
                        "event": "StepDefinitionFound",
                        "location": location,
                        "definition_id": definition_id(matched),
                        "arguments": _argument_spans(
                            getattr(definition, "expr", None), step.text
                        ),
                    }
                )
            self._event(
                {"event": "TestStepStarted", "location": location, "timestamp": self._now()}
            )

    def passed(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Emit the finished events for a passed step."""
        super().passed(pickle, step, definition)
        with self.lock:
            self._step(pickle, step)

    def skipped(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Emit the finished events for a skipped step."""
        super().skipped(pickle, step, definition)
        with self.lock:
            self._step(pickle, step)

    def undefined(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Emit the finished events for an undefined step."""
        super().undefined(pickle, step, definition)
        with self.lock:
            self._step(pickle, step)

    def failed(
        self, pickle: Pickle, step: PickleStep, definition: Any, err: BaseException
    ) -> None:
        """Emit the finished events for a failed step."""
        super().failed(pickle, step, definition, err)
        with self.lock:
            self._step(pickle, step)

    def pending(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Emit the finished events for a pending step."""
        super().pending(pickle, step, definition)
        with self.lock:
            self._step(pickle, step)

    def _step(self, pickle: Pickle, pickle_step: PickleStep) -> None:
        result = self.storage.must_get_pickle_step_result(pickle_step.id)
        event: dict[str, Any] = {
            "event": "TestStepFinished",
            "location": self._step_location(pickle, pickle_step),
            "timestamp": self._now(),
            "status": str(result.status),
        }
        if result.err is not None and str(result.err):
            event["summary"] = str(result.err)
        self._event(event)

        if _is_last_step(pickle, pickle_step):
            status = ""
            for step_result in self.storage.must_get_pickle_step_results_by_pickle_id(
                pickle.id
            ):
                if step_result.status in (PASSED, FAILED, UNDEFINED, PENDING):
                    status = str(step_result.status)
            self._event(
                {
                    "event": "TestCaseFinished",
                    "location": self._scenario_location(pickle),
                    "timestamp": self._now(),
                    "status": status,
                }
            )

    def summary(self) -> None:
        """Emit the TestRunFinished event with the overall status and snippets."""
        by_status = self.storage.must_get_pickle_step_results_by_status
        status = PASSED
        if by_status(FAILED):
            status = FAILED
        elif not by_status(PASSED):
            status = UNDEFINED if len(by_status(UNDEFINED)) > len(by_status(PENDING)) else PENDING

        snippets = self.snippets()
        if snippets:
            snippets = (
                "You can implement step definitions for undefined steps with these snippets:\n"
                + snippets
            )

        self._event(
            {
                "event": "TestRunFinished",
                "status": str(status),
                "timestamp": self._now(),
                "snippets": snippets,
                "memory": "",
            }
        )


def events_formatter(suite: str, out: Any) -> Events:
    """Create a JSON event stream formatter."""
    return Events(suite, out)


register_formatter(
    "events", f"Produces JSON event stream, based on spec: {SPEC}.", events_formatter
)