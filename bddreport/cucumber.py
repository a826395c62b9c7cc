"""Formatter that renders results as Cucumber JSON."""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

from bddreport.base import (
    PENDING,
    SKIPPED,
    UNDEFINED,
    Base,
    definition_id,
    register_formatter,
)
from bddreport.feature import Feature, Pickle, Tag
from bddreport.results import PickleStepResult

_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def make_cuke_id(name: str) -> str:
    """Turn a feature or scenario name into a cucumber id."""
    return name.lower().replace(" ", "-")


def _nanoseconds(delta: timedelta) -> int:
    return (delta.days * 86400 + delta.seconds) * 10**9 + delta.microseconds * 1000


def _dumps(value: Any) -> str:
    text = json.dumps(value, indent=4, ensure_ascii=False)
    for char, escaped in _JSON_ESCAPES.items():
        text = text.replace(char, escaped)
    return text


def _omit_empty(data: dict[str, Any], *keys: str) -> dict[str, Any]:
    for key in keys:
        if data.get(key) in (None, "", []):
            data.pop(key, None)
    return data


def _tags(tags: list[Tag]) -> list[dict[str, Any]]:
    return [{"name": tag.name, "line": tag.location.line} for tag in tags]


def _pickle_order(pickle: Pickle) -> int:
    return int(pickle.id)


def _step_result_order(result: PickleStepResult) -> int:
    return int(result.pickle_step_id)


def _build_feature(feat: Feature) -> dict[str, Any]:
    gherkin = feat.feature
    return {
        "uri": feat.uri,
        "id": make_cuke_id(gherkin.name),
        "keyword": gherkin.keyword,
        "name": gherkin.name,
        "description": gherkin.description,
        "line": gherkin.location.line,
        "comments": [
            {"value": comment.text.strip(), "line": comment.location.line}
            for comment in feat.comments
        ],
        "tags": _tags(gherkin.tags),
        "elements": [],
    }


class Cuke(Base):
    """Renders the whole run as a Cucumber JSON report in the summary."""

    def summary(self) -> None:
        """Write the Cucumber JSON report."""
        features = sorted(
            self.storage.must_get_features(), key=lambda feat: feat.feature.name
        )
        report = [self._build_feature(feat) for feat in features]
        self.out.write(_dumps(report) + "\n")

    def _build_feature(self, feat: Feature) -> dict[str, Any]:
        cuke_feature = _build_feature(feat)
        pickles = sorted(self.storage.must_get_pickles(feat.uri), key=_pickle_order)
        elements = []
        for pickle in pickles:
            element = self._build_element(pickle)
            element["id"] = (
                cuke_feature["id"] + ";" + make_cuke_id(element["name"]) + element["id"]
            )
            element["tags"] = cuke_feature["tags"] + element["tags"]
            elements.append(_omit_empty(element, "tags", "steps"))
        cuke_feature["elements"] = elements
        return _omit_empty(cuke_feature, "comments", "tags", "elements")

    def _build_element(self, pickle: Pickle) -> dict[str, Any]:
        feature = self.storage.must_get_feature(pickle.uri)
        scenario = feature.find_scenario(pickle.ast_node_ids[0])

        element: dict[str, Any] = {
            "id": "",
            "keyword": scenario.keyword,
            "name": pickle.name,
            "description": scenario.description,
            "line": scenario.location.line,
            "type": "scenario",
            "tags": _tags(scenario.tags),
            "steps": [],
        }

        if len(pickle.ast_node_ids) > 1:
            row_id = pickle.ast_node_ids[1]
            example, _ = feature.find_example(row_id)
            element["tags"].extend(_tags(example.tags))
            for examples in scenario.examples:
                for idx, row in enumerate(examples.table_body):
                    if row.id == row_id:
                        element["id"] += f";{make_cuke_id(examples.name)};{idx + 2}"
                        element["line"] = row.location.line

        pickle_result = self.storage.must_get_pickle_result(pickle.id)
        step_results = sorted(
            self.storage.must_get_pickle_step_results_by_pickle_id(pickle.id),
            key=_step_result_order,
        )
        step_started_at = pickle_result.started_at
        for result in step_results:
            step = self._build_step(feature, pickle, result)
            duration = _nanoseconds(result.finished_at - step_started_at)
            step_started_at = result.finished_at
            if result.status not in (UNDEFINED, PENDING, SKIPPED):
                step["result"]["duration"] = duration
            element["steps"].append(_omit_empty(step, "doc_string", "rows"))
        return element

    def _build_step(
        self, feature: Feature, pickle: Pickle, result: PickleStepResult
    ) -> dict[str, Any]:
        pickle_step = self.storage.must_get_pickle_step(result.pickle_step_id)
        step = feature.find_step(pickle_step.ast_node_ids[0])

        line = step.location.line
        if len(pickle.ast_node_ids) == 2:
            _, row = feature.find_example(pickle.ast_node_ids[1])
            line = row.location.line

        doc_string = None
        rows: list[dict[str, Any]] = []
        arg = pickle_step.argument
        if arg is not None:
            if arg.doc_string is not None and step.doc_string is not None:
                doc_string = {
                    "value": arg.doc_string.content,
                    "content_type": arg.doc_string.media_type.strip(),
                    "line": step.doc_string.location.line,
                }
            if arg.data_table is not None:
                rows = [
                    {"cells": [cell.value for cell in table_row.cells]}
                    for table_row in arg.data_table.rows
                ]

        location = ""
        if result.definition is not None:
            location = definition_id(result.definition).split(" ")[0]
        if result.status in (UNDEFINED, PENDING):
            location = f"{pickle.uri}:{step.location.line}"

        outcome: dict[str, Any] = {
            "status": str(result.status),
            "error_message": str(result.err) if result.err is not None else "",
        }
        _omit_empty(outcome, "error_message")

        return {
            "keyword": step.keyword,
            "name": pickle_step.text,
            "line": line,
            "doc_string": doc_string,
            "match": {"location": location},
            "result": outcome,
            "rows": rows,
        }


def cucumber_formatter(suite: str, out: Any) -> Cuke:
    """Create a Cucumber JSON formatter."""
    return Cuke(suite, out)


register_formatter("cucumber", "Produces cucumber JSON format output.", cucumber_formatter)