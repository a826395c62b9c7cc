"""Formatter that prints every feature with runtime statuses."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Callable, TextIO

from bddreport.base import (
    FAILED,
    PENDING,
    SKIPPED,
    UNDEFINED,
    Base,
    definition_id,
    register_formatter,
)
from bddreport.feature import (
    DocString,
    Examples,
    Feature,
    GherkinDocument,
    GherkinFeature,
    Location,
    Pickle,
    PickleStep,
    PickleTable,
    Rule,
    Scenario,
    Step,
    TableRow,
)
from bddreport.results import (
    ColorFunc,
    black,
    bold,
    cyan,
    green,
    red,
    white,
    yellow,
)

_whiteb = bold(white)
_cyanb = bold(cyan)
_redb = bold(red)
_blackb = bold(black)

_OUTLINE_PLACEHOLDER = re.compile(r"<[^>]+>")


def _s(n: int) -> str:
    """Return n spaces; a negative count still separates with one space."""
    return " " * (n if n >= 0 else 1)


def keyword_and_name(keyword: str, name: str) -> str:
    """Return a bold "keyword:" title followed by the name, if any."""
    title = _whiteb(keyword + ":")
    if name:
        title += " " + name
    return title


def _line(path: str, loc: Location) -> str:
    """Return the "# path:line" reference printed after a node."""
    path = path.removesuffix(f":{loc.line}")
    return " " + _blackb(f"# {path}:{loc.line}")


def _is_first_scenario_in_rule(rule: Rule | None, scenario: Scenario | None) -> bool:
    if rule is None or scenario is None:
        return False
    first = next((c.scenario for c in rule.children if c.scenario is not None), None)
    return first is not None and first.id == scenario.id


def _is_first_pickle_and_no_rule(
    feature: Feature, pickle: Pickle, rule: Rule | None
) -> bool:
    if rule is not None:
        return False
    return feature.pickles[0].id == pickle.id


def _widen(longest: list[int], index: int, value: str, clrs: tuple[ColorFunc, ...]) -> None:
    for clr in clrs:
        longest[index] = max(longest[index], len(clr(value)))
    longest[index] = max(longest[index], len(value))


def _max_col_lengths(table: PickleTable | None, *clrs: ColorFunc) -> list[int]:
    if table is None:
        return []
    longest = [0] * len(table.rows[0].cells)
    for row in table.rows:
        for i, cell in enumerate(row.cells):
            _widen(longest, i, cell.value, clrs)
    return longest


def _longest_example_row(examples: Examples | None, *clrs: ColorFunc) -> list[int]:
    if examples is None:
        return []
    longest = [0] * len(examples.table_header.cells)
    for row in [examples.table_header, *examples.table_body]:
        for i, cell in enumerate(row.cells):
            _widen(longest, i, cell.value, clrs)
    return longest


class Pretty(Base):
    """Readable output: features, scenarios and steps with their statuses."""

    def __init__(
        self,
        suite: str,
        out: TextIO,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(suite, out, clock)
        self.first_feature = True

    def test_run_started(self) -> None:
        """Reset the state for a new run."""
        super().test_run_started()
        with self.lock:
            self.first_feature = True

    def feature(self, document: GherkinDocument, path: str, content: bytes) -> None:
        """Print the feature title and description."""
        with self.lock:
            if not self.first_feature:
                self._println("")
            self.first_feature = False
        super().feature(document, path, content)
        with self.lock:
            self._print_feature(document.feature)

    def pickle(self, pickle: Pickle) -> None:
        """Print a scenario that has no steps at all."""
        super().pickle(pickle)
        with self.lock:
            if not pickle.steps:
                self._print_undefined_pickle(pickle)

    def passed(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Print a passed step."""
        super().passed(pickle, step, definition)
        with self.lock:
            self._print_step(pickle, step)

    def skipped(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Print a skipped step."""
        super().skipped(pickle, step, definition)
        with self.lock:
            self._print_step(pickle, step)

    def undefined(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Print an undefined step."""
        super().undefined(pickle, step, definition)
        with self.lock:
            self._print_step(pickle, step)

    def failed(
        self, pickle: Pickle, step: PickleStep, definition: Any, err: BaseException
    ) -> None:
        """Print a failed step."""
        super().failed(pickle, step, definition, err)
        with self.lock:
            self._print_step(pickle, step)

    def pending(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Print a pending step."""
        super().pending(pickle, step, definition)
        with self.lock:
            self._print_step(pickle, step)

    def summary(self) -> None:
        """List the failed steps, then print the base summary."""
        storage = self.storage
        failed_results = storage.must_get_pickle_step_results_by_status(FAILED)
        if failed_results:
            self._println("\n--- " + red("Failed steps:") + "\n")
            for fail in sorted(failed_results, key=lambda r: int(r.pickle_step_id)):
                pickle = storage.must_get_pickle(fail.pickle_id)
                pickle_step = storage.must_get_pickle_step(fail.pickle_step_id)
                feature = storage.must_get_feature(pickle.uri)

                scenario = feature.find_scenario(pickle.ast_node_ids[0])
                scenario_desc = f"{scenario.keyword}: {pickle.name}"

                step = feature.find_step(pickle_step.ast_node_ids[0])
                step_desc = step.keyword.strip() + " " + pickle_step.text

                self._println(
                    _s(self.indent) + red(scenario_desc) + _line(feature.uri, scenario.location)
                )
                self._println(
                    _s(self.indent * 2) + red(step_desc) + _line(feature.uri, step.location)
                )
                self._println(
                    _s(self.indent * 3) + red("Error: ") + _redb(str(fail.err)) + "\n"
                )

        super().summary()

    def _print_feature(self, feature: GherkinFeature) -> None:
        self._println(keyword_and_name(feature.keyword, feature.name))
        if feature.description.strip():
            for text in feature.description.split("\n"):
                self._println(_s(self.indent) + text.strip())

    def _length_pickle_step(self, keyword: str, text: str) -> int:
        return self.indent * 2 + len(keyword.strip() + " " + text)

    def _length_pickle(self, keyword: str, name: str) -> int:
        return self.indent + len(keyword.strip() + ": " + name)

    def _longest_step(self, steps: list[Step], pickle_length: int) -> int:
        return max(
            [pickle_length, *(self._length_pickle_step(s.keyword, s.text) for s in steps)]
        )

    def _scenario_lengths(self, pickle: Pickle) -> tuple[int, int]:
        feature = self.storage.must_get_feature(pickle.uri)
        scenario = feature.find_scenario(pickle.ast_node_ids[0])
        background = feature.find_background(pickle.ast_node_ids[0])

        header_length = self._length_pickle(scenario.keyword, scenario.name)
        max_length = self._longest_step(scenario.steps, header_length)
        if background is not None:
            max_length = self._longest_step(background.steps, max_length)
        return header_length, max_length

    def _print_scenario_header(
        self, pickle: Pickle, scenario: Scenario, space_filling: int
    ) -> None:
        feature = self.storage.must_get_feature(pickle.uri)
        text = _s(self.indent) + keyword_and_name(scenario.keyword, scenario.name)
        text += _s(space_filling) + _line(feature.uri, scenario.location)
        self._println("\n" + text)

    def _print_undefined_pickle(self, pickle: Pickle) -> None:
        feature = self.storage.must_get_feature(pickle.uri)
        scenario = feature.find_scenario(pickle.ast_node_ids[0])
        background = feature.find_background(pickle.ast_node_ids[0])

        header_length, max_length = self._scenario_lengths(pickle)

        if background is not None:
            self._println(
                "\n" + _s(self.indent) + keyword_and_name(background.keyword, background.name)
            )
            for step in background.steps:
                self._println(
                    _s(self.indent * 2) + cyan(step.keyword.strip()) + " " + cyan(step.text)
                )

        # do not print scenario headers and examples multiple times
        if scenario.examples:
            table, row = feature.find_example(pickle.ast_node_ids[1])
            first_row = table.table_body[0].id == row.id
            first_table = scenario.examples[0].location.line == table.location.line
            if not (first_table and first_row):
                return

        self._print_scenario_header(pickle, scenario, max_length - header_length)

        for examples in scenario.examples:
            widths = _longest_example_row(examples, cyan, cyan)
            self._println("")
            self._println(
                _s(self.indent * 2) + keyword_and_name(examples.keyword, examples.name)
            )
            self._print_table_header(examples.table_header, widths)
            for row in examples.table_body:
                self._print_table_row(row, widths, cyan)

    def _print_outline_example(self, pickle: Pickle, background_steps: int) -> None:
        error_msg = ""
        clr: ColorFunc = green

        storage = self.storage
        feature = storage.must_get_feature(pickle.uri)
        scenario = feature.find_scenario(pickle.ast_node_ids[0])
        header_length, max_length = self._scenario_lengths(pickle)

        table, example_row = feature.find_example(pickle.ast_node_ids[1])
        print_example_header = table.table_body[0].id == example_row.id
        first_table = scenario.examples[0].location.line == table.location.line

        step_results = storage.must_get_pickle_step_results_by_pickle_id(pickle.id)

        first_executed_step = len(step_results) == background_steps + 1
        if first_table and print_example_header and first_executed_step:
            self._print_scenario_header(pickle, scenario, max_length - header_length)

        if not table.table_body:
            return

        # do not print examples unless all steps have finished
        if len(step_results) != len(pickle.steps):
            return

        for result in step_results:
            if result.status is FAILED:
                error_msg = str(result.err)
                clr = result.status.color()
            elif result.status in (UNDEFINED, PENDING):
                clr = result.status.color()

            if first_table and print_example_header:
                pickle_step = storage.must_get_pickle_step(result.pickle_step_id)
                step = feature.find_step(pickle_step.ast_node_ids[0])

                text = ""
                if result.definition is not None:
                    text = self._highlight_placeholders(step.text)
                    _, longest = self._scenario_lengths(pickle)
                    step_length = self._length_pickle_step(step.keyword, step.text)
                    text += _s(longest - step_length)
                    text += " " + _blackb("# " + definition_id(result.definition))

                self._println(
                    _s(self.indent * 2) + cyan(step.keyword.strip()) + " " + text
                )

                if pickle_step.argument is not None:
                    if pickle_step.argument.data_table is not None:
                        self._print_table(pickle_step.argument.data_table, cyan)
                    if step.doc_string is not None:
                        self._print_doc_string(step.doc_string)

        widths = _longest_example_row(table, clr, cyan)

        if print_example_header:
            self._println("")
            self._println(_s(self.indent * 2) + keyword_and_name(table.keyword, table.name))
            self._print_table_header(table.table_header, widths)

        self._print_table_row(example_row, widths, clr)

        if error_msg:
            self._println(_s(self.indent * 4) + _redb(error_msg))

    @staticmethod
    def _highlight_placeholders(text: str) -> str:
        matches = list(_OUTLINE_PLACEHOLDER.finditer(text))
        if not matches:
            return cyan(text)
        parts = []
        pos = 0
        for match in matches:
            parts.append(cyan(text[pos : match.start()]))
            parts.append(_cyanb(match.group()))
            pos = match.end()
        parts.append(cyan(text[pos:]))
        return "".join(parts)

    def _print_table_row(self, row: TableRow, widths: list[int], clr: ColorFunc) -> None:
        cells = []
        for width, cell in zip(widths, row.cells):
            value = clr(cell.value)
            cells.append(value + _s(width - len(value)))
        self._println(_s(self.indent * 3) + "| " + " | ".join(cells) + " |")

    def _print_table_header(self, row: TableRow, widths: list[int]) -> None:
        self._print_table_row(row, widths, cyan)

    def _print_step(self, pickle: Pickle, pickle_step: PickleStep) -> None:
        storage = self.storage
        feature = storage.must_get_feature(pickle.uri)
        scenario_id = pickle.ast_node_ids[0]
        background = feature.find_background(scenario_id)
        scenario = feature.find_scenario(scenario_id)
        rule = feature.find_rule(scenario_id)
        step = feature.find_step(pickle_step.ast_node_ids[0])

        is_background_step = False
        first_background_step = False
        background_steps = 0
        if background is not None:
            background_steps = len(background.steps)
            for idx, bg_step in enumerate(background.steps):
                if bg_step.id == pickle_step.ast_node_ids[0]:
                    is_background_step = True
                    first_background_step = idx == 0
                    break

        first_pickle = _is_first_pickle_and_no_rule(
            feature, pickle, rule
        ) or _is_first_scenario_in_rule(rule, scenario)

        if is_background_step and not first_pickle:
            return

        if is_background_step and first_background_step:
            self._println(
                "\n" + _s(self.indent) + keyword_and_name(background.keyword, background.name)
            )

        if not is_background_step and scenario.examples:
            self._print_outline_example(pickle, background_steps)
            return

        header_length, max_length = self._scenario_lengths(pickle)
        step_length = self._length_pickle_step(step.keyword, pickle_step.text)

        first_scenario_step = scenario.steps[0].id == pickle_step.ast_node_ids[0]
        if not is_background_step and first_scenario_step:
            self._print_scenario_header(pickle, scenario, max_length - header_length)

        result = storage.must_get_pickle_step_result(pickle_step.id)
        color = result.status.color()
        text = _s(self.indent * 2) + color(step.keyword.strip()) + " " + color(pickle_step.text)
        if result.definition is not None:
            text += _s(max_length - step_length + 1)
            text += _blackb("# " + definition_id(result.definition))
        self._println(text)

        if pickle_step.argument is not None:
            if pickle_step.argument.data_table is not None:
                self._print_table(pickle_step.argument.data_table, cyan)
            if step.doc_string is not None:
                self._print_doc_string(step.doc_string)

        if result.err is not None:
            self._println(_s(self.indent * 2) + _redb(str(result.err)))

        if result.status is PENDING:
            self._println(_s(self.indent * 3) + yellow("TODO: write pending definition"))

    def _print_doc_string(self, doc_string: DocString) -> None:
        content_type = " " + cyan(doc_string.media_type) if doc_string.media_type else ""
        self._println(_s(self.indent * 3) + cyan(doc_string.delimiter) + content_type)
        for text in doc_string.content.split("\n"):
            self._println(_s(self.indent * 3) + cyan(text))
        self._println(_s(self.indent * 3) + cyan(doc_string.delimiter))

    def _print_table(self, table: PickleTable, clr: ColorFunc) -> None:
        widths = _max_col_lengths(table, clr)
        for row in table.rows:
            cols = []
            for width, cell in zip(widths, row.cells):
                value = clr(cell.value)
                cols.append(value + _s(width - len(value)))
            self._println(_s(self.indent * 3) + "| " + " | ".join(cols) + " |")


# Kept for symmetry with other formatters that skip coloured "skipped" rows.
_SKIPPED_COLOR = SKIPPED.color()


def pretty_formatter(suite: str, out: Any) -> Pretty:
    """Create a pretty formatter."""
    return Pretty(suite, out)


register_formatter("pretty", "Prints every feature with runtime statuses.", pretty_formatter)