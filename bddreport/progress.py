"""Formatter that prints one character per step."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, TextIO

from bddreport.base import (
    FAILED,
    PASSED,
    PENDING,
    SKIPPED,
    UNDEFINED,
    Base,
    register_formatter,
)
from bddreport.feature import Pickle, PickleStep
from bddreport.results import black, bold, cyan, green, red, yellow

_redb = bold(red)
_blackb = bold(black)

_SYMBOLS = {
    PASSED: green("."),
    SKIPPED: cyan("-"),
    FAILED: red("F"),
    UNDEFINED: yellow("U"),
    PENDING: yellow("P"),
}


class Progress(Base):
    """A minimal formatter: a coloured character per step, rows of fixed width."""

    def __init__(
        self,
        suite: str,
        out: TextIO,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(suite, out, clock)
        self.steps_per_row = 70
        self.steps = 0

    def _step(self, pickle_step_id: str) -> None:
        result = self.storage.must_get_pickle_step_result(pickle_step_id)
        symbol = _SYMBOLS.get(result.status)
        if symbol is not None:
            self.out.write(symbol)
        self.steps += 1
        if self.steps % self.steps_per_row == 0:
            self.out.write(f" {self.steps}\n")

    def passed(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Print the mark for a passed step."""
        super().passed(pickle, step, definition)
        with self.lock:
            self._step(step.id)

    def skipped(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Print the mark for a skipped step."""
        super().skipped(pickle, step, definition)
        with self.lock:
            self._step(step.id)

    def undefined(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Print the mark for an undefined step."""
        super().undefined(pickle, step, definition)
        with self.lock:
            self._step(step.id)

    def failed(
        self, pickle: Pickle, step: PickleStep, definition: Any, err: BaseException
    ) -> None:
        """Print the mark for a failed step."""
        super().failed(pickle, step, definition, err)
        with self.lock:
            self._step(step.id)

    def pending(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Print the mark for a pending step."""
        super().pending(pickle, step, definition)
        with self.lock:
            self._step(step.id)

    def summary(self) -> None:
        """Close the last row, list failed steps and print the base summary."""
        left = self.steps % self.steps_per_row
        if left:
            if self.steps > self.steps_per_row:
                self.out.write(" " * (self.steps_per_row - left) + f" {self.steps}\n")
            else:
                self.out.write(f" {self.steps}\n")

        storage = self.storage
        failed_results = sorted(
            storage.must_get_pickle_step_results_by_status(FAILED),
            key=lambda result: int(result.pickle_step_id),
        )

        lines: list[str] = []
        for result in failed_results:
            if result.status is not FAILED:
                continue
            pickle = storage.must_get_pickle(result.pickle_id)
            pickle_step = storage.must_get_pickle_step(result.pickle_step_id)
            feature = storage.must_get_feature(pickle.uri)

            scenario = feature.find_scenario(pickle.ast_node_ids[0])
            scenario_desc = f"{scenario.keyword}: {pickle.name}"
            scenario_line = f"{pickle.uri}:{scenario.location.line}"

            step = feature.find_step(pickle_step.ast_node_ids[0])
            step_desc = step.keyword.strip() + " " + pickle_step.text
            step_line = f"{pickle.uri}:{step.location.line}"

            lines.extend(
                [
                    "  " + red(scenario_desc) + _blackb(" # " + scenario_line),
                    "    " + red(step_desc) + _blackb(" # " + step_line),
                    "      " + red("Error: ") + _redb(str(result.err)),
                    "",
                ]
            )

        if lines:
            self._println("\n\n--- " + red("Failed steps:") + "\n")
            self.out.write("\n".join(lines))
        self._println("")

        super().summary()


def progress_formatter(suite: str, out: Any) -> Progress:
    """Create a progress formatter."""
    return Progress(suite, out)


register_formatter("progress", "Prints a character per step.", progress_formatter)