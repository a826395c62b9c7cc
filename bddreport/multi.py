"""A formatter that passes test progress on to several formatters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TextIO

# The formatter modules register themselves when imported.
from bddreport import cucumber, events, junit, pretty, progress  # noqa: F401
from bddreport.base import FormatterFactory, find_formatter
from bddreport.feature import GherkinDocument, Pickle, PickleStep


class Repeater(list):
    """A list of formatters that receives every event and hands it on to each."""

    def set_storage(self, storage: Any) -> None:
        """Pass the storage to every formatter that accepts one."""
        for formatter in self:
            setter = getattr(formatter, "set_storage", None)
            if callable(setter):
                setter(storage)

    def test_run_started(self) -> None:
        """Signal the start of the run to every formatter."""
        for formatter in self:
            formatter.test_run_started()

    def feature(self, document: GherkinDocument, path: str, content: bytes) -> None:
        """Pass a gherkin document to every formatter."""
        for formatter in self:
            formatter.feature(document, path, content)

    def pickle(self, pickle: Pickle) -> None:
        """Pass a scenario to every formatter."""
        for formatter in self:
            formatter.pickle(pickle)

    def defined(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Pass a defined step to every formatter."""
        for formatter in self:
            formatter.defined(pickle, step, definition)

    def failed(
        self, pickle: Pickle, step: PickleStep, definition: Any, err: BaseException
    ) -> None:
        """Pass a failed step to every formatter."""
        for formatter in self:
            formatter.failed(pickle, step, definition, err)

    def passed(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Pass a passed step to every formatter."""
        for formatter in self:
            formatter.passed(pickle, step, definition)

    def skipped(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Pass a skipped step to every formatter."""
        for formatter in self:
            formatter.skipped(pickle, step, definition)

    def undefined(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Pass an undefined step to every formatter."""
        for formatter in self:
            formatter.undefined(pickle, step, definition)

    def pending(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Pass a pending step to every formatter."""
        for formatter in self:
            formatter.pending(pickle, step, definition)

    def summary(self) -> None:
        """Ask every formatter for its summary."""
        for formatter in self:
            formatter.summary()


@dataclass(frozen=True)
class _Entry:
    factory: FormatterFactory
    out: TextIO | None


class MultiFormatter:
    """Collects named formatters, each with an optional output of its own."""

    def __init__(self) -> None:
        self._entries: list[_Entry] = []
        self.repeater = Repeater()

    def add(self, name: str, out: TextIO | None = None) -> None:
        """Add the formatter registered under the name, writing to out if given."""
        factory = find_formatter(name)
        if factory is None:
            raise ValueError("formatter not found: " + name)
        self._entries.append(_Entry(factory, out))

    def formatter_func(self, suite: str, out: TextIO) -> Repeater:
        """Create every added formatter and return the repeater holding them."""
        for entry in self._entries:
            target = entry.out if entry.out is not None else out
            self.repeater.append(entry.factory(suite, target))
        return self.repeater