"""The base formatter, the formatter registry and step definition ids."""

from __future__ import annotations

import functools
import inspect
import os
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol, TextIO

from bddreport.feature import (
    GherkinDocument,
    Pickle,
    PickleDocString,
    PickleStep,
    PickleStepArgument,
    PickleTable,
)
from bddreport.results import (
    PickleResult,
    PickleStepResult,
    StepResultStatus,
    TestRunStarted,
    cyan,
    green,
    red,
    yellow,
)
from bddreport.stepdef import StepDefinition

TESTED_PACKAGE_ENV = "BDDREPORT_TESTED_PACKAGE"
SEED_ENV = "BDDREPORT_SEED"

PASSED = StepResultStatus.PASSED
FAILED = StepResultStatus.FAILED
SKIPPED = StepResultStatus.SKIPPED
UNDEFINED = StepResultStatus.UNDEFINED
PENDING = StepResultStatus.PENDING


class _Storage(Protocol):
    def must_get_test_run_started(self) -> TestRunStarted: ...

    def must_get_pickle_results(self) -> list[PickleResult]: ...

    def must_get_pickle_result(self, pickle_id: str) -> PickleResult: ...

    def must_get_pickle_step_results_by_pickle_id(
        self, pickle_id: str
    ) -> list[PickleStepResult]: ...

    def must_get_pickle_step_results_by_status(
        self, status: StepResultStatus
    ) -> list[PickleStepResult]: ...

    def must_get_pickle_step_result(self, pickle_step_id: str) -> PickleStepResult: ...

    def must_get_pickle_step(self, pickle_step_id: str) -> PickleStep: ...

    def must_get_pickle(self, pickle_id: str) -> Pickle: ...

    def must_get_pickles(self, uri: str) -> list[Pickle]: ...

    def must_get_feature(self, uri: str) -> Any: ...

    def must_get_features(self) -> list[Any]: ...


FormatterFactory = Callable[[str, TextIO], Any]


@dataclass(frozen=True)
class _RegisteredFormatter:
    name: str
    description: str
    factory: FormatterFactory


_registry: dict[str, _RegisteredFormatter] = {}


def register_formatter(name: str, description: str, factory: FormatterFactory) -> None:
    """Register a formatter factory under a name."""
    _registry[name] = _RegisteredFormatter(name, description, factory)


def find_formatter(name: str) -> FormatterFactory | None:
    """Return the factory registered under the name, or None."""
    registered = _registry.get(name)
    return registered.factory if registered is not None else None


def formatter_descriptions() -> dict[str, str]:
    """Return the description of every registered formatter, by name."""
    return {name: reg.description for name, reg in _registry.items()}


def _handler_code(handler: Any) -> tuple[Any, Any]:
    func = handler
    while isinstance(func, functools.partial):
        func = func.func
    func = getattr(func, "__func__", func)
    func = inspect.unwrap(func)
    code = getattr(func, "__code__", None)
    if code is None:
        call = getattr(type(func), "__call__", None)
        code = getattr(getattr(call, "__func__", call), "__code__", None)
        func = type(func)
    return func, code


def definition_id(sd: StepDefinition) -> str:
    """Return "<file>:<line> -> <function>" for a step definition's handler."""
    func, code = _handler_code(sd.handler)
    if code is not None:
        file, line = os.path.basename(code.co_filename), code.co_firstlineno
    else:
        file, line = "?", 0

    name = getattr(func, "__qualname__", None) or getattr(func, "__name__", "?")
    name = name.replace("<locals>.", "")
    module = (getattr(func, "__module__", "") or "").rpartition(".")[2]
    fn = f"{module}.{name}" if module else name
    fn = fn.strip("_.") if not name.startswith("_") else fn

    package = os.environ.get(TESTED_PACKAGE_ENV, "")
    if package:
        fn = fn.replace(package, "", 1).lstrip(".").replace("..", ".")

    return f"{file}:{line} -> {fn}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _with_fraction(value: int, digits: int) -> str:
    scale = 10**digits
    whole, frac = divmod(value, scale)
    text = str(whole)
    if frac:
        text += "." + str(frac).zfill(digits).rstrip("0")
    return text


def _format_duration(elapsed: timedelta) -> str:
    ns = ((elapsed.days * 86400 + elapsed.seconds) * 1_000_000 + elapsed.microseconds) * 1000
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    u = abs(ns)
    if u < 1_000:
        return f"{sign}{u}ns"
    if u < 1_000_000:
        return f"{sign}{_with_fraction(u, 3)}µs"
    if u < 1_000_000_000:
        return f"{sign}{_with_fraction(u, 6)}ms"
    hours, u = divmod(u, 3600 * 10**9)
    minutes, u = divmod(u, 60 * 10**9)
    seconds = _with_fraction(u, 9) + "s"
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{sign}{minutes}m{seconds}"
    return f"{sign}{seconds}"


_SNIPPET_EXPR_CLEANUP = re.compile(r"([/\[\]()\\^$.|?*+'])")
_SNIPPET_NUMBERS = re.compile(r"(\d+)")
_SNIPPET_EXPR_QUOTED = re.compile(r'(\s*|^)"(?:[^"]*)"(\s+|$)')
_SNIPPET_METHOD_NAME = re.compile(r"[^a-zA-Z_ ]")

_INT_GROUP = r"(\d+)"
_STRING_GROUP = '"([^"]*)"'
_SNIPPET_GROUPS = re.compile(re.escape(_INT_GROUP) + "|" + re.escape(_STRING_GROUP))


@dataclass
class _UndefinedSnippet:
    method: str
    expr: str
    argument: PickleStepArgument | None

    def params(self) -> list[str]:
        params = []
        for match in _SNIPPET_GROUPS.finditer(self.expr):
            kind = "int" if match.group(0) == _INT_GROUP else "str"
            params.append(f"arg{len(params) + 1}: {kind}")
        if self.argument is not None:
            if self.argument.doc_string is not None:
                params.append(f"arg{len(params) + 1}: {PickleDocString.__name__}")
            if self.argument.data_table is not None:
                params.append(f"arg{len(params) + 1}: {PickleTable.__name__}")
        return params


def _method_name(step: str) -> str:
    name = _SNIPPET_NUMBERS.sub(" ", step)
    name = _SNIPPET_EXPR_QUOTED.sub(" ", name)
    name = _SNIPPET_METHOD_NAME.sub("", name).strip()
    words = []
    for i, word in enumerate(name.split(" ")):
        if i != 0:
            word = word[:1].upper() + word[1:]
        elif word:
            word = word[0].lower() + word[1:]
        words.append(word)
    return "".join(words)


def _step_expression(step: str) -> str:
    expr = _SNIPPET_EXPR_CLEANUP.sub(r"\\\1", step)
    expr = _SNIPPET_NUMBERS.sub(r"(\\d+)", expr)
    expr = _SNIPPET_EXPR_QUOTED.sub(r'\1"([^"]*)"\2', expr)
    return "^" + expr.strip() + "$"


def _render_snippets(snippets: list[_UndefinedSnippet]) -> str:
    lines: list[str] = []
    for snip in snippets:
        lines.append(f"def {snip.method}({', '.join(snip.params())}):")
        lines.append('    raise NotImplementedError("pending")')
        lines.append("")
    lines.append("def initialize_scenario(ctx):")
    for snip in snippets:
        lines.append(f"    ctx.step(r'{snip.expr}', {snip.method})")
    return "\n".join(lines) + "\n"


class Base:
    """A formatter that records nothing per step and prints a summary."""

    def __init__(
        self,
        suite: str,
        out: TextIO,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.suite_name = suite
        self.out = out
        self.indent = 2
        self.clock = clock or _utc_now
        self.storage: _Storage | None = None
        self.lock = threading.Lock()

    def _println(self, *parts: Any) -> None:
        print(*parts, file=self.out)

    def set_storage(self, storage: _Storage) -> None:
        """Assign the storage holding gherkin data and results."""
        with self.lock:
            self.storage = storage

    def test_run_started(self) -> None:
        """Called when the test run starts."""

    def feature(self, document: GherkinDocument, path: str, content: bytes) -> None:
        """Receive a parsed gherkin document."""

    def pickle(self, pickle: Pickle) -> None:
        """Receive a scenario about to run."""

    def defined(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Receive a step with its definition."""

    def passed(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Receive a passed step."""

    def skipped(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Receive a skipped step."""

    def undefined(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Receive an undefined step."""

    def failed(
        self, pickle: Pickle, step: PickleStep, definition: Any, err: BaseException
    ) -> None:
        """Receive a failed step."""

    def pending(self, pickle: Pickle, step: PickleStep, definition: Any) -> None:
        """Receive a pending step."""

    def summary(self) -> None:
        """Print scenario and step counts, elapsed time, seed and snippets."""
        storage = self.storage
        total_sc = passed_sc = undefined_sc = 0
        counts = dict.fromkeys(StepResultStatus, 0)
        total_st = 0

        for pickle_result in storage.must_get_pickle_results():
            total_sc += 1
            step_results = storage.must_get_pickle_step_results_by_pickle_id(
                pickle_result.pickle_id
            )
            status = PASSED if step_results else UNDEFINED
            for result in step_results:
                total_st += 1
                counts[result.status] += 1
                if result.status is not SKIPPED:
                    status = result.status
            if status is PASSED:
                passed_sc += 1
            elif status is UNDEFINED:
                undefined_sc += 1

        steps: list[str] = []
        parts: list[str] = []
        if counts[PASSED]:
            steps.append(green(f"{counts[PASSED]} passed"))
        if counts[FAILED]:
            parts.append(red(f"{counts[FAILED]} failed"))
            steps.append(red(f"{counts[FAILED]} failed"))
        if counts[PENDING]:
            parts.append(yellow(f"{counts[PENDING]} pending"))
            steps.append(yellow(f"{counts[PENDING]} pending"))
        if counts[UNDEFINED]:
            parts.append(yellow(f"{undefined_sc} undefined"))
            steps.append(yellow(f"{counts[UNDEFINED]} undefined"))
        elif undefined_sc:
            parts.append(yellow(f"{undefined_sc} undefined"))
        if counts[SKIPPED]:
            steps.append(cyan(f"{counts[SKIPPED]} skipped"))
        scenarios = [green(f"{passed_sc} passed")] if passed_sc else []
        scenarios.extend(parts)

        elapsed = self.clock() - storage.must_get_test_run_started().started_at

        self._println("")
        if total_sc == 0:
            self._println("No scenarios")
        else:
            self._println(f"{total_sc} scenarios ({', '.join(scenarios)})")
        if total_st == 0:
            self._println("No steps")
        else:
            self._println(f"{total_st} steps ({', '.join(steps)})")
        self._println(_format_duration(elapsed))

        try:
            seed = int(os.environ.get(SEED_ENV, ""))
        except ValueError:
            seed = 0
        if seed:
            self._println("")
            self._println("Randomized with seed:", yellow(seed))

        text = self.snippets()
        if text:
            self._println("")
            self._println(
                yellow("You can implement step definitions for undefined steps with these snippets:")
            )
            self._println(yellow(text))

    def snippets(self) -> str:
        """Return code suggestions for undefined steps, or an empty string."""
        undefined_results = self.storage.must_get_pickle_step_results_by_status(UNDEFINED)
        if not undefined_results:
            return ""

        index = 0
        snippets: list[_UndefinedSnippet] = []
        for result in undefined_results:
            pickle_step = self.storage.must_get_pickle_step(result.pickle_step_id)
            texts = [pickle_step.text]
            argument = pickle_step.argument
            if result.definition is not None:
                texts = list(result.definition.undefined)
                argument = None
            for text in texts:
                expr = _step_expression(text)
                name = _method_name(text)
                if not name:
                    index += 1
                    name = f"StepDefinitioninition{index}"
                if all(snip.expr != expr for snip in snippets):
                    snippets.append(_UndefinedSnippet(name, expr, argument))

        snippets.sort(key=lambda snip: snip.method)
        return _render_snippets(snippets).replace(" \n", "\n")


def base_formatter(suite: str, out: TextIO) -> Base:
    """Create a base formatter."""
    return Base(suite, out)