"""Step result statuses, run results and terminal colours."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

ColorFunc = Callable[[Any], str]

_ESCAPE = "\x1b"

#: The zero point in time, used where no time has been recorded.
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def _paint(code: int, text: Any) -> str:
    return f"{_ESCAPE}[{code}m{text}{_ESCAPE}[0m"


def black(text: Any) -> str:
    """Wrap text in the black foreground colour."""
    return _paint(30, text)


def red(text: Any) -> str:
    """Wrap text in the red foreground colour."""
    return _paint(31, text)


def green(text: Any) -> str:
    """Wrap text in the green foreground colour."""
    return _paint(32, text)


def yellow(text: Any) -> str:
    """Wrap text in the yellow foreground colour."""
    return _paint(33, text)


def cyan(text: Any) -> str:
    """Wrap text in the cyan foreground colour."""
    return _paint(36, text)


def white(text: Any) -> str:
    """Wrap text in the white foreground colour."""
    return _paint(37, text)


def bold(color: ColorFunc) -> ColorFunc:
    """Return a colour function that also switches on bold intensity."""

    def bold_color(text: Any) -> str:
        return color(text).replace(f"{_ESCAPE}[", f"{_ESCAPE}[1;", 1)

    return bold_color


class StepResultStatus(Enum):
    """The outcome of a single step."""

    PASSED = 0
    FAILED = 1
    SKIPPED = 2
    UNDEFINED = 3
    PENDING = 4

    def __str__(self) -> str:
        return self.name.lower()

    def color(self) -> ColorFunc:
        """Colour function used to print this status."""
        return _STATUS_COLORS.get(self, yellow)


_STATUS_COLORS = {
    StepResultStatus.PASSED: green,
    StepResultStatus.FAILED: red,
    StepResultStatus.SKIPPED: cyan,
}


@dataclass
class TestRunStarted:
    """When the test run started."""

    __test__ = False

    started_at: datetime


@dataclass
class PickleResult:
    """When a pickle (scenario) started running."""

    pickle_id: str
    started_at: datetime


@dataclass
class PickleStepResult:
    """The outcome of one pickle step."""

    pickle_id: str
    pickle_step_id: str
    status: StepResultStatus = StepResultStatus.PASSED
    finished_at: datetime = ZERO_TIME
    err: BaseException | None = None
    definition: Any = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_step_result(
    pickle_id: str,
    pickle_step_id: str,
    match: Any = None,
    clock: Callable[[], datetime] | None = None,
) -> PickleStepResult:
    """Create a passed step result stamped with the current time."""
    now = (clock or _utc_now)()
    return PickleStepResult(
        pickle_id=pickle_id,
        pickle_step_id=pickle_step_id,
        finished_at=now,
        definition=match,
    )