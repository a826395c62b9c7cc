"""Step definitions: matching step arguments to handler parameters."""

from __future__ import annotations

import math
import re
import struct
import typing
from dataclasses import dataclass, field
from typing import Annotated, Any, Callable

from bddreport.feature import PickleDocString, PickleStepArgument, PickleTable


class StepArgumentError(Exception):
    """A step's matched arguments cannot be passed to its handler."""


class UnmatchedStepArgumentNumber(StepArgumentError):
    """The handler takes more arguments than the step matched."""


class CannotConvert(StepArgumentError):
    """A matched argument cannot be converted to the parameter type."""


class UnsupportedArgumentType(StepArgumentError):
    """The handler parameter has a type that steps cannot provide."""


class Context:
    """An immutable bag of values passed between step handlers."""

    def __init__(self, values: dict[Any, Any] | None = None) -> None:
        self._values = dict(values or {})

    def with_value(self, key: Any, value: Any) -> Context:
        """Return a new context holding the value under the key."""
        return Context({**self._values, key: value})

    def value(self, key: Any) -> Any:
        """Return the value stored under the key, or None."""
        return self._values.get(key)


_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_FLOAT_PATTERN = re.compile(
    r"[+-]?(?:(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)
_INT_BITS = (8, 16, 32, 64)
_FLOAT_BITS = (32, 64)
_EMPTY = object()


def _positional_annotations(handler: Callable[..., Any]) -> list[Any]:
    """Return the annotations of the handler's positional parameters."""
    func = getattr(handler, "__func__", handler)
    code = getattr(func, "__code__", None)
    if code is None:
        call = type(handler).__call__
        func = getattr(call, "__func__", call)
        code = func.__code__
        names = list(code.co_varnames[: code.co_argcount])[1:]
    else:
        names = list(code.co_varnames[: code.co_argcount])
        if func is not handler and getattr(handler, "__self__", None) is not None:
            names = names[1:]
    annotations = getattr(func, "__annotations__", {}) or {}
    return [annotations.get(name, _EMPTY) for name in names]


def _unwrap(annotation: Any) -> tuple[Any, int | None]:
    if typing.get_origin(annotation) is Annotated:
        base, *metadata = typing.get_args(annotation)
        bits = next(
            (m for m in metadata if isinstance(m, int) and not isinstance(m, bool)),
            None,
        )
        return base, bits
    return annotation, None


def _parse_int(text: str, bits: int) -> int:
    if not _INT_PATTERN.fullmatch(text):
        raise ValueError(f'parsing "{text}": invalid syntax')
    value = int(text)
    limit = 1 << (bits - 1)
    if not -limit <= value < limit:
        raise ValueError(f'parsing "{text}": value out of range')
    return value


def _parse_float(text: str, bits: int) -> float:
    if not _FLOAT_PATTERN.fullmatch(text):
        raise ValueError(f'parsing "{text}": invalid syntax')
    value = float(text)
    if math.isinf(value) and "inf" not in text.lower():
        raise ValueError(f'parsing "{text}": value out of range')
    if bits == 32:
        try:
            value = struct.unpack("f", struct.pack("f", value))[0]
        except OverflowError:
            raise ValueError(f'parsing "{text}": value out of range') from None
    return value


def _type_name(annotation: Any) -> str:
    return getattr(annotation, "__name__", None) or repr(annotation)


def _is_context(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, Context)


@dataclass
class StepDefinition:
    """A step handler with the arguments matched from a step's text."""

    handler: Callable[..., Any]
    expr: re.Pattern[str] | None = None
    args: list[Any] = field(default_factory=list)
    nested: bool = False
    undefined: list[str] = field(default_factory=list)

    def run(self, ctx: Context) -> tuple[Context, Any]:
        """Call the handler with converted arguments.

        Returns the (possibly updated) context and whatever the handler
        reported besides it. Raises StepArgumentError subclasses when the
        matched arguments do not fit the handler's parameters.
        """
        params = _positional_annotations(self.handler)
        total = len(params)
        values: list[Any] = []
        if params and _is_context(params[0]):
            values.append(ctx)
            params = params[1:]

        if len(self.args) < len(params):
            raise UnmatchedStepArgumentNumber(
                "func received more arguments than expected: "
                f"expected {total} arguments, matched {len(self.args)} from step"
            )

        values.extend(
            self._convert(index, annotation) for index, annotation in enumerate(params)
        )
        return self._unpack(ctx, self.handler(*values))

    @staticmethod
    def _unpack(ctx: Context, result: Any) -> tuple[Context, Any]:
        if result is None:
            return ctx, None
        if isinstance(result, Context):
            return result, None
        if isinstance(result, tuple) and len(result) == 2 and isinstance(result[0], Context):
            return result[0], result[1]
        return ctx, result

    def _convert(self, index: int, annotation: Any) -> Any:
        if annotation is _EMPTY:
            return self._string_arg(index)
        base, bits = _unwrap(annotation)

        if base is str:
            return self._string_arg(index)
        if base is bytes:
            return self._string_arg(index).encode()
        if base is int and (bits is None or bits in _INT_BITS):
            name = "int" if bits is None else f"int{bits}"
            return self._parse(index, name, _parse_int, bits or 64)
        if base is float and (bits is None or bits in _FLOAT_BITS):
            return self._parse(index, f"float{bits or 64}", _parse_float, bits or 64)
        if base is PickleDocString:
            return self._gherkin_arg(index, PickleDocString, "doc_string")
        if base is PickleTable:
            return self._gherkin_arg(index, PickleTable, "data_table")

        raise UnsupportedArgumentType(
            f"unsupported argument type: the argument {index} type "
            f"{_type_name(annotation)} is not supported"
        )

    def _parse(
        self, index: int, name: str, parse: Callable[[str, int], Any], bits: int
    ) -> Any:
        text = self._string_arg(index)
        try:
            return parse(text, bits)
        except ValueError as exc:
            raise CannotConvert(
                f'cannot convert argument {index}: "{text}" to {name}: {exc}'
            ) from exc

    def _gherkin_arg(self, index: int, kind: type, attribute: str) -> Any:
        arg = self.args[index]
        if isinstance(arg, PickleStepArgument):
            return getattr(arg, attribute)
        if isinstance(arg, kind):
            return arg
        raise CannotConvert(
            f'cannot convert argument {index}: "{arg}" of type '
            f'"{type(arg).__name__}" to {kind.__name__}'
        )

    def _string_arg(self, index: int) -> str:
        arg = self.args[index]
        if isinstance(arg, str):
            return arg
        if isinstance(arg, PickleStepArgument):
            if arg.doc_string is None:
                raise CannotConvert(
                    f'cannot convert argument {index}: "{arg}" of type '
                    f'"{type(arg).__name__}": DocString is not set'
                )
            return arg.doc_string.content
        if isinstance(arg, PickleDocString):
            return arg.content
        raise CannotConvert(
            f'cannot convert argument {index}: "{arg}" of type '
            f'"{type(arg).__name__}" to string'
        )