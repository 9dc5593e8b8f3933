from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence, Union

from ..config import DEFAULT_OPTIONS, RunOptions
from ..errors import EvaluationError, ExecutionCancelled

Number = Union[int, float]
Value = Union[int, float, str]

OutputSink = Callable[[str], None]

BuiltinImpl = Callable[[Sequence[Value]], Number]

_PLACEHOLDER_RE = re.compile(r"%([-+ #0]*\d*(?:\.\d+)?)(?:hh|h|ll|l)?([diufxXcs%])")


@dataclass
class BuiltinFunction:
    name: str
    arity: int
    impl: BuiltinImpl


class CancellationToken:
    """Cooperative stop flag, checked by the interpreter at every yield point."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise ExecutionCancelled()


@dataclass
class RuntimeContext:
    sink: OutputSink
    options: RunOptions = DEFAULT_OPTIONS
    cancel: CancellationToken = field(default_factory=CancellationToken)

    def emit(self, text: str) -> None:
        if text:
            self.sink(text)


def as_number(value: Value) -> Number:
    if isinstance(value, str):
        raise EvaluationError(f"expected a number, got string {value!r}")
    return value


def _builtin_pow(args: Sequence[Value]) -> Number:
    base, exponent = (as_number(arg) for arg in args)
    try:
        return math.pow(base, exponent)
    except (OverflowError, ValueError) as exc:
        raise EvaluationError(f"pow({base}, {exponent}): {exc}") from exc


BUILTINS: Mapping[str, BuiltinFunction] = {
    "pow": BuiltinFunction(name="pow", arity=2, impl=_builtin_pow),
}


def format_number(value: Number) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_printf(fmt: str, args: Sequence[Value]) -> str:
    """Substitute printf placeholders left to right; surplus placeholders print nothing."""
    values = iter(args)

    def substitute(match: re.Match) -> str:
        flags, conv = match.groups()
        if conv == "%":
            return "%"
        try:
            value = next(values)
        except StopIteration:
            return ""
        return _format_one(flags, conv, value)

    return _PLACEHOLDER_RE.sub(substitute, fmt)


def _format_one(flags: str, conv: str, value: Value) -> str:
    if conv == "s":
        text = value if isinstance(value, str) else format_number(value)
        return f"%{flags}s" % text
    if isinstance(value, str):
        return value
    try:
        if conv in "diu":
            return f"%{flags}d" % int(value)
        if conv in "xX":
            return f"%{flags}{conv}" % int(value)
        if conv == "f":
            return f"%{flags}f" % float(value)
        return chr(int(value))
    except (OverflowError, ValueError):
        return format_number(value)
