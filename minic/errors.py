from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorReason(str, Enum):
    NOT_FOUND = "not_found"
    IS_A_DIRECTORY = "is_a_directory"
    NOT_A_DIRECTORY = "not_a_directory"
    ALREADY_EXISTS = "already_exists"
    INVALID = "invalid"


_REASON_TEXT = {
    ErrorReason.NOT_FOUND: "No such file or directory",
    ErrorReason.IS_A_DIRECTORY: "Is a directory",
    ErrorReason.NOT_A_DIRECTORY: "Not a directory",
    ErrorReason.ALREADY_EXISTS: "File exists",
    ErrorReason.INVALID: "Invalid argument",
}


@dataclass(frozen=True)
class VfsError:
    """
    A structural filesystem error, returned to the shell instead of raised.

    `command` and `operand` are what the user typed; `action` is the verb
    phrase the shell puts in front of the operand ("cannot create directory").
    """

    reason: ErrorReason
    command: str
    operand: str
    action: str | None = None
    detail: str | None = None

    def __str__(self) -> str:
        return self.format_human()

    @property
    def message(self) -> str:
        return self.detail or _REASON_TEXT[self.reason]

    def to_dict(self) -> dict[str, Any]:
        return {
            "reason": self.reason.value,
            "command": self.command,
            "operand": self.operand,
            "action": self.action,
            "message": self.message,
        }

    def format_human(self) -> str:
        if self.action:
            return f"{self.command}: {self.action} '{self.operand}': {self.message}"
        return f"{self.command}: {self.operand}: {self.message}"


class InterpreterError(Exception):
    """Base for the interpreter's internal control exceptions; none escape `run`."""


class EvaluationError(InterpreterError):
    """An expression could not be evaluated; callers degrade it to 0."""


class ExecutionCancelled(InterpreterError):
    pass


class RecursionLimitExceeded(InterpreterError):
    def __init__(self, function: str, depth: int) -> None:
        super().__init__(f"{function} exceeded call depth {depth}")
        self.function = function
        self.depth = depth
