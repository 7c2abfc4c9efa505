"""Error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ErrorCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    OPERATION_FAULT = 5
    TIMEOUT = 6


@dataclass
class BoundRetryError(Exception):
    message: str
    code: ErrorCode = ErrorCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class InvalidConfiguration(BoundRetryError):
    """Retry configuration cannot be executed."""

    code: ErrorCode = ErrorCode.CONFIG_ERROR


@dataclass
class OperationFault(BoundRetryError):
    """Operation raised while the fault policy asks to propagate."""

    code: ErrorCode = ErrorCode.OPERATION_FAULT
    attempt: int = 0


class AttemptCancelled(Exception):
    """Raised inside a cancellation-aware operation once its attempt was abandoned."""


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
