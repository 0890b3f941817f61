"""
Hard errors raised by runbox.

A hard error means the call could not proceed at all: a policy violation,
invalid input, or an infrastructure fault. An operation that ran but did not
succeed is reported through ``ToolResult.success`` instead and never raised.
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(Enum):
    """Broad classification of a hard error."""

    INPUT = "input"
    EXECUTION = "execution"
    PROVIDER = "provider"
    POLICY = "policy"
    INTERNAL = "internal"


class RunboxError(Exception):
    """
    Base class for every hard error.

    Attributes:
        code: Stable machine-readable code, e.g. ``path_outside_workspace``.
        message: Human readable description.
        hint: Optional advice for the caller.
        category: Error category.
    """

    category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(self, message: str, *, code: str = "unknown_error", hint: str = "") -> None:
        self.message = message
        self.code = code
        self.hint = hint
        super().__init__(f"[{code}] {message}")


class InputError(RunboxError):
    """The caller supplied input that cannot be acted on."""

    category = ErrorCategory.INPUT


class PolicyViolation(RunboxError):
    """
    Raised when a path or command violates the policy.

    Attributes:
        target: The path or command that was rejected.
    """

    category = ErrorCategory.POLICY

    def __init__(self, message: str, *, code: str, target: str = "", hint: str = "") -> None:
        self.target = target
        super().__init__(message, code=code, hint=hint)


class ExecutionError(RunboxError):
    """A command could not be executed, or failed when success was required."""

    category = ErrorCategory.EXECUTION


class CommandFailed(ExecutionError):
    """Raised by ``ProcessCapture.raise_for_status`` for an unsuccessful command."""


class InternalError(RunboxError):
    """An infrastructure fault: pipes, processes, temp files, id allocation."""

    category = ErrorCategory.INTERNAL


__all__ = [
    "ErrorCategory",
    "RunboxError",
    "InputError",
    "PolicyViolation",
    "ExecutionError",
    "CommandFailed",
    "InternalError",
]
