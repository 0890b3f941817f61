"""
Core type definitions for runbox.

Uses dataclasses for lightweight, typed records shared between components.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from runbox.errors import CommandFailed

# Exit code reported when a process ended without a normal exit or signal.
ABNORMAL_EXIT = -1


class CancelToken:
    """
    Cancellation flag shared by a run and its in-flight commands.

    Flips from clear to set exactly once in practice. Readers poll it, so
    cancellation is advisory: it is observed at poll granularity, not
    enforced the instant it is set.
    """

    __slots__ = ("_event",)

    def __init__(self, cancelled: bool = False) -> None:
        self._event = threading.Event()
        if cancelled:
            self._event.set()

    def cancel(self) -> None:
        """Set the flag. Safe to call from any thread, any number of times."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """True once the flag has been set."""
        return self._event.is_set()

    def __bool__(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.cancelled})"


class RunState(Enum):
    """Lifecycle state of a run."""

    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED)


@dataclass(frozen=True, slots=True)
class RunRequest:
    """Validated input needed to start a run. Exactly one of task or plan is set."""

    task_description: str | None = None
    plan_file: Path | None = None
    workspace: Path = field(default_factory=Path.cwd)
    max_steps: int = 30
    verbose: bool = False


@dataclass(slots=True)
class RunRecord:
    """Registry entry for a single run."""

    run_id: str
    request: RunRequest
    state: RunState = RunState.CREATED
    failure_reason: str | None = None
    cancel_token: CancelToken = field(default_factory=CancelToken)


@dataclass(frozen=True, slots=True)
class ProcessCapture:
    """Immutable result of one subprocess invocation."""

    exit_code: int = ABNORMAL_EXIT
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    cancelled: bool = False
    duration_ms: float = 0.0
    truncated: bool = False

    @property
    def success(self) -> bool:
        """True if the command exited 0 and was neither timed out nor cancelled."""
        return self.exit_code == 0 and not self.timed_out and not self.cancelled

    def raise_for_status(self) -> None:
        """Raise CommandFailed unless the command succeeded."""
        if self.cancelled:
            raise CommandFailed("Command cancelled.", code="command_cancelled")
        if self.timed_out:
            raise CommandFailed("Command timed out.", code="command_timed_out")
        if self.exit_code != 0:
            raise CommandFailed(
                f"Command failed with exit code {self.exit_code}: {self.stderr or self.stdout}",
                code="command_failed",
            )


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Uniform response of every tool call."""

    tool: str
    success: bool
    output: str = ""
    error_message: str = ""
    duration_ms: float = 0.0

    def render(self) -> str:
        """Format the result as text for a language model."""
        if self.success:
            return self.output
        return f"Error: {self.error_message or 'tool call failed'}"
