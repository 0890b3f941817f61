"""
Run lifecycle registry.

Tracks every run started in this process and owns each run's cancellation
flag. States move Created -> Running -> one of Completed, Failed, Cancelled;
terminal states are final. Records are kept for the life of the process.
"""

from __future__ import annotations

import dataclasses
import logging
import secrets
import threading
from typing import Callable

from runbox._types import CancelToken, RunRecord, RunRequest, RunState
from runbox.errors import InputError, InternalError

MAX_ID_ATTEMPTS = 16


def generate_run_id() -> str:
    """Return a random id of the form ``run-1a2b3c4d``."""
    return f"run-{secrets.token_hex(4)}"


class RunLifecycle:
    """
    Thread-safe registry of runs.

    Every read and write happens under one lock. The cancellation flag handed
    out by ``get_cancel_token`` is the only object shared outside the lock;
    ``cancel_run`` is its only writer.

    Example:
        >>> lifecycle = RunLifecycle()
        >>> run_id = lifecycle.start_run(RunRequest(task_description="fix the tests"))
        >>> token = lifecycle.get_cancel_token(run_id)
        >>> lifecycle.cancel_run(run_id)
        <RunState.CANCELLED: 'cancelled'>
        >>> token.cancelled
        True
    """

    def __init__(
        self,
        *,
        id_factory: Callable[[], str] = generate_run_id,
        max_id_attempts: int = MAX_ID_ATTEMPTS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._id_factory = id_factory
        self._max_id_attempts = max_id_attempts
        self._lock = threading.Lock()
        self._runs: dict[str, RunRecord] = {}
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    def start_run(self, request: RunRequest) -> str:
        """
        Register a new run and move it to Running.

        Returns:
            The new run id.

        Raises:
            InputError: ``invalid_run_request`` unless exactly one of task
                description or plan file is given.
            InternalError: ``run_id_generation_failed`` if no unused id was
                produced within the attempt budget.
        """
        has_task = request.task_description is not None
        has_plan = request.plan_file is not None
        if not has_task and not has_plan:
            raise InputError(
                "Run request must include task or plan file.", code="invalid_run_request"
            )
        if has_task and has_plan:
            raise InputError(
                "Run request cannot include both task and plan file.",
                code="invalid_run_request",
            )

        with self._lock:
            for _ in range(self._max_id_attempts):
                run_id = self._id_factory()
                if run_id in self._runs:
                    continue

                record = RunRecord(run_id=run_id, request=request)
                self._runs[run_id] = record
                record.state = RunState.RUNNING
                self.logger.info(
                    "run %s transition %s -> %s",
                    run_id,
                    RunState.CREATED.value,
                    RunState.RUNNING.value,
                )
                return run_id

        raise InternalError("Unable to allocate unique run ID.", code="run_id_generation_failed")

    def cancel_run(self, run_id: str) -> RunState:
        """Move a running run to Cancelled and set its cancellation flag."""
        return self._transition(run_id, RunState.CANCELLED)

    def mark_completed(self, run_id: str) -> RunState:
        """Move a running run to Completed."""
        return self._transition(run_id, RunState.COMPLETED)

    def mark_failed(self, run_id: str, reason: str) -> RunState:
        """Move a running run to Failed, recording ``reason``."""
        return self._transition(run_id, RunState.FAILED, failure_reason=reason)

    def get_run_state(self, run_id: str) -> RunState:
        with self._lock:
            return self._get(run_id).state

    def get_cancel_token(self, run_id: str) -> CancelToken:
        with self._lock:
            return self._get(run_id).cancel_token

    def get_record(self, run_id: str) -> RunRecord:
        """Return a snapshot of the record. The cancel token is shared, not copied."""
        with self._lock:
            return dataclasses.replace(self._get(run_id))

    def run_count(self) -> int:
        with self._lock:
            return len(self._runs)

    def _get(self, run_id: str) -> RunRecord:
        record = self._runs.get(run_id)
        if record is None:
            raise InputError(f"Run ID not found: {run_id}", code="run_not_found")
        return record

    def _transition(
        self, run_id: str, next_state: RunState, *, failure_reason: str | None = None
    ) -> RunState:
        with self._lock:
            record = self._get(run_id)
            if record.state.is_terminal:
                raise InputError(
                    f"Run is already terminal: {record.state.value}",
                    code="invalid_state_transition",
                )

            previous = record.state
            record.state = next_state
            record.failure_reason = failure_reason
            if next_state is RunState.CANCELLED:
                record.cancel_token.cancel()
            self.logger.info(
                "run %s transition %s -> %s", run_id, previous.value, next_state.value
            )
            return record.state
