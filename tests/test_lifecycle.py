"""Tests for RunLifecycle."""

from __future__ import annotations

import re
import threading
from pathlib import Path

import pytest

from runbox import RunLifecycle, RunRequest, RunState, generate_run_id
from runbox.errors import InputError, InternalError


class TestStartRun:
    """Tests for run registration."""

    def test_new_run_is_running(self, lifecycle: RunLifecycle, task_request: RunRequest) -> None:
        run_id = lifecycle.start_run(task_request)
        assert lifecycle.get_run_state(run_id) is RunState.RUNNING
        assert not lifecycle.get_cancel_token(run_id).cancelled

    def test_plan_request(self, lifecycle: RunLifecycle, workspace: Path) -> None:
        """A plan file alone is a valid request."""
        run_id = lifecycle.start_run(RunRequest(plan_file=Path("plan.md"), workspace=workspace))
        assert lifecycle.get_run_state(run_id) is RunState.RUNNING

    def test_ids_are_unique(self, lifecycle: RunLifecycle, task_request: RunRequest) -> None:
        ids = {lifecycle.start_run(task_request) for _ in range(50)}
        assert len(ids) == 50
        assert lifecycle.run_count() == 50

    def test_rejects_missing_task_and_plan(self, lifecycle: RunLifecycle) -> None:
        with pytest.raises(InputError) as exc_info:
            lifecycle.start_run(RunRequest())
        assert exc_info.value.code == "invalid_run_request"
        assert lifecycle.run_count() == 0

    def test_rejects_task_and_plan(self, lifecycle: RunLifecycle) -> None:
        with pytest.raises(InputError) as exc_info:
            lifecycle.start_run(RunRequest(task_description="x", plan_file=Path("plan.md")))
        assert exc_info.value.code == "invalid_run_request"

    def test_id_collision_retries(self, task_request: RunRequest) -> None:
        """A colliding id is retried with a fresh one."""
        ids = iter(["run-aaaaaaaa", "run-aaaaaaaa", "run-bbbbbbbb"])
        lifecycle = RunLifecycle(id_factory=lambda: next(ids))
        assert lifecycle.start_run(task_request) == "run-aaaaaaaa"
        assert lifecycle.start_run(task_request) == "run-bbbbbbbb"

    def test_id_generation_exhausted(self, task_request: RunRequest) -> None:
        """Running out of attempts is an internal error."""
        lifecycle = RunLifecycle(id_factory=lambda: "run-00000000", max_id_attempts=3)
        lifecycle.start_run(task_request)
        with pytest.raises(InternalError) as exc_info:
            lifecycle.start_run(task_request)
        assert exc_info.value.code == "run_id_generation_failed"
        assert lifecycle.run_count() == 1

    def test_generate_run_id_format(self) -> None:
        assert re.fullmatch(r"run-[0-9a-f]{8}", generate_run_id())


class TestTransitions:
    """Tests for state transitions."""

    def test_cancel_sets_token(self, lifecycle: RunLifecycle, task_request: RunRequest) -> None:
        """Cancelling flips the flag already handed out."""
        run_id = lifecycle.start_run(task_request)
        token = lifecycle.get_cancel_token(run_id)
        assert lifecycle.cancel_run(run_id) is RunState.CANCELLED
        assert token.cancelled
        assert lifecycle.get_run_state(run_id) is RunState.CANCELLED

    def test_complete(self, lifecycle: RunLifecycle, task_request: RunRequest) -> None:
        run_id = lifecycle.start_run(task_request)
        assert lifecycle.mark_completed(run_id) is RunState.COMPLETED
        assert not lifecycle.get_cancel_token(run_id).cancelled

    def test_fail_records_reason(self, lifecycle: RunLifecycle, task_request: RunRequest) -> None:
        run_id = lifecycle.start_run(task_request)
        assert lifecycle.mark_failed(run_id, "tests still failing") is RunState.FAILED
        assert lifecycle.get_record(run_id).failure_reason == "tests still failing"

    @pytest.mark.parametrize("terminal", ["cancel_run", "mark_completed"])
    def test_terminal_states_are_final(
        self, lifecycle: RunLifecycle, task_request: RunRequest, terminal: str
    ) -> None:
        """No transition leaves a terminal state."""
        run_id = lifecycle.start_run(task_request)
        getattr(lifecycle, terminal)(run_id)
        with pytest.raises(InputError) as exc_info:
            lifecycle.cancel_run(run_id)
        assert exc_info.value.code == "invalid_state_transition"
        with pytest.raises(InputError):
            lifecycle.mark_failed(run_id, "late")

    def test_complete_then_cancel_keeps_token_clear(
        self, lifecycle: RunLifecycle, task_request: RunRequest
    ) -> None:
        run_id = lifecycle.start_run(task_request)
        lifecycle.mark_completed(run_id)
        with pytest.raises(InputError):
            lifecycle.cancel_run(run_id)
        assert not lifecycle.get_cancel_token(run_id).cancelled
        assert lifecycle.get_run_state(run_id) is RunState.COMPLETED

    def test_unknown_run(self, lifecycle: RunLifecycle) -> None:
        for call in (
            lambda: lifecycle.get_run_state("run-missing"),
            lambda: lifecycle.get_cancel_token("run-missing"),
            lambda: lifecycle.cancel_run("run-missing"),
        ):
            with pytest.raises(InputError) as exc_info:
                call()
            assert exc_info.value.code == "run_not_found"

    def test_record_snapshot(self, lifecycle: RunLifecycle, task_request: RunRequest) -> None:
        """Snapshots do not track later transitions but share the token."""
        run_id = lifecycle.start_run(task_request)
        snapshot = lifecycle.get_record(run_id)
        lifecycle.cancel_run(run_id)
        assert snapshot.state is RunState.RUNNING
        assert snapshot.cancel_token.cancelled

    def test_concurrent_cancel_has_one_winner(
        self, lifecycle: RunLifecycle, task_request: RunRequest
    ) -> None:
        """Exactly one of many racing cancels succeeds."""
        run_id = lifecycle.start_run(task_request)
        outcomes: list[str] = []
        barrier = threading.Barrier(8)

        def cancel() -> None:
            barrier.wait()
            try:
                lifecycle.cancel_run(run_id)
                outcomes.append("ok")
            except InputError:
                outcomes.append("rejected")

        threads = [threading.Thread(target=cancel) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert outcomes.count("ok") == 1
        assert outcomes.count("rejected") == 7
