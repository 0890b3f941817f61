"""Tests for ProcessRunner."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import pytest

from runbox import CancelToken, ProcessCapture, ProcessRunner
from runbox.errors import CommandFailed, InputError
from runbox.sandbox.process import classify_exit


@pytest.fixture
def runner() -> ProcessRunner:
    return ProcessRunner(poll_interval=0.01)


class TestProcessRunner:
    """Tests for capture, exit codes, timeout and cancellation."""

    async def test_captures_stdout(self, runner: ProcessRunner, temp_dir: Path) -> None:
        """stdout should be captured verbatim."""
        capture = await runner.run("printf 'hello'", temp_dir, timeout=5.0)
        assert capture.exit_code == 0
        assert capture.stdout == "hello"
        assert capture.success

    async def test_captures_stderr_separately(
        self, runner: ProcessRunner, temp_dir: Path
    ) -> None:
        """stderr should not be mixed into stdout."""
        capture = await runner.run("echo out; echo err >&2", temp_dir, timeout=5.0)
        assert capture.stdout == "out\n"
        assert capture.stderr == "err\n"

    async def test_nonzero_exit(self, runner: ProcessRunner, temp_dir: Path) -> None:
        """A failing command is reported, not raised."""
        capture = await runner.run("exit 3", temp_dir, timeout=5.0)
        assert capture.exit_code == 3
        assert not capture.success
        assert not capture.timed_out

    async def test_runs_in_cwd(self, runner: ProcessRunner, temp_dir: Path) -> None:
        """The command should run in the given directory."""
        capture = await runner.run("pwd", temp_dir, timeout=5.0)
        assert Path(capture.stdout.strip()).resolve() == temp_dir

    async def test_stdin_is_closed(self, runner: ProcessRunner, temp_dir: Path) -> None:
        """A command reading stdin should see EOF instead of blocking."""
        capture = await runner.run("cat", temp_dir, timeout=5.0)
        assert capture.exit_code == 0
        assert capture.stdout == ""

    async def test_timeout_kills_command(self, runner: ProcessRunner, temp_dir: Path) -> None:
        """A command exceeding its timeout is killed and flagged."""
        started = time.monotonic()
        capture = await runner.run("sleep 5", temp_dir, timeout=0.1)
        assert capture.timed_out
        assert not capture.cancelled
        assert not capture.success
        assert time.monotonic() - started < 3.0

    async def test_timeout_kills_background_children(
        self, runner: ProcessRunner, temp_dir: Path
    ) -> None:
        """Descendants holding the pipes are killed with the shell."""
        started = time.monotonic()
        capture = await runner.run("sleep 5 & sleep 5; wait", temp_dir, timeout=0.1)
        assert capture.timed_out
        assert time.monotonic() - started < 3.0

    async def test_cancel_before_start(self, runner: ProcessRunner, temp_dir: Path) -> None:
        """A pre-set flag means the command is never spawned."""
        marker = temp_dir / "marker"
        capture = await runner.run(
            f"touch {marker}", temp_dir, timeout=5.0, cancel_token=CancelToken(cancelled=True)
        )
        assert capture.cancelled
        assert capture.duration_ms == 0.0
        assert not marker.exists()

    async def test_cancel_while_running(self, runner: ProcessRunner, temp_dir: Path) -> None:
        """Setting the flag mid-run kills the command within a few polls."""
        token = CancelToken()

        async def cancel_later() -> None:
            await asyncio.sleep(0.1)
            token.cancel()

        started = time.monotonic()
        capture, _ = await asyncio.gather(
            runner.run("sleep 5", temp_dir, timeout=10.0, cancel_token=token),
            cancel_later(),
        )
        assert capture.cancelled
        assert not capture.timed_out
        assert time.monotonic() - started < 3.0

    async def test_cancel_after_shell_exits(self, runner: ProcessRunner, temp_dir: Path) -> None:
        """A background child holding the pipes does not hide cancellation."""
        token = CancelToken()

        async def cancel_later() -> None:
            await asyncio.sleep(0.2)
            token.cancel()

        started = time.monotonic()
        capture, _ = await asyncio.gather(
            runner.run("sleep 30 & echo hi", temp_dir, timeout=30.0, cancel_token=token),
            cancel_later(),
        )
        assert capture.cancelled
        assert not capture.timed_out
        assert not capture.success
        assert capture.stdout == "hi\n"
        assert time.monotonic() - started < 3.0

    async def test_timeout_after_shell_exits(self, runner: ProcessRunner, temp_dir: Path) -> None:
        """A background child holding the pipes is killed at the timeout and flagged."""
        started = time.monotonic()
        capture = await runner.run("sleep 30 & echo hi", temp_dir, timeout=0.2)
        assert capture.timed_out
        assert not capture.cancelled
        assert not capture.success
        assert time.monotonic() - started < 3.0

    async def test_signal_exit_code(self, runner: ProcessRunner, temp_dir: Path) -> None:
        """Death by signal is reported as 128 plus the signal number."""
        capture = await runner.run("kill -9 $$", temp_dir, timeout=5.0)
        assert capture.exit_code == 137

    async def test_output_truncation(self, temp_dir: Path) -> None:
        """Output beyond the per-stream limit is dropped and annotated."""
        runner = ProcessRunner(max_output_bytes=100)
        capture = await runner.run("head -c 1000 /dev/zero | tr '\\0' x", temp_dir, timeout=5.0)
        assert capture.truncated
        assert capture.stdout.startswith("x" * 100)
        assert "[Truncated: 900 bytes removed]" in capture.stdout

    @pytest.mark.parametrize("timeout", [0, -1.0])
    async def test_invalid_timeout(
        self, runner: ProcessRunner, temp_dir: Path, timeout: float
    ) -> None:
        """Non-positive timeouts are rejected before spawning."""
        with pytest.raises(InputError) as exc_info:
            await runner.run("true", temp_dir, timeout=timeout)
        assert exc_info.value.code == "invalid_timeout"


class TestProcessCapture:
    """Tests for ProcessCapture helpers."""

    def test_raise_for_status_success(self) -> None:
        """A successful capture does not raise."""
        ProcessCapture(exit_code=0).raise_for_status()

    def test_raise_for_status_failure(self) -> None:
        """A non-zero exit raises command_failed."""
        with pytest.raises(CommandFailed) as exc_info:
            ProcessCapture(exit_code=2, stderr="boom").raise_for_status()
        assert exc_info.value.code == "command_failed"
        assert "boom" in exc_info.value.message

    def test_raise_for_status_timeout(self) -> None:
        with pytest.raises(CommandFailed, match="command_timed_out"):
            ProcessCapture(exit_code=137, timed_out=True).raise_for_status()

    def test_raise_for_status_cancelled(self) -> None:
        with pytest.raises(CommandFailed, match="command_cancelled"):
            ProcessCapture(cancelled=True).raise_for_status()


def test_classify_exit() -> None:
    """Return codes map to shell-style exit codes."""
    assert classify_exit(0) == 0
    assert classify_exit(2) == 2
    assert classify_exit(-9) == 137
    assert classify_exit(-15) == 143
    assert classify_exit(None) == -1
