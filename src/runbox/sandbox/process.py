"""
Subprocess execution pipeline.

Runs one shell command with both output streams captured, a wall-clock
timeout, and a cooperative cancellation flag. A single polling loop
interleaves the three event sources (pipe data, timeout, cancellation), so
neither a chatty child nor a silent one can delay noticing the other two by
more than one poll interval.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import signal
import subprocess
import time
from pathlib import Path

from runbox._types import ABNORMAL_EXIT, CancelToken, ProcessCapture
from runbox.errors import InputError, InternalError

_STDOUT = 1
_STDERR = 2

# errno values that mean the pipes could not be created, not the child
_PIPE_ERRNOS = frozenset({errno.EMFILE, errno.ENFILE})


class _CaptureProtocol(asyncio.SubprocessProtocol):
    """Accumulates both pipes and flags every state change on ``activity``."""

    def __init__(self, max_output_bytes: int) -> None:
        self.buffers = {_STDOUT: bytearray(), _STDERR: bytearray()}
        self.dropped = {_STDOUT: 0, _STDERR: 0}
        self.open_fds = {_STDOUT, _STDERR}
        self.activity = asyncio.Event()
        self._max_output_bytes = max_output_bytes

    def pipe_data_received(self, fd: int, data: bytes) -> None:
        buffer = self.buffers[fd]
        room = max(self._max_output_bytes - len(buffer), 0)
        if len(data) > room:
            self.dropped[fd] += len(data) - room
            data = data[:room]
        buffer.extend(data)
        self.activity.set()

    def pipe_connection_lost(self, fd: int, exc: Exception | None) -> None:
        self.open_fds.discard(fd)
        self.activity.set()

    def process_exited(self) -> None:
        self.activity.set()

    @property
    def truncated(self) -> bool:
        return any(self.dropped.values())

    def text(self, fd: int) -> str:
        text = self.buffers[fd].decode("utf-8", errors="replace")
        if self.dropped[fd]:
            text += f"\n\n[Truncated: {self.dropped[fd]} bytes removed]"
        return text


def classify_exit(returncode: int | None) -> int:
    """Map an asyncio return code to an exit code: signals become 128 + signo."""
    if returncode is None:
        return ABNORMAL_EXIT
    if returncode < 0:
        return 128 - returncode
    return returncode


class ProcessRunner:
    """
    Spawns shell commands and captures their output.

    Failure of the command itself (non-zero exit, timeout, cancellation) is
    reported in the returned ProcessCapture. Only failure to start the
    command at all is raised.

    Example:
        >>> runner = ProcessRunner()
        >>> capture = await runner.run("ls", Path("."), timeout=5.0)
        >>> print(capture.stdout)
    """

    def __init__(
        self,
        *,
        poll_interval: float = 0.05,
        max_output_bytes: int = 10 * 1024 * 1024,
        drain_grace: float = 1.0,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize a runner.

        Args:
            poll_interval: Upper bound, in seconds, on how long one loop
                iteration waits for pipe activity. Bounds the latency of
                observing cancellation and timeout.
            max_output_bytes: Maximum bytes kept per stream. Excess output
                is still drained but discarded.
            drain_grace: Seconds to keep reading after the process group was
                killed before giving up on pipes held by escaped descendants.
            logger: Logger to report to. Defaults to the module logger.
        """
        self.poll_interval = poll_interval
        self.max_output_bytes = max_output_bytes
        self.drain_grace = drain_grace
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    async def run(
        self,
        command: str,
        cwd: Path | str,
        *,
        timeout: float,
        cancel_token: CancelToken | None = None,
    ) -> ProcessCapture:
        """
        Run ``command`` through ``/bin/sh`` in ``cwd``.

        Args:
            command: Shell command, already validated by the policy guard.
            cwd: Working directory, already validated by the policy guard.
            timeout: Wall-clock limit in seconds.
            cancel_token: Optional flag checked on every poll iteration.

        Returns:
            ProcessCapture. Timed-out and cancelled commands are killed and
            reported with the matching flag set.

        Raises:
            InputError: ``invalid_timeout`` for a non-positive timeout.
            InternalError: ``pipe_creation_failed`` or ``fork_failed``.
        """
        if timeout <= 0:
            raise InputError(f"Timeout must be positive, got {timeout}", code="invalid_timeout")

        if cancel_token is not None and cancel_token.cancelled:
            self.logger.warning("Command cancelled before start: %s", command)
            return ProcessCapture(cancelled=True)

        loop = asyncio.get_running_loop()
        started = time.monotonic()
        try:
            transport, protocol = await loop.subprocess_shell(
                lambda: _CaptureProtocol(self.max_output_bytes),
                command,
                cwd=str(cwd),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            if e.errno in _PIPE_ERRNOS:
                raise InternalError(
                    f"Failed to create process pipes: {e}", code="pipe_creation_failed"
                ) from e
            raise InternalError(f"Failed to start process: {e}", code="fork_failed") from e

        self.logger.debug("Spawned pid %s in %s: %s", transport.get_pid(), cwd, command)

        timed_out = False
        cancelled = False
        killed_at: float | None = None
        try:
            while True:
                protocol.activity.clear()
                now = time.monotonic()
                reaped = transport.get_returncode() is not None

                if reaped and not protocol.open_fds:
                    break

                # Also covers a reaped shell whose background descendants hold the pipes.
                if killed_at is None:
                    if cancel_token is not None and cancel_token.cancelled:
                        cancelled = True
                        self.logger.warning("Cancelling pid %s", transport.get_pid())
                        self._kill_group(transport)
                        killed_at = now
                    elif now - started > timeout:
                        timed_out = True
                        self.logger.warning(
                            "Command timed out after %.3fs: %s", timeout, command
                        )
                        self._kill_group(transport)
                        killed_at = now
                elif now - killed_at > self.drain_grace:
                    self.logger.warning(
                        "Pipes still open %.1fs after kill, abandoning pid %s",
                        self.drain_grace,
                        transport.get_pid(),
                    )
                    break

                try:
                    await asyncio.wait_for(protocol.activity.wait(), self.poll_interval)
                except TimeoutError:
                    pass
        finally:
            if transport.get_returncode() is None:
                self._kill_group(transport)
            transport.close()

        exit_code = classify_exit(transport.get_returncode())
        duration_ms = (time.monotonic() - started) * 1000
        if protocol.truncated:
            self.logger.warning("Output truncated at %d bytes per stream", self.max_output_bytes)
        self.logger.info(
            "pid %s finished: exit_code=%d timed_out=%s cancelled=%s (%.1fms)",
            transport.get_pid(),
            exit_code,
            timed_out,
            cancelled,
            duration_ms,
        )
        return ProcessCapture(
            exit_code=exit_code,
            stdout=protocol.text(_STDOUT),
            stderr=protocol.text(_STDERR),
            timed_out=timed_out,
            cancelled=cancelled,
            duration_ms=duration_ms,
            truncated=protocol.truncated,
        )

    def _kill_group(self, transport: asyncio.SubprocessTransport) -> None:
        """SIGKILL the child's whole process group so shell children die too."""
        pid = transport.get_pid()
        try:
            os.killpg(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except PermissionError:
            # The group may already be reused; fall back to the child alone.
            try:
                transport.kill()
            except ProcessLookupError:
                pass
