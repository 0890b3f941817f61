"""
Workspace-backed tool host.

This is the default tool host. Every operation validates its paths and
commands through a PolicyGuard before touching the filesystem, and every
command runs through a ProcessRunner so it inherits timeout and cancellation.
"""

from __future__ import annotations

import logging
import os
import shlex
import tempfile
import time
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from runbox._types import CancelToken, ProcessCapture, ToolResult
from runbox.errors import InputError, InternalError
from runbox.patch import extract_patch_paths, strip_level
from runbox.sandbox._base import ToolHost
from runbox.sandbox.process import ProcessRunner
from runbox.security.policy import PolicyGuard


@dataclass(frozen=True)
class ToolHostConfig:
    """Limits and conventions of a LocalToolHost."""

    binary_probe_bytes: int = 1024
    max_search_file_bytes: int = 1024 * 1024
    max_line_length: int = 240
    artifacts_dir: str = ".agent_runs"
    patch_command: str = "patch -p{strip} --forward --batch -i {path}"
    default_timeout: float = 5.0


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def _trim_line(line: str, limit: int) -> str:
    if len(line) <= limit:
        return line
    return line[:limit] + "..."


class LocalToolHost(ToolHost):
    """
    Tool host operating directly on a local workspace directory.

    Security features:
    - Path containment via PolicyGuard for every file, scope and cwd
    - Command denylist via PolicyGuard
    - Patch targets validated before the patch is applied
    - Timeout and cancellation enforcement via ProcessRunner

    Example:
        >>> host = LocalToolHost("./my_project")
        >>> result = await host.run_command("ls -la")
        >>> print(result.output)
    """

    def __init__(
        self,
        workspace: Path | str,
        *,
        guard: PolicyGuard | None = None,
        runner: ProcessRunner | None = None,
        config: ToolHostConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize a local tool host.

        Args:
            workspace: Root directory the host is confined to.
            guard: Policy guard to enforce. Defaults to the standard policy.
            runner: Process runner for commands and patches.
            config: Size limits and conventions.
            logger: Logger to report to. Defaults to the module logger.

        Raises:
            InputError: ``invalid_workspace_root`` if the workspace is unusable.
        """
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.guard = guard or PolicyGuard(logger=self.logger)
        self.runner = runner or ProcessRunner(logger=self.logger)
        self.config = config or ToolHostConfig()
        self._workspace = self.guard.path_policy.canonical_root(workspace)
        self._closed = False

    @property
    def workspace(self) -> Path:
        """Canonical workspace root."""
        return self._workspace

    def _check_open(self) -> None:
        if self._closed:
            raise InputError("Tool host has been closed", code="host_closed")

    def _is_probably_binary(self, path: Path) -> bool:
        """True if a NUL byte appears within the probe window."""
        with path.open("rb") as fh:
            return b"\x00" in fh.read(self.config.binary_probe_bytes)

    async def read_file(self, path: str | Path) -> ToolResult:
        """
        Read a text file from the workspace.

        Raises:
            InputError: If the path cannot be resolved.
            PolicyViolation: If the path escapes the workspace.
        """
        self._check_open()
        started = time.perf_counter()
        file_path = self.guard.validate_path_in_workspace(self._workspace, path)

        def failed(message: str) -> ToolResult:
            return ToolResult(
                "read_file", False, error_message=message, duration_ms=_elapsed_ms(started)
            )

        if not file_path.exists():
            return failed(f"File does not exist: {file_path}")
        if not file_path.is_file():
            return failed(f"Path is not a regular file: {file_path}")

        try:
            if self._is_probably_binary(file_path):
                return failed(f"Refusing to read binary file: {file_path}")
            content = file_path.read_bytes().decode("utf-8", errors="replace")
        except OSError as e:
            return failed(f"Failed to read file: {file_path}: {e.strerror or e}")

        return ToolResult("read_file", True, output=content, duration_ms=_elapsed_ms(started))

    def _iter_files(self, root: Path) -> Iterator[Path]:
        """Yield regular files under ``root`` in sorted order, skipping unreadable dirs."""
        try:
            with os.scandir(root) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            self.logger.debug("Skipping directory %s: %s", root, e)
            return

        for entry in entries:
            # Symlinks are not followed; a link could point outside the workspace.
            if entry.is_dir(follow_symlinks=False):
                yield from self._iter_files(Path(entry.path))
            elif entry.is_file(follow_symlinks=False):
                yield Path(entry.path)

    def _search_file(self, path: Path, pattern: str, limit: int) -> list[str]:
        """Return up to ``limit`` formatted matches from one file."""
        try:
            if path.stat().st_size > self.config.max_search_file_bytes:
                return []
            if self._is_probably_binary(path):
                return []
            matches = []
            with path.open(encoding="utf-8", errors="replace", newline="") as fh:
                for line_no, line in enumerate(fh, start=1):
                    line = line.rstrip("\r\n")
                    if pattern not in line:
                        continue
                    matches.append(
                        f"{path}:{line_no}:{_trim_line(line, self.config.max_line_length)}"
                    )
                    if len(matches) >= limit:
                        break
            return matches
        except OSError as e:
            self.logger.debug("Skipping unreadable file %s: %s", path, e)
            return []

    async def search(
        self, pattern: str, scope: str | Path = ".", *, max_matches: int = 20
    ) -> ToolResult:
        """
        Search for a literal substring in a file or directory tree.

        Files larger than the configured limit and binary files are skipped.
        Reported lines are truncated with ``...``.

        Raises:
            InputError: ``empty_search_pattern`` or ``invalid_search_limit``.
            PolicyViolation: If the scope escapes the workspace.
        """
        self._check_open()
        if not pattern:
            raise InputError("Search pattern cannot be empty.", code="empty_search_pattern")
        if max_matches <= 0:
            raise InputError(
                "max_matches must be greater than zero.", code="invalid_search_limit"
            )

        started = time.perf_counter()
        scope_path = self.guard.validate_path_in_workspace(self._workspace, scope)

        if not scope_path.exists():
            return ToolResult(
                "search",
                False,
                error_message=f"Scope does not exist: {scope_path}",
                duration_ms=_elapsed_ms(started),
            )
        if scope_path.is_file():
            files: Iterator[Path] = iter([scope_path])
        elif scope_path.is_dir():
            files = self._iter_files(scope_path)
        else:
            return ToolResult(
                "search",
                False,
                error_message=f"Scope is neither a file nor directory: {scope_path}",
                duration_ms=_elapsed_ms(started),
            )

        matches: list[str] = []
        scanned = 0
        for file_path in files:
            if len(matches) >= max_matches:
                break
            scanned += 1
            matches.extend(self._search_file(file_path, pattern, max_matches - len(matches)))

        self.logger.debug("Searched %d files under %s for %r", scanned, scope_path, pattern)
        header = f'pattern="{pattern}" scope="{scope_path}" matches={len(matches)}\n'
        body = "\n".join(matches) + "\n" if matches else "No matches found."
        return ToolResult("search", True, output=header + body, duration_ms=_elapsed_ms(started))

    async def _execute(
        self,
        tool: str,
        command: str,
        cwd: str | Path,
        timeout: float | None,
        cancel_token: CancelToken | None,
    ) -> ToolResult:
        """Validate, run and map a command to a ToolResult."""
        started = time.perf_counter()
        command = self.guard.validate_command(command)
        cwd_path = self.guard.validate_path_in_workspace(self._workspace, cwd)
        if not cwd_path.is_dir():
            return ToolResult(
                tool,
                False,
                error_message=f"Working directory does not exist: {cwd_path}",
                duration_ms=_elapsed_ms(started),
            )

        capture = await self.runner.run(
            command,
            cwd_path,
            timeout=self.config.default_timeout if timeout is None else timeout,
            cancel_token=cancel_token,
        )
        return self._to_result(tool, capture)

    @staticmethod
    def _to_result(tool: str, capture: ProcessCapture) -> ToolResult:
        error_message = capture.stderr
        if capture.cancelled or capture.timed_out:
            note = "Command cancelled." if capture.cancelled else "Command timed out."
            if error_message:
                error_message += "\n"
            return ToolResult(
                tool,
                False,
                output=capture.stdout,
                error_message=error_message + note,
                duration_ms=capture.duration_ms,
            )

        success = capture.exit_code == 0
        if not success and not error_message:
            error_message = f"Command failed with exit code {capture.exit_code}"
        return ToolResult(
            tool,
            success,
            output=capture.stdout,
            error_message=error_message,
            duration_ms=capture.duration_ms,
        )

    async def run_command(
        self,
        command: str,
        cwd: str | Path = ".",
        *,
        timeout: float | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ToolResult:
        """
        Execute a shell command inside the workspace.

        Non-zero exit, timeout and cancellation are reported with
        ``success=False``.

        Raises:
            InputError: Empty command, bad cwd path or non-positive timeout.
            PolicyViolation: Blocked command or cwd outside the workspace.
            InternalError: The process could not be started.
        """
        self._check_open()
        return await self._execute("run_command", command, cwd, timeout, cancel_token)

    async def apply_patch(
        self,
        patch_text: str,
        *,
        timeout: float | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ToolResult:
        """
        Apply a unified diff to the workspace with ``patch``.

        Every header path is validated before anything is written. The diff
        is staged in a private temp file under the artifacts directory and
        removed afterwards whatever the outcome.

        Raises:
            InputError: ``empty_patch`` or ``invalid_patch_format``.
            PolicyViolation: A patch target escapes the workspace.
            InternalError: The temp file could not be created or written.
        """
        self._check_open()
        if not patch_text:
            raise InputError("Patch text cannot be empty.", code="empty_patch")

        patch_paths = extract_patch_paths(patch_text)
        if not patch_paths:
            raise InputError(
                "Patch does not include any file paths.",
                code="invalid_patch_format",
                hint="Provide a unified diff with '--- a/<path>' and '+++ b/<path>' headers.",
            )
        for patch_path in patch_paths:
            self.guard.validate_path_in_workspace(self._workspace, patch_path)

        artifacts_dir = self._workspace / self.config.artifacts_dir
        try:
            artifacts_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InternalError(
                f"Failed to create temporary patch directory: {artifacts_dir}",
                code="patch_temp_dir_failed",
            ) from e

        try:
            fd, name = tempfile.mkstemp(prefix="tool_patch_", suffix=".diff", dir=artifacts_dir)
        except OSError as e:
            raise InternalError(
                f"Failed to open temporary patch file in {artifacts_dir}",
                code="patch_temp_write_failed",
            ) from e
        patch_file = Path(name)

        try:
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(patch_text)
            except OSError as e:
                raise InternalError(
                    f"Failed to write temporary patch file: {patch_file}",
                    code="patch_temp_write_failed",
                ) from e

            self.logger.debug("Staged patch for %s at %s", patch_paths, patch_file)
            # Workspace-relative; the command runs from the workspace root.
            relative = Path(self.config.artifacts_dir) / patch_file.name
            command = self.config.patch_command.format(
                strip=strip_level(patch_text), path=shlex.quote(str(relative))
            )
            result = await self._execute("apply_patch", command, ".", timeout, cancel_token)
        finally:
            patch_file.unlink(missing_ok=True)

        return result

    async def close(self) -> None:
        """
        Mark the host closed.

        Safe to call multiple times.
        """
        self._closed = True
