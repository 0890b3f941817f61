"""
Abstract base class for tool hosts.

A tool host is the capability surface offered to the planning layer: read a
file, search text, run a command, apply a patch. Every operation returns a
ToolResult; hard errors are raised.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from runbox._types import CancelToken, ToolResult


class ToolHost(ABC):
    """
    Abstract base for all tool host implementations.

    Provides a consistent interface for inspecting and modifying a workspace
    on behalf of an agent.
    """

    @abstractmethod
    async def read_file(self, path: str | Path) -> ToolResult:
        """
        Read a text file from the workspace.

        Args:
            path: Path to the file (relative to the workspace root).

        Returns:
            ToolResult whose output is the file content. Missing, non-regular
            and binary files are reported with ``success=False``.
        """
        ...

    @abstractmethod
    async def search(
        self, pattern: str, scope: str | Path = ".", *, max_matches: int = 20
    ) -> ToolResult:
        """
        Search for a literal substring in a file or directory tree.

        Args:
            pattern: Text to look for. Must not be empty.
            scope: File or directory to search (relative to the workspace root).
            max_matches: Stop after this many matching lines.

        Returns:
            ToolResult whose output starts with a header line reporting the
            pattern, scope and match count.
        """
        ...

    @abstractmethod
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

        Args:
            command: The shell command to execute.
            cwd: Working directory (relative to the workspace root).
            timeout: Maximum seconds before the command is killed.
            cancel_token: Flag that aborts the command when set.

        Returns:
            ToolResult with stdout as output and stderr as error message.
        """
        ...

    @abstractmethod
    async def apply_patch(
        self,
        patch_text: str,
        *,
        timeout: float | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ToolResult:
        """
        Apply a unified diff to the workspace.

        Args:
            patch_text: The diff. Every path it names must be inside the workspace.
            timeout: Maximum seconds for the apply step.
            cancel_token: Flag that aborts the apply step when set.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """
        Release host resources.

        Idempotent - safe to call multiple times.
        """
        ...

    async def __aenter__(self) -> ToolHost:
        """Enter async context manager."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Exit async context manager, cleaning up resources."""
        await self.close()
