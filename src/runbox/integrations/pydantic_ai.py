"""
PydanticAI integration for runbox.

Provides helpers to create PydanticAI-compatible tools.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

try:
    from pydantic_ai import RunContext
except ImportError:
    raise ImportError(
        "PydanticAI integration requires 'pydantic-ai'. "
        "Install with `pip install runbox[pydantic-ai]`"
    )

from runbox.integrations import render_call

if TYPE_CHECKING:
    from runbox.api import RunSession


def create_pydantic_ai_tools(session: RunSession) -> list[Callable]:
    """
    Create PydanticAI tool functions bound to a run session.

    Each function takes a RunContext first, so it can be registered directly
    with an Agent.

    Example:
        >>> from pydantic_ai import Agent
        >>> agent = Agent("openai:gpt-4o", tools=create_pydantic_ai_tools(session))
    """

    async def read_file(ctx: RunContext, path: str) -> str:
        """Read a text file from the workspace."""
        return await render_call(session.read_file(path))

    async def search(ctx: RunContext, pattern: str, scope: str = ".", max_matches: int = 20) -> str:
        """Search workspace files for lines containing a literal pattern."""
        return await render_call(session.search(pattern, scope, max_matches=max_matches))

    async def run_command(ctx: RunContext, command: str, cwd: str = ".") -> str:
        """
        Run a shell command in the workspace.
        Destructive operations are blocked.
        """
        return await render_call(session.run_command(command, cwd))

    async def apply_patch(ctx: RunContext, patch_text: str) -> str:
        """Apply a unified diff to the workspace."""
        return await render_call(session.apply_patch(patch_text))

    return [read_file, search, run_command, apply_patch]
