"""LangChain integration for runbox."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from runbox.integrations import render_call

if TYPE_CHECKING:
    from runbox.api import RunSession

HAS_LANGCHAIN = False
_StructuredTool: Any = None

try:
    import langchain_core.tools

    _StructuredTool = langchain_core.tools.StructuredTool
    HAS_LANGCHAIN = True
except ImportError:
    pass


def create_langchain_tools(session: RunSession) -> dict[str, Any]:
    """
    Create LangChain tools bound to a run session.

    Args:
        session: The run session to wrap.

    Returns:
        Dictionary of LangChain StructuredTool instances keyed by tool name.

    Raises:
        ImportError: If langchain-core is not installed.

    Example:
        >>> session = await open_run(request)
        >>> tools = create_langchain_tools(session)
        >>> agent = create_react_agent(llm, list(tools.values()))
    """
    if not HAS_LANGCHAIN:
        raise ImportError(
            "LangChain integration requires langchain-core. "
            "Install with: pip install runbox[langchain]"
        )

    async def read_file(path: str) -> str:
        """Read a text file from the workspace."""
        return await render_call(session.read_file(path))

    async def search(pattern: str, scope: str = ".", max_matches: int = 20) -> str:
        """Search workspace files for a literal substring."""
        return await render_call(session.search(pattern, scope, max_matches=max_matches))

    async def run_command(command: str, cwd: str = ".", timeout: float | None = None) -> str:
        """Run a shell command inside the workspace."""
        return await render_call(session.run_command(command, cwd, timeout=timeout))

    async def apply_patch(patch_text: str) -> str:
        """Apply a unified diff to the workspace."""
        return await render_call(session.apply_patch(patch_text))

    return {
        "read_file": _StructuredTool.from_function(
            coroutine=read_file,
            name="read_file",
            description="Read a text file. Paths are relative to the workspace root.",
        ),
        "search": _StructuredTool.from_function(
            coroutine=search,
            name="search",
            description="Search files under a scope for lines containing a literal pattern.",
        ),
        "run_command": _StructuredTool.from_function(
            coroutine=run_command,
            name="run_command",
            description="Run a shell command in the workspace. Destructive commands are blocked.",
        ),
        "apply_patch": _StructuredTool.from_function(
            coroutine=apply_patch,
            name="apply_patch",
            description="Apply a unified diff with '--- a/<path>' and '+++ b/<path>' headers.",
        ),
    }
