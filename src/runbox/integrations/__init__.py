"""Framework integrations for runbox.

The adapters live in submodules so that importing this package does not
require any optional framework to be installed.
"""

from __future__ import annotations

from collections.abc import Awaitable

from runbox._types import ToolResult
from runbox.errors import RunboxError


async def render_call(call: Awaitable[ToolResult]) -> str:
    """
    Await a tool call and render its outcome as text for a language model.

    Hard errors are rendered rather than raised so the planning layer can
    react to a rejected call instead of aborting the run.
    """
    try:
        result = await call
    except RunboxError as e:
        return f"Error [{e.code}]: {e.message}"
    return result.render()


__all__ = ["render_call"]
