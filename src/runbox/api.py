"""
Main entry point: open_run factory function.

Binds one run of the lifecycle registry to a tool host, so every tool call
made through the session carries that run's cancellation flag.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType

from runbox._types import CancelToken, RunRequest, RunState, ToolResult
from runbox.lifecycle import RunLifecycle
from runbox.sandbox.local import LocalToolHost, ToolHostConfig
from runbox.security.policy import CommandPolicy, PolicyGuard


@dataclass
class RunSession:
    """
    One active run and the tool host it drives.

    Attributes:
        run_id: Identifier issued by the lifecycle registry.
        lifecycle: Registry that owns the run's state.
        host: Tool host rooted at the run's workspace.
        cancel_token: The run's cancellation flag.
    """

    run_id: str
    lifecycle: RunLifecycle
    host: LocalToolHost
    cancel_token: CancelToken = field(repr=False)
    logger: logging.Logger = field(default=logging.getLogger(__name__), repr=False)

    @property
    def state(self) -> RunState:
        return self.lifecycle.get_run_state(self.run_id)

    async def read_file(self, path: str | Path) -> ToolResult:
        """Read a file from the run's workspace."""
        return await self.host.read_file(path)

    async def search(
        self, pattern: str, scope: str | Path = ".", *, max_matches: int = 20
    ) -> ToolResult:
        """Search the run's workspace."""
        return await self.host.search(pattern, scope, max_matches=max_matches)

    async def run_command(
        self, command: str, cwd: str | Path = ".", *, timeout: float | None = None
    ) -> ToolResult:
        """Run a command that is killed if the run is cancelled."""
        return await self.host.run_command(
            command, cwd, timeout=timeout, cancel_token=self.cancel_token
        )

    async def apply_patch(self, patch_text: str, *, timeout: float | None = None) -> ToolResult:
        """Apply a patch whose apply step is killed if the run is cancelled."""
        return await self.host.apply_patch(
            patch_text, timeout=timeout, cancel_token=self.cancel_token
        )

    def cancel(self) -> RunState:
        return self.lifecycle.cancel_run(self.run_id)

    def complete(self) -> RunState:
        return self.lifecycle.mark_completed(self.run_id)

    def fail(self, reason: str) -> RunState:
        return self.lifecycle.mark_failed(self.run_id, reason)

    async def close(self) -> None:
        """Clean up the tool host."""
        await self.host.close()

    async def __aenter__(self) -> RunSession:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if not self.state.is_terminal:
                if exc is None:
                    self.complete()
                else:
                    self.logger.warning("run %s failed: %s", self.run_id, exc)
                    self.fail(str(exc) or exc_type.__name__)
        finally:
            await self.close()


async def open_run(
    request: RunRequest,
    *,
    lifecycle: RunLifecycle | None = None,
    policy: CommandPolicy | None = None,
    config: ToolHostConfig | None = None,
    logger: logging.Logger | None = None,
) -> RunSession:
    """
    Start a run and return a session for driving its tools.

    This is the main entry point for runbox. It registers the run, issues
    its cancellation flag, and builds a LocalToolHost rooted at
    ``request.workspace``.

    Args:
        request: Validated run request.
        lifecycle: Registry to register the run in. A new one by default.
        policy: Command denylist. Defaults to the standard policy.
        config: Tool host limits.
        logger: Logger shared by the session's components.

    Returns:
        RunSession in state Running.

    Raises:
        InputError: ``invalid_run_request`` or ``invalid_workspace_root``.

    Example:
        >>> async with await open_run(RunRequest(task_description="fix", workspace=path)) as run:
        ...     result = await run.run_command("pytest -q", timeout=60)
    """
    logger = logger if logger is not None else logging.getLogger(__name__)
    lifecycle = lifecycle or RunLifecycle(logger=logger)
    guard = PolicyGuard(command_policy=policy or CommandPolicy.standard(), logger=logger)
    # Validate the workspace before the run is registered.
    host = LocalToolHost(request.workspace, guard=guard, config=config, logger=logger)

    run_id = lifecycle.start_run(request)
    return RunSession(
        run_id=run_id,
        lifecycle=lifecycle,
        host=host,
        cancel_token=lifecycle.get_cancel_token(run_id),
        logger=logger,
    )
