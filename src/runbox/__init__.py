"""
Top-level facade for runbox.
"""

from runbox._types import (
    CancelToken,
    ProcessCapture,
    RunRecord,
    RunRequest,
    RunState,
    ToolResult,
)
from runbox.api import RunSession, open_run
from runbox.errors import (
    CommandFailed,
    ErrorCategory,
    ExecutionError,
    InputError,
    InternalError,
    PolicyViolation,
    RunboxError,
)
from runbox.lifecycle import RunLifecycle, generate_run_id
from runbox.patch import extract_patch_paths
from runbox.sandbox import LocalToolHost, ProcessRunner, ToolHost, ToolHostConfig
from runbox.security import DEFAULT_BLOCKED_SUBSTRINGS, CommandPolicy, PathPolicy, PolicyGuard

__all__ = [
    "open_run",
    "RunSession",
    "RunLifecycle",
    "generate_run_id",
    "LocalToolHost",
    "ToolHost",
    "ToolHostConfig",
    "ProcessRunner",
    "PolicyGuard",
    "PathPolicy",
    "CommandPolicy",
    "DEFAULT_BLOCKED_SUBSTRINGS",
    "extract_patch_paths",
    "CancelToken",
    "ProcessCapture",
    "RunRecord",
    "RunRequest",
    "RunState",
    "ToolResult",
    "ErrorCategory",
    "RunboxError",
    "InputError",
    "PolicyViolation",
    "ExecutionError",
    "CommandFailed",
    "InternalError",
]
