"""
Tool host backends and the process runner.
"""

from runbox.sandbox._base import ToolHost
from runbox.sandbox.local import LocalToolHost, ToolHostConfig
from runbox.sandbox.process import ProcessRunner

__all__ = [
    "ToolHost",
    "LocalToolHost",
    "ToolHostConfig",
    "ProcessRunner",
]
