"""Pytest configuration and fixtures for runbox tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio

from runbox import LocalToolHost, PolicyGuard, RunLifecycle, RunRequest


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory(prefix="runbox_test_") as tmp:
        yield Path(tmp).resolve()


@pytest.fixture
def workspace(temp_dir: Path) -> Path:
    """Create a workspace directory with a sibling that shares its name prefix."""
    root = temp_dir / "work"
    root.mkdir()
    (temp_dir / "workshop").mkdir()
    (root / "notes.txt").write_text("hello tool host")
    return root


@pytest_asyncio.fixture
async def host(workspace: Path) -> AsyncGenerator[LocalToolHost, None]:
    """Create a LocalToolHost for testing."""
    host = LocalToolHost(workspace)
    try:
        yield host
    finally:
        await host.close()


@pytest.fixture
def guard() -> PolicyGuard:
    """Create a guard with the standard policy."""
    return PolicyGuard()


@pytest.fixture
def lifecycle() -> RunLifecycle:
    """Create an empty run registry."""
    return RunLifecycle()


@pytest.fixture
def task_request(workspace: Path) -> RunRequest:
    """Create a valid task-based run request."""
    return RunRequest(task_description="fix the failing test", workspace=workspace)
