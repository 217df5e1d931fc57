"""Fixtures for module tests running the whiskey command."""

import subprocess
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

WHISKEY_COMMAND = (sys.executable, "-m", "whiskey.cli")


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Create a project directory holding test modules."""
    (tmp_path / "tests").mkdir()
    return tmp_path


@pytest.fixture
def whiskey(project: Path) -> Callable[..., subprocess.CompletedProcess[str]]:
    """Return a function running the whiskey command inside the project."""

    def _run(*args: str, timeout: float = 60) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            [*WHISKEY_COMMAND, *args],
            cwd=project,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )

    return _run
