"""Fixtures for integration tests running real worker processes."""

from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest

from whiskey.testing.modules import write_module
from whiskey.testing.runs import Run, run_modules


@pytest.fixture
def write(tmp_path: Path) -> Callable[[str, str], Path]:
    """Return a function writing test modules into a temporary directory."""

    def _write(name: str, source: str) -> Path:
        return write_module(tmp_path, name, source)

    return _write


@pytest.fixture
def run(tmp_path: Path) -> Callable[..., Awaitable[Run]]:
    """Return a function running modules from the temporary directory."""

    async def _run(*entries: Path | str, **options: Any) -> Run:
        options.setdefault("cwd", tmp_path)
        return await run_modules(*entries, **options)

    return _run
