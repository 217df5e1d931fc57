"""Tests for module specs and the worker invocation contract."""

from pathlib import Path

import pytest

from whiskey.models.definition import TestModuleSpec, WorkerInvocation


def test_parse_plain_path() -> None:
    """A bare path has no name filter."""
    spec = TestModuleSpec.parse("tests/test_a.py")

    assert spec.path == "tests/test_a.py"
    assert spec.pattern is None


def test_parse_path_with_pattern() -> None:
    """Text after the first colon is a test name filter."""
    spec = TestModuleSpec.parse("tests/test_a.py:^test_login")

    assert spec.path == "tests/test_a.py"
    assert spec.pattern == "^test_login"


def test_parse_trailing_colon_means_no_pattern() -> None:
    """An empty filter is treated as no filter."""
    assert TestModuleSpec.parse("tests/test_a.py:").pattern is None


def test_resolve_relative_path_against_cwd(tmp_path: Path) -> None:
    """Relative paths are anchored at the given directory."""
    spec = TestModuleSpec(path="test_a.py", pattern="x").resolve(tmp_path)

    assert spec.path == str(tmp_path / "test_a.py")
    assert spec.pattern == "x"


def test_resolve_keeps_absolute_path(tmp_path: Path) -> None:
    """Absolute paths are returned as is."""
    spec = TestModuleSpec(path="/opt/tests/test_a.py")

    assert spec.resolve(tmp_path) is spec


def test_to_argv_uses_placeholder_for_absent_values() -> None:
    """Absent optional arguments are sent as the literal none."""
    invocation = WorkerInvocation(
        module_path="/t/test_a.py",
        socket_path="/tmp/w.sock",
        cwd="/t",
        timeout_ms=1000,
        concurrency=4,
    )

    assert invocation.to_argv() == [
        "/t/test_a.py",
        "/tmp/w.sock",
        "/t",
        "none",
        "0",
        "none",
        "none",
        "none",
        "1000",
        "4",
    ]


def test_to_argv_appends_pattern_last() -> None:
    """The name filter is an optional trailing argument."""
    invocation = WorkerInvocation(
        module_path="/t/test_a.py",
        socket_path="/tmp/w.sock",
        cwd="/t",
        coverage_dir="/t/coverage",
        scope_leaks=True,
        chdir="/t/data",
        custom_assert_module="/t/asserts.py",
        init_file="/t/init.py",
        timeout_ms=500,
        concurrency=1,
        pattern="login",
    )

    argv = invocation.to_argv()

    assert argv[3:] == [
        "/t/coverage",
        "1",
        "/t/data",
        "/t/asserts.py",
        "/t/init.py",
        "500",
        "1",
        "login",
    ]
    assert WorkerInvocation.from_argv(argv) == invocation


def test_from_argv_maps_placeholder_to_none() -> None:
    """The literal none decodes as an absent value."""
    argv = ["/t/a.py", "/tmp/w.sock", "/t", "none", "0", "none", "none", "none", "15000", "100"]

    invocation = WorkerInvocation.from_argv(argv)

    assert invocation.coverage_dir is None
    assert invocation.chdir is None
    assert invocation.pattern is None
    assert invocation.scope_leaks is False
    assert invocation.timeout_ms == 15000


def test_from_argv_rejects_short_argument_list() -> None:
    """Fewer than the mandatory arguments is an error."""
    with pytest.raises(ValueError, match="at least 10"):
        WorkerInvocation.from_argv(["/t/a.py", "/tmp/w.sock"])
