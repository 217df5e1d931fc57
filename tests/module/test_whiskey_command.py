"""Module tests for the whiskey command as a whole."""

import signal
import subprocess
import sys
import time
from collections.abc import Callable
from pathlib import Path

from whiskey.testing.modules import FAILING_ONE, HANGING, PASSING_TWO, write_module

type WhiskeyFn = Callable[..., subprocess.CompletedProcess[str]]


def test_exit_status_counts_failures(project: Path, whiskey: WhiskeyFn) -> None:
    """The exit status is the number of failed tests."""
    write_module(project / "tests", "test_a.py", PASSING_TWO)
    write_module(project / "tests", "test_b.py", FAILING_ONE)

    result = whiskey("--tests", "tests/test_a.py tests/test_b.py", "--verbosity", "1")

    assert result.returncode == 1
    assert "Ran 3 tests" in result.stdout
    assert "Successes: 2" in result.stdout
    assert "expected failure" in result.stdout


def test_timeout_reported_and_counted(project: Path, whiskey: WhiskeyFn) -> None:
    """A hanging module is killed and counted as one timeout."""
    write_module(project / "tests", "test_slow.py", HANGING)

    result = whiskey("--tests", "tests/test_slow.py", "--timeout", "1000")

    assert result.returncode == 1
    assert "[TIMEOUT]" in result.stdout
    assert "Timeouts: 1" in result.stdout


def test_usage_without_tests(whiskey: WhiskeyFn) -> None:
    """Running without tests prints the usage banner."""
    result = whiskey()

    assert result.returncode == 0
    assert "Usage: whiskey" in result.stdout


def test_tap_output(project: Path, whiskey: WhiskeyFn) -> None:
    """TAP output lists every verdict."""
    write_module(project / "tests", "test_a.py", PASSING_TWO)

    result = whiskey("--tests", "tests/test_a.py", "--test-reporter", "tap")

    assert result.returncode == 0
    assert result.stdout.splitlines()[:3] == [
        "1..2",
        "ok 1 - test_a.py: test_one",
        "ok 2 - test_a.py: test_two",
    ]


def test_interrupt_stops_run(project: Path) -> None:
    """SIGINT kills the running worker and the run still reports."""
    write_module(project / "tests", "test_slow.py", HANGING)
    write_module(project / "tests", "test_a.py", PASSING_TWO)
    process = subprocess.Popen(
        [
            sys.executable,
            "-m",
            "whiskey.cli",
            "--tests",
            "tests/test_slow.py tests/test_a.py",
        ],
        cwd=project,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )

    time.sleep(2)
    process.send_signal(signal.SIGINT)
    stdout, _ = process.communicate(timeout=30)

    assert "test_slow.py" in stdout
    assert "test_a.py" not in stdout
    assert "Ran 0 tests" in stdout
