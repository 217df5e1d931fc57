"""Models for test outcomes and per-module results."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

from pydantic import Field

from whiskey.models.base import Model

type OutcomeStatus = Literal["success", "failure", "timeout"]

type ModuleErrorName = Literal["file_does_not_exist", "uncaught_exception"]


class TestError(Model):
    """Structured error captured from a raising test function or hook."""

    __test__ = False

    name: str = Field(..., description="Exception class name")
    message: str = Field(default="", description="Exception message")
    stack: str | None = Field(default=None, description="Formatted traceback")

    @classmethod
    def from_exception(cls, exc: BaseException, stack: str | None = None) -> "TestError":
        """Build an error from a caught exception."""
        return cls(name=type(exc).__name__, message=str(exc), stack=stack)

    def describe(self) -> str:
        """Return the most detailed textual form available."""
        if self.stack:
            return self.stack
        if self.message:
            return f"{self.name}: {self.message}"
        return self.name


class TestOutcome(Model):
    """Verdict of one test function inside a module."""

    __test__ = False

    name: str = Field(..., description="Test function name")
    status: OutcomeStatus = Field(..., description="Outcome of the test")
    error: TestError | None = Field(default=None, description="Error, if failed")


class ModuleError(Model):
    """Module-level error: the module could not be loaded or run at all."""

    name: ModuleErrorName = Field(..., description="Error category")
    error: TestError = Field(..., description="Underlying error")


class ResultFragment(Model):
    """Partial module result carried by a single TestResult message."""

    tests: Mapping[str, TestOutcome] = Field(
        default_factory=dict, description="Outcomes keyed by test name"
    )
    error: ModuleError | None = Field(default=None, description="Module error")

    def merge(self, other: "ResultFragment") -> "ResultFragment":
        """Return a fragment holding both outcome sets; later errors win."""
        return ResultFragment(
            tests={**self.tests, **other.tests},
            error=other.error or self.error,
        )


@dataclass(frozen=True, kw_only=True)
class ModuleResult:
    """Terminal result for one launched module.

    Exactly one is produced per launched module, even when the worker died
    before reporting anything.
    """

    path: str
    tests: Mapping[str, TestOutcome] = field(default_factory=dict)
    stdout: str = ""
    stderr: str = ""
    error: ModuleError | None = None
    timed_out: bool = False

    @property
    def successes(self) -> int:
        return sum(1 for t in self.tests.values() if t.status == "success")

    @property
    def failures(self) -> int:
        failed = sum(1 for t in self.tests.values() if t.status == "failure")
        return failed + (1 if self.error is not None else 0)

    @property
    def timeouts(self) -> int:
        timed_out = sum(1 for t in self.tests.values() if t.status == "timeout")
        return timed_out + (1 if self.timed_out else 0)

    @property
    def failed(self) -> bool:
        return self.failures > 0 or self.timeouts > 0


@dataclass(kw_only=True)
class RunSummary:
    """Run-wide counters; only ever incremented."""

    successes: int = 0
    failures: int = 0
    timeouts: int = 0

    def record(self, result: ModuleResult) -> None:
        """Add one module's counts to the totals."""
        self.successes += result.successes
        self.failures += result.failures
        self.timeouts += result.timeouts

    @property
    def exit_code(self) -> int:
        return self.failures + self.timeouts
