"""Run configuration produced from the command line."""

from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, Field

from whiskey.constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_COVERAGE_REPORTER,
    DEFAULT_SOCKET_PATH,
    DEFAULT_TEST_REPORTER,
    DEFAULT_TEST_TIMEOUT_MS,
    DEFAULT_VERBOSITY,
)
from whiskey.models.definition import TestModuleSpec


class RunConfig(BaseModel):
    """Configuration for one orchestrated run."""

    tests: Sequence[TestModuleSpec] = ()
    timeout_ms: int = Field(default=DEFAULT_TEST_TIMEOUT_MS, gt=0)
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1)
    # Run the tests inside each module one at a time
    sequential: bool = False
    failfast: bool = False
    test_init_file: str | None = None
    chdir: str | None = None
    custom_assert_module: str | None = None
    coverage: bool = False
    coverage_reporter: str = DEFAULT_COVERAGE_REPORTER
    coverage_dir: Path | None = None
    test_reporter: str = DEFAULT_TEST_REPORTER
    print_stdout: bool = False
    print_stderr: bool = False
    # Base path only; every run appends a random suffix
    socket_path: str = DEFAULT_SOCKET_PATH
    debug: bool = False
    scope_leaks: bool = False
    verbosity: int = Field(default=DEFAULT_VERBOSITY, ge=1, le=3)
    cwd: Path = Field(default_factory=Path.cwd)

    @property
    def worker_concurrency(self) -> int:
        return 1 if self.sequential else self.concurrency

    @property
    def coverage_output(self) -> Path:
        return self.absolute(self.coverage_dir or Path("coverage"))

    def absolute(self, path: str | Path) -> Path:
        """Resolve ``path`` against the invoking working directory."""
        path = Path(path)
        return path if path.is_absolute() else self.cwd / path
