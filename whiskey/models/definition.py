"""Models describing units of work and the worker invocation contract."""

from collections.abc import Sequence
from pathlib import Path

from pydantic import Field

from whiskey.constants import ABSENT_ARGUMENT
from whiskey.models.base import Model


class TestModuleSpec(Model):
    """One test module to run in its own worker."""

    __test__ = False

    path: str = Field(..., description="Path to the test module")
    pattern: str | None = Field(
        default=None, description="Regular expression selecting test names"
    )

    @classmethod
    def parse(cls, value: str) -> "TestModuleSpec":
        """Parse a ``path`` or ``path:pattern`` command line entry."""
        path, sep, pattern = value.partition(":")
        return cls(path=path, pattern=pattern if sep and pattern else None)

    def resolve(self, cwd: Path) -> "TestModuleSpec":
        """Return a copy whose path is absolute, relative to ``cwd``."""
        path = Path(self.path)
        if path.is_absolute():
            return self
        return self.model_copy(update={"path": str(cwd / path)})


def _optional(value: str) -> str | None:
    return None if value == ABSENT_ARGUMENT else value


def _present(value: object | None) -> str:
    return ABSENT_ARGUMENT if value is None else str(value)


class WorkerInvocation(Model):
    """Ordered positional arguments handed to every worker process."""

    module_path: str = Field(..., description="Absolute test module path")
    socket_path: str = Field(..., description="IPC listener address")
    cwd: str = Field(..., description="Working directory of the orchestrator")
    coverage_dir: str | None = Field(default=None, description="Coverage output")
    scope_leaks: bool = Field(default=False, description="Detect scope leaks")
    chdir: str | None = Field(default=None, description="Directory to change into")
    custom_assert_module: str | None = Field(
        default=None, description="Module injected as custom_assert"
    )
    init_file: str | None = Field(default=None, description="Per-module init file")
    timeout_ms: int = Field(..., gt=0, description="Module timeout")
    concurrency: int = Field(..., ge=1, description="Tests run in parallel")
    pattern: str | None = Field(default=None, description="Test name filter")

    def to_argv(self) -> Sequence[str]:
        """Encode as the positional argument vector, in contract order."""
        argv = [
            self.module_path,
            self.socket_path,
            self.cwd,
            _present(self.coverage_dir),
            "1" if self.scope_leaks else "0",
            _present(self.chdir),
            _present(self.custom_assert_module),
            _present(self.init_file),
            str(self.timeout_ms),
            str(self.concurrency),
        ]
        if self.pattern is not None:
            argv.append(self.pattern)
        return argv

    @classmethod
    def from_argv(cls, argv: Sequence[str]) -> "WorkerInvocation":
        """Decode the positional argument vector produced by ``to_argv``."""
        if len(argv) < 10:
            raise ValueError(
                f"Expected at least 10 worker arguments, got {len(argv)}"
            )
        return cls(
            module_path=argv[0],
            socket_path=argv[1],
            cwd=argv[2],
            coverage_dir=_optional(argv[3]),
            scope_leaks=argv[4] == "1",
            chdir=_optional(argv[5]),
            custom_assert_module=_optional(argv[6]),
            init_file=_optional(argv[7]),
            timeout_ms=int(argv[8]),
            concurrency=int(argv[9]),
            pattern=argv[10] if len(argv) > 10 else None,
        )
