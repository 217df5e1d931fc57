"""Console test reporter."""

import os
import sys
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TextIO

from whiskey.models.result import ModuleResult, RunSummary, TestError
from whiskey.reporters.base import TestReporter
from whiskey.reporters.cli.config import CliReporterConfig

LINE_WIDTH = 81

GREEN = "1;32"
RED = "1;31"
CYAN = "1;36"
BOLD = "1"


@dataclass(kw_only=True)
class CliReporter(TestReporter):
    """Prints per-test verdicts and a final summary to a text stream."""

    config: CliReporterConfig
    stream: TextIO = field(default_factory=lambda: sys.stdout)
    summary: RunSummary = field(default_factory=RunSummary)
    _started_at: float | None = field(default=None, repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: CliReporterConfig
    ) -> AsyncGenerator["CliReporter", None]:
        """Create a reporter writing to stdout."""
        yield cls(config=config)

    def on_run_start(self) -> None:
        self._started_at = time.monotonic()

    def on_module_start(self, module_path: str) -> None:
        self._print(os.path.basename(module_path))

    def on_module_complete(self, module_path: str, result: ModuleResult) -> None:
        self.summary.record(result)

        if result.error is not None:
            # Module missing, or it raised before any test ran
            self._report_failure(result.error.name, result.error.error)

        for outcome in result.tests.values():
            if outcome.status == "success":
                self._report_success(outcome.name)
            elif outcome.status == "timeout":
                self._report_timeout(outcome.name)
            else:
                self._report_failure(outcome.name, outcome.error)

        if result.timed_out:
            self._report_timeout("timeout")

        if result.failed or self.config.print_stderr:
            self._print_stream("Stderr", result.stderr)
        if result.failed or self.config.print_stdout:
            self._print_stream("Stdout", result.stdout)

    def on_run_complete(self) -> int:
        elapsed = time.monotonic() - (self._started_at or time.monotonic())
        summary = self.summary

        self._print("-" * LINE_WIDTH)
        self._print(
            f"Ran {summary.successes + summary.failures} tests in {elapsed:.3f}s"
        )
        self._print("")
        self._print(f"Successes: {summary.successes}")
        self._print(f"Failures: {summary.failures}")
        self._print(f"Timeouts: {summary.timeouts}")
        self._print("")

        if summary.exit_code == 0:
            self._print(self._style("PASSED", GREEN))
        else:
            self._print(self._style("FAILED", RED))

        return summary.exit_code

    def _report_success(self, name: str) -> None:
        self._print(f"  {name:<74} {self._style('[OK]', GREEN)}")

    def _report_timeout(self, name: str) -> None:
        self._print(f"  {name:<69} {self._style('[TIMEOUT]', CYAN)}")

    def _report_failure(self, name: str, error: TestError | None) -> None:
        self._print(f"  {name:<72} {self._style('[FAIL]', RED)}")
        self._print("")
        self._print(f"{self._style('Exception', BOLD)}:")
        self._print(error.describe() if error is not None else "unknown error")
        self._print("")

    def _print_stream(self, title: str, text: str) -> None:
        if text:
            self._print("")
            self._print(f"{self._style(title, BOLD)}:")
            self._print(text)

    def _style(self, text: str, code: str) -> str:
        if not self.config.colors:
            return text
        return f"\033[{code}m{text}\033[0m"

    def _print(self, text: str) -> None:
        print(text, file=self.stream)
