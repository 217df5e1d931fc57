"""Test Anything Protocol reporter."""

import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Literal, TextIO

from whiskey.models.result import ModuleResult, RunSummary
from whiskey.reporters.base import TestReporter
from whiskey.reporters.tap.config import TapReporterConfig


@dataclass(frozen=True, kw_only=True)
class TapLine:
    file: str
    name: str
    status: Literal["success", "failure", "timeout"]
    diagnostics: str = ""


@dataclass(kw_only=True)
class TapReporter(TestReporter):
    """Buffers every verdict and prints a TAP stream when the run completes."""

    config: TapReporterConfig
    stream: TextIO = field(default_factory=lambda: sys.stdout)
    summary: RunSummary = field(default_factory=RunSummary)
    lines: list[TapLine] = field(default_factory=list)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: TapReporterConfig
    ) -> AsyncGenerator["TapReporter", None]:
        """Create a reporter writing to stdout."""
        yield cls(config=config)

    def on_run_start(self) -> None:
        pass

    def on_module_start(self, module_path: str) -> None:
        pass

    def on_module_complete(self, module_path: str, result: ModuleResult) -> None:
        self.summary.record(result)
        file = os.path.basename(module_path)
        stderr = result.stderr if self.config.print_stderr else ""

        if result.error is not None:
            self.lines.append(
                TapLine(file=file, name=result.error.name, status="failure", diagnostics=stderr)
            )

        for outcome in result.tests.values():
            self.lines.append(
                TapLine(
                    file=file,
                    name=outcome.name,
                    status=outcome.status,
                    diagnostics=stderr if outcome.status != "success" else "",
                )
            )

        if result.timed_out:
            self.lines.append(TapLine(file=file, name="timeout", status="timeout"))

    def on_run_complete(self) -> int:
        total = len(self.lines)
        print(f"{1 if total else 0}..{total}", file=self.stream)

        for number, line in enumerate(self.lines, start=1):
            label = f"{number} - {line.file}: {line.name}"
            if line.status == "success":
                print(f"ok {label}", file=self.stream)
            elif line.status == "timeout":
                print(f"not ok {label} (timeout)", file=self.stream)
            else:
                print(f"not ok {label}", file=self.stream)

            for diagnostic in line.diagnostics.splitlines():
                print(f"# {diagnostic}", file=self.stream)

        return self.summary.exit_code
