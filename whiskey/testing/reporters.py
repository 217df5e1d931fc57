"""In-memory reporters recording every lifecycle event."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from whiskey.models.result import ModuleResult, RunSummary
from whiskey.reporters.base import CoverageSink, TestReporter


@dataclass(kw_only=True)
class RecordingReporter(TestReporter):
    """Test reporter keeping events and results for assertions."""

    events: list[tuple[str, str]] = field(default_factory=list)
    results: dict[str, ModuleResult] = field(default_factory=dict)
    summary: RunSummary = field(default_factory=RunSummary)

    def on_run_start(self) -> None:
        self.events.append(("run_start", ""))

    def on_module_start(self, module_path: str) -> None:
        self.events.append(("module_start", module_path))

    def on_module_complete(self, module_path: str, result: ModuleResult) -> None:
        self.events.append(("module_complete", module_path))
        self.results[module_path] = result
        self.summary.record(result)

    def on_run_complete(self) -> int:
        self.events.append(("run_complete", ""))
        return self.summary.exit_code

    def count(self, event: str) -> int:
        return sum(1 for name, _ in self.events if name == event)


@dataclass(kw_only=True)
class RecordingCoverageSink(CoverageSink):
    """Coverage sink keeping every payload it receives."""

    payloads: dict[str, Mapping[str, Any]] = field(default_factory=dict)
    completed: int = 0

    def on_coverage_payload(self, module_path: str, payload: Mapping[str, Any]) -> None:
        self.payloads[module_path] = payload

    def on_run_complete(self) -> None:
        self.completed += 1
