"""Coverage table printed to the console."""

import sys
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, TextIO

from whiskey.reporters.base import CoverageSink
from whiskey.reporters.coverage_data import CoverageData
from whiskey.reporters.coverage_text.config import CoverageTextConfig

SEPARATOR = (
    "   +------------------------------------------+----------+------+--------+"
)
LAST_SEPARATOR = (
    "                                              +----------+------+--------+"
)


@dataclass(kw_only=True)
class CoverageTextReporter(CoverageSink):
    """Prints per-file statement coverage and a total row."""

    config: CoverageTextConfig
    stream: TextIO = field(default_factory=lambda: sys.stdout)
    data: CoverageData = field(default_factory=CoverageData)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: CoverageTextConfig
    ) -> AsyncGenerator["CoverageTextReporter", None]:
        """Create a reporter writing to stdout."""
        yield cls(config=config)

    def on_coverage_payload(self, module_path: str, payload: Mapping[str, Any]) -> None:
        self.data.add_payload(payload)

    def on_run_complete(self) -> None:
        self._print("")
        self._print("   Test Coverage")
        self._print(SEPARATOR)
        self._print("   | filename                                 | coverage | SLOC | missed |")
        self._print(SEPARATOR)

        for path in sorted(self.data.files):
            entry = self.data.files[path]
            self._print(
                f"   | {self._name(path):<40} | {entry.percent:>8.2f}"
                f" | {len(entry.statements):>4} | {len(entry.missing):>6} |"
            )

        self._print(SEPARATOR)
        self._print(
            f"     {'':<40} | {self.data.percent:>8.2f}"
            f" | {self.data.statements:>4} | {self.data.missed:>6} |"
        )
        self._print(LAST_SEPARATOR)

    def _name(self, path: str) -> str:
        prefix = self.config.strip_prefix
        if prefix and path.startswith(prefix):
            return path[len(prefix) :].lstrip("/")
        return path

    def _print(self, text: str) -> None:
        print(text, file=self.stream)
