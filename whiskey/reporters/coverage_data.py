"""Aggregation of per-module coverage payloads.

A payload has the shape ``{"files": {path: {"statements": [...],
"missing": [...]}}}``. Several modules usually exercise the same source
file, so lines executed by any module count as covered.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class FileCoverage:
    """Statement and hit bookkeeping for one source file."""

    path: str
    statements: set[int] = field(default_factory=set)
    executed: set[int] = field(default_factory=set)

    @property
    def missing(self) -> set[int]:
        return self.statements - self.executed

    @property
    def percent(self) -> float:
        if not self.statements:
            return 100.0
        return len(self.executed & self.statements) / len(self.statements) * 100


@dataclass(kw_only=True)
class CoverageData:
    """Coverage merged across every module of a run."""

    files: dict[str, FileCoverage] = field(default_factory=dict)

    def add_payload(self, payload: Mapping[str, Any]) -> None:
        files = payload.get("files")
        if not isinstance(files, Mapping):
            log.warning("Ignoring coverage payload without a files mapping")
            return

        for path, data in files.items():
            statements = set(data.get("statements", ()))
            missing = set(data.get("missing", ()))
            entry = self.files.setdefault(path, FileCoverage(path=path))
            entry.statements |= statements
            entry.executed |= statements - missing

    @property
    def statements(self) -> int:
        return sum(len(f.statements) for f in self.files.values())

    @property
    def missed(self) -> int:
        return sum(len(f.missing) for f in self.files.values())

    @property
    def percent(self) -> float:
        if not self.statements:
            return 100.0
        return (self.statements - self.missed) / self.statements * 100
