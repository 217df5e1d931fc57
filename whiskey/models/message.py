"""Typed protocol messages decoded from worker output lines."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from whiskey.models.result import ResultFragment


@dataclass(frozen=True, kw_only=True)
class TestResultMessage:
    """Outcomes (or a module error) reported by a worker."""

    __test__ = False

    module: str
    fragment: ResultFragment


@dataclass(frozen=True, kw_only=True)
class CoverageResultMessage:
    """Opaque coverage payload for a module."""

    module: str
    payload: Mapping[str, Any]


@dataclass(frozen=True, kw_only=True)
class FileEndMessage:
    """No further results will arrive for the module."""

    module: str


@dataclass(frozen=True, kw_only=True)
class ExceptionNotice:
    """An exception not attributable to a test, or an undecodable line.

    ``module`` holds the context prefix of the line, which is the module
    path for notices sent by a worker and ``None`` for decode failures.
    """

    message: str
    module: str | None = None


type ProtocolMessage = (
    TestResultMessage | CoverageResultMessage | FileEndMessage | ExceptionNotice
)
