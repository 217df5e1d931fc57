"""Contracts between the orchestrator and result consumers."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from whiskey.models.result import ModuleResult


class TestReporter(ABC):
    """Receives run and module lifecycle events from the orchestrator.

    For a given module ``on_module_start`` is always called before
    ``on_module_complete``, and ``on_run_complete`` is called once, last.
    """

    __test__ = False

    @abstractmethod
    def on_run_start(self) -> None:
        """Handle the start of the run, before any module is launched."""

    @abstractmethod
    def on_module_start(self, module_path: str) -> None:
        """Handle a module whose worker has just been launched.

        Args:
            module_path: Absolute path of the module

        """

    @abstractmethod
    def on_module_complete(self, module_path: str, result: ModuleResult) -> None:
        """Handle the terminal result of a module.

        Args:
            module_path: Absolute path of the module
            result: Outcomes and captured output of the module

        """

    @abstractmethod
    def on_run_complete(self) -> int:
        """Finish reporting and return the exit status.

        Returns:
            Number of failures plus timeouts, by convention

        """


class CoverageSink(ABC):
    """Receives opaque coverage payloads when coverage is enabled."""

    @abstractmethod
    def on_coverage_payload(self, module_path: str, payload: Mapping[str, Any]) -> None:
        """Handle the coverage payload sent by a module's worker."""

    @abstractmethod
    def on_run_complete(self) -> None:
        """Render whatever was collected."""
