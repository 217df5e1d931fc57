"""Loading of reporters from entry points."""

from importlib.metadata import entry_points
from typing import Any

from whiskey.reporters.base import CoverageSink, TestReporter
from whiskey.reporters.manifest import ReporterManifest

TEST_REPORTERS_GROUP = "whiskey.test_reporters"
COVERAGE_REPORTERS_GROUP = "whiskey.coverage_reporters"


class ReporterNotFoundError(Exception):
    """Raised when a reporter is not found."""


def load_reporter_manifest(group: str, key: str) -> ReporterManifest[Any, Any]:
    """Load a reporter manifest by key.

    Args:
        group: Entry point group to search
        key: The reporter key as registered in pyproject.toml (e.g., "cli")

    Returns:
        The reporter manifest instance

    Raises:
        ReporterNotFoundError: If no reporter with the given key is found

    """
    entries = entry_points(group=group)

    for entry in entries:
        if entry.name == key:
            manifest: ReporterManifest[Any, Any] = entry.load()
            return manifest

    available = sorted(e.name for e in entries)
    raise ReporterNotFoundError(
        f"Reporter '{key}' not found. Available reporters: {available}"
    )


def load_test_reporter_manifest(key: str) -> ReporterManifest[Any, TestReporter]:
    return load_reporter_manifest(TEST_REPORTERS_GROUP, key)


def load_coverage_reporter_manifest(key: str) -> ReporterManifest[Any, CoverageSink]:
    return load_reporter_manifest(COVERAGE_REPORTERS_GROUP, key)
