"""Console test reporter module."""

from whiskey.reporters.cli.config import CliReporterConfig
from whiskey.reporters.cli.manifest import cli_manifest
from whiskey.reporters.cli.reporter import CliReporter

__all__ = ["CliReporter", "CliReporterConfig", "cli_manifest"]
