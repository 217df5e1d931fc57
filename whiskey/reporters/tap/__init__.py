"""TAP test reporter module."""

from whiskey.reporters.tap.config import TapReporterConfig
from whiskey.reporters.tap.manifest import tap_manifest
from whiskey.reporters.tap.reporter import TapReporter

__all__ = ["TapReporter", "TapReporterConfig", "tap_manifest"]
