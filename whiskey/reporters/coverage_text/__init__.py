"""Console coverage reporter module."""

from whiskey.reporters.coverage_text.config import CoverageTextConfig
from whiskey.reporters.coverage_text.manifest import coverage_text_manifest
from whiskey.reporters.coverage_text.reporter import CoverageTextReporter

__all__ = ["CoverageTextConfig", "CoverageTextReporter", "coverage_text_manifest"]
