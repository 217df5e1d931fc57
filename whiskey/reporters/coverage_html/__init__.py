"""HTML coverage reporter module."""

from whiskey.reporters.coverage_html.config import CoverageHtmlConfig
from whiskey.reporters.coverage_html.manifest import coverage_html_manifest
from whiskey.reporters.coverage_html.reporter import CoverageHtmlReporter

__all__ = ["CoverageHtmlConfig", "CoverageHtmlReporter", "coverage_html_manifest"]
