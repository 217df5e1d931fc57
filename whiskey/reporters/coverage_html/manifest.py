"""HTML coverage reporter manifest."""

from whiskey.reporters.coverage_html.config import CoverageHtmlConfig
from whiskey.reporters.coverage_html.reporter import CoverageHtmlReporter
from whiskey.reporters.manifest import ReporterManifest

coverage_html_manifest = ReporterManifest(
    config_cls=CoverageHtmlConfig,
    reporter_factory=CoverageHtmlReporter.from_config,
)
