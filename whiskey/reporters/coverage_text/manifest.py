"""Console coverage reporter manifest."""

from whiskey.reporters.coverage_text.config import CoverageTextConfig
from whiskey.reporters.coverage_text.reporter import CoverageTextReporter
from whiskey.reporters.manifest import ReporterManifest

coverage_text_manifest = ReporterManifest(
    config_cls=CoverageTextConfig,
    reporter_factory=CoverageTextReporter.from_config,
)
