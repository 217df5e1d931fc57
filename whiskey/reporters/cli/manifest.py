"""Console test reporter manifest."""

from whiskey.reporters.cli.config import CliReporterConfig
from whiskey.reporters.cli.reporter import CliReporter
from whiskey.reporters.manifest import ReporterManifest

cli_manifest = ReporterManifest(
    config_cls=CliReporterConfig,
    reporter_factory=CliReporter.from_config,
)
