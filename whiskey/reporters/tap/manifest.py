"""TAP test reporter manifest."""

from whiskey.reporters.manifest import ReporterManifest
from whiskey.reporters.tap.config import TapReporterConfig
from whiskey.reporters.tap.reporter import TapReporter

tap_manifest = ReporterManifest(
    config_cls=TapReporterConfig,
    reporter_factory=TapReporter.from_config,
)
