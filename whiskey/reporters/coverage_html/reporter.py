"""HTML coverage report written to the coverage directory."""

import hashlib
import html
import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from whiskey.reporters.base import CoverageSink
from whiskey.reporters.coverage_data import CoverageData, FileCoverage
from whiskey.reporters.coverage_html.config import CoverageHtmlConfig

log = logging.getLogger(__name__)

PAGE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{title}</title>
<style>
body {{ font-family: monospace; }}
table {{ border-collapse: collapse; }}
td, th {{ padding: 2px 8px; text-align: left; }}
.miss {{ background: #fdd; }}
.hit {{ background: #dfd; }}
</style>
</head>
<body>
<h1>{title}</h1>
{body}
</body>
</html>
"""


def page_name(path: str) -> str:
    """Stable, collision-free file name for a source file's page."""
    digest = hashlib.sha1(path.encode()).hexdigest()[:10]
    return f"{Path(path).name}_{digest}.html"


@dataclass(kw_only=True)
class CoverageHtmlReporter(CoverageSink):
    """Writes an index page and one annotated source page per file."""

    config: CoverageHtmlConfig
    data: CoverageData = field(default_factory=CoverageData)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: CoverageHtmlConfig
    ) -> AsyncGenerator["CoverageHtmlReporter", None]:
        """Create a reporter writing into ``config.coverage_dir``."""
        yield cls(config=config)

    def on_coverage_payload(self, module_path: str, payload: Mapping[str, Any]) -> None:
        self.data.add_payload(payload)

    def on_run_complete(self) -> None:
        output = self.config.coverage_dir
        output.mkdir(parents=True, exist_ok=True)

        rows = []
        for path in sorted(self.data.files):
            entry = self.data.files[path]
            name = page_name(path)
            (output / name).write_text(self._render_file(entry), encoding="utf-8")
            rows.append(
                f'<tr><td><a href="{name}">{html.escape(path)}</a></td>'
                f"<td>{entry.percent:.2f}%</td><td>{len(entry.statements)}</td>"
                f"<td>{len(entry.missing)}</td></tr>"
            )

        body = (
            f"<p>Total: {self.data.percent:.2f}% of {self.data.statements} statements</p>"
            "<table><tr><th>File</th><th>Coverage</th><th>SLOC</th><th>Missed</th></tr>"
            + "".join(rows)
            + "</table>"
        )
        index = output / "index.html"
        index.write_text(PAGE.format(title="Test Coverage", body=body), encoding="utf-8")
        log.info("Wrote HTML coverage report to %s", index)

    def _render_file(self, entry: FileCoverage) -> str:
        try:
            source = Path(entry.path).read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            log.warning("Cannot read %s for coverage report: %s", entry.path, exc)
            source = []

        rows = []
        for number, line in enumerate(source, start=1):
            css = ""
            if number in entry.missing:
                css = ' class="miss"'
            elif number in entry.executed:
                css = ' class="hit"'
            rows.append(
                f"<tr{css}><td>{number}</td><td><pre>{html.escape(line)}</pre></td></tr>"
            )

        body = (
            f"<p>{entry.percent:.2f}% covered</p><table>" + "".join(rows) + "</table>"
        )
        return PAGE.format(title=html.escape(entry.path), body=body)
