"""Configuration for the HTML coverage reporter."""

from pathlib import Path

from pydantic import BaseModel


class CoverageHtmlConfig(BaseModel):
    """Configuration for the HTML coverage reporter."""

    coverage_dir: Path
