"""Configuration for the console coverage reporter."""

from pydantic import BaseModel


class CoverageTextConfig(BaseModel):
    """Configuration for the console coverage reporter."""

    # Strip this prefix from file names in the table
    strip_prefix: str | None = None
