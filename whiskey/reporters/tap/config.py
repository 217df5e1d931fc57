"""Configuration for the TAP test reporter."""

from pydantic import BaseModel


class TapReporterConfig(BaseModel):
    """Configuration for the TAP test reporter."""

    # Emit captured stderr of failing modules as TAP diagnostics
    print_stderr: bool = False
