"""Configuration for the console test reporter."""

from pydantic import BaseModel


class CliReporterConfig(BaseModel):
    """Configuration for the console test reporter."""

    print_stdout: bool = False
    print_stderr: bool = False
    # Disable to keep ANSI escapes out of redirected output
    colors: bool = True
