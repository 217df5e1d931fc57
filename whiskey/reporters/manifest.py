"""Reporter manifest definition for the plugin system."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass

from pydantic import BaseModel


@dataclass(frozen=True, kw_only=True)
class ReporterManifest[ConfigT: BaseModel, ReporterT]:
    """Manifest describing a reporter plugin.

    The manifest references the reporter's configuration class and a factory
    yielding a ready reporter, so reporters are only built once selected by
    name.
    """

    config_cls: type[ConfigT]
    reporter_factory: Callable[[ConfigT], AbstractAsyncContextManager[ReporterT]]
