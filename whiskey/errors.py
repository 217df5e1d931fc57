"""Exceptions raised by the orchestrator."""


class WhiskeyError(Exception):
    """Base class for orchestrator errors."""


class TransportError(WhiskeyError):
    """Raised when the IPC control channel cannot be established."""


class DecodeError(WhiskeyError):
    """Raised when a protocol line cannot be classified or parsed."""

    def __init__(self, message: str, line: str) -> None:
        super().__init__(message)
        self.line = line
