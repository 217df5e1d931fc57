"""Line protocol spoken between workers and the IPC listener.

Every message is one newline-terminated line. A line is classified by the
reserved markers it contains, checked in a fixed order: file end, coverage,
exception notice, and finally test result. Payloads are JSON with every
``@`` written as a unicode escape, so they can never contain a newline or
a marker.
"""

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from whiskey.constants import (
    COVERAGE_END_MARKER,
    DELIMITER,
    END_MARKER,
    EXCEPTION_END_MARKER,
    SEPARATOR,
    TEST_END_MARKER,
    TEST_FILE_END_MARKER,
    TEST_START_MARKER,
)
from whiskey.errors import DecodeError
from whiskey.models.message import (
    CoverageResultMessage,
    ExceptionNotice,
    FileEndMessage,
    ProtocolMessage,
    TestResultMessage,
)
from whiskey.models.result import ResultFragment

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class LineSplitter:
    """Incremental splitter turning a fragmented byte stream into lines.

    One instance per connection. There is no bound on the buffer: a peer
    that never terminates its lines keeps growing it.
    """

    _buffer: bytearray = field(default_factory=bytearray)

    def append_data(self, data: bytes) -> Iterator[str]:
        """Buffer ``data`` and lazily yield every complete line.

        Lines are yielded without their trailing newline. Lines left
        unconsumed stay buffered for the next call.
        """
        self._buffer.extend(data)
        return self._drain()

    def _drain(self) -> Iterator[str]:
        while (index := self._buffer.find(b"\n")) != -1:
            line = bytes(self._buffer[:index])
            del self._buffer[: index + 1]
            yield line.decode("utf-8", errors="replace")

    @property
    def pending(self) -> bytes:
        """Bytes received after the last newline."""
        return bytes(self._buffer)


def decode_line(line: str) -> ProtocolMessage:
    """Classify one line into a protocol message.

    Undecodable lines are returned as an ``ExceptionNotice`` describing the
    problem instead of raising.
    """
    try:
        return _decode(line)
    except DecodeError as exc:
        log.warning("Cannot decode protocol line: %s (line=%r)", exc, exc.line)
        return ExceptionNotice(message=f"Cannot decode protocol line: {exc}")


def _decode(line: str) -> ProtocolMessage:
    if TEST_FILE_END_MARKER in line:
        module, _, _ = line.partition(DELIMITER)
        return FileEndMessage(module=module)

    if COVERAGE_END_MARKER in line:
        module, payload = _split(line)
        payload = payload.replace(COVERAGE_END_MARKER, "")
        return CoverageResultMessage(module=module, payload=_load_object(payload, line))

    if EXCEPTION_END_MARKER in line:
        context, payload = _split(line)
        message = payload.split(EXCEPTION_END_MARKER)[0]
        try:
            decoded = json.loads(message)
        except json.JSONDecodeError:
            decoded = message
        return ExceptionNotice(module=context or None, message=str(decoded))

    stripped = line.replace(TEST_START_MARKER, "").replace(TEST_END_MARKER, "")
    module, payload = _split(stripped)
    try:
        fragment = ResultFragment.model_validate_json(payload)
    except ValidationError as exc:
        raise DecodeError(f"invalid test result payload: {exc}", line) from exc
    return TestResultMessage(module=module, fragment=fragment)


def _split(line: str) -> tuple[str, str]:
    module, sep, payload = line.partition(DELIMITER)
    if not sep:
        raise DecodeError("missing delimiter", line)
    return module, payload


def _load_object(payload: str, line: str) -> Mapping[str, Any]:
    try:
        value = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"invalid JSON payload: {exc}", line) from exc
    if not isinstance(value, dict):
        raise DecodeError("payload is not a JSON object", line)
    return value


def _escape(payload: str) -> str:
    # "@" only occurs inside JSON strings, where the escape decodes back to it.
    return payload.replace("@", "\\u0040")


def encode_line(message: ProtocolMessage) -> str:
    """Encode a message as a single line, without the trailing newline."""
    match message:
        case TestResultMessage(module=module, fragment=fragment):
            return (
                f"{TEST_START_MARKER}{module}{DELIMITER}"
                f"{_escape(fragment.model_dump_json())}{TEST_END_MARKER}"
            )
        case CoverageResultMessage(module=module, payload=payload):
            body = _escape(json.dumps(payload))
            return f"{module}{DELIMITER}{body}{COVERAGE_END_MARKER}"
        case FileEndMessage(module=module):
            return f"{module}{DELIMITER}{TEST_FILE_END_MARKER}"
        case ExceptionNotice(module=module, message=text):
            body = _escape(json.dumps(text))
            return f"{module or ''}{DELIMITER}{body}{EXCEPTION_END_MARKER}"
    raise TypeError(f"Cannot encode {type(message).__name__}")


@dataclass(frozen=True, kw_only=True)
class OutputBlock:
    """Result scraped from a worker's stdout in batch fallback mode."""

    fragment: ResultFragment
    coverage: Mapping[str, Any] | None
    remaining: str


def encode_block(
    fragment: ResultFragment, coverage: Mapping[str, Any] | None = None
) -> str:
    """Frame a merged result (and optional coverage) for stdout scraping."""
    body = _escape(fragment.model_dump_json())
    if coverage is not None:
        body = f"{body}{SEPARATOR}{_escape(json.dumps(coverage))}"
    return f"{END_MARKER}{body}{END_MARKER}"


def extract_block(stdout: str) -> OutputBlock | None:
    """Find a framed result in captured stdout.

    Returns ``None`` when stdout holds no complete, decodable block.
    """
    start = stdout.find(END_MARKER)
    end = stdout.rfind(END_MARKER)
    if start == -1 or end == start:
        return None

    body = stdout[start + len(END_MARKER) : end]
    result_json, _, coverage_json = body.partition(SEPARATOR)
    try:
        fragment = ResultFragment.model_validate_json(result_json)
        coverage = json.loads(coverage_json) if coverage_json else None
    except (ValidationError, json.JSONDecodeError) as exc:
        log.warning("Cannot decode output block: %s", exc)
        return None

    remaining = stdout[:start] + stdout[end + len(END_MARKER) :]
    return OutputBlock(fragment=fragment, coverage=coverage, remaining=remaining)
