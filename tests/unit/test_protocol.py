"""Tests for the worker line protocol."""

import json

import pytest

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
from whiskey.models.message import (
    CoverageResultMessage,
    ExceptionNotice,
    FileEndMessage,
    TestResultMessage,
)
from whiskey.models.result import ModuleError, ResultFragment, TestError
from whiskey.protocol import (
    LineSplitter,
    decode_line,
    encode_block,
    encode_line,
    extract_block,
)
from whiskey.testing.factories import TestOutcomeFactory


def test_splitter_yields_complete_lines_across_chunks() -> None:
    """Reassembles lines split over several chunks."""
    splitter = LineSplitter()

    assert list(splitter.append_data(b"first li")) == []
    assert list(splitter.append_data(b"ne\nsecond\nthi")) == ["first line", "second"]
    assert splitter.pending == b"thi"
    assert list(splitter.append_data(b"rd\n")) == ["third"]
    assert splitter.pending == b""


def test_splitter_keeps_unconsumed_lines_buffered() -> None:
    """Lines not pulled from the generator stay available for the next call."""
    splitter = LineSplitter()

    lines = splitter.append_data(b"a\nb\n")
    assert next(lines) == "a"

    assert list(splitter.append_data(b"c\n")) == ["b", "c"]


def test_splitter_handles_multibyte_characters_split_between_chunks() -> None:
    """Splits on bytes, so a character cut in half is decoded once whole."""
    splitter = LineSplitter()
    data = "naïve\n".encode()

    assert list(splitter.append_data(data[:3])) == []
    assert list(splitter.append_data(data[3:])) == ["naïve"]


def test_decode_test_result_line() -> None:
    """Decodes outcomes framed by test start and end markers."""
    outcome = TestOutcomeFactory.build(name="test_one")
    fragment = ResultFragment(tests={"test_one": outcome})
    line = (
        f"{TEST_START_MARKER}/tmp/a.py{DELIMITER}"
        f"{fragment.model_dump_json()}{TEST_END_MARKER}"
    )

    message = decode_line(line)

    assert message == TestResultMessage(module="/tmp/a.py", fragment=fragment)


def test_decode_file_end_line() -> None:
    """Decodes the file end marker with its module prefix."""
    message = decode_line(f"/tmp/a.py{DELIMITER}{TEST_FILE_END_MARKER}")

    assert message == FileEndMessage(module="/tmp/a.py")


def test_decode_coverage_line() -> None:
    """Decodes an opaque coverage payload."""
    payload = {"files": {"/src/x.py": {"statements": [1, 2], "missing": [2]}}}

    message = decode_line(f"/tmp/a.py{DELIMITER}{json.dumps(payload)}{COVERAGE_END_MARKER}")

    assert message == CoverageResultMessage(module="/tmp/a.py", payload=payload)


def test_decode_exception_line() -> None:
    """Decodes an exception notice and its module context."""
    message = decode_line(
        f"/tmp/a.py{DELIMITER}{json.dumps('boom')}{EXCEPTION_END_MARKER}"
    )

    assert message == ExceptionNotice(module="/tmp/a.py", message="boom")


def test_file_end_marker_takes_precedence() -> None:
    """A line holding several markers is classified by the first in order."""
    line = f"/tmp/a.py{DELIMITER}{TEST_FILE_END_MARKER}{COVERAGE_END_MARKER}"

    assert decode_line(line) == FileEndMessage(module="/tmp/a.py")


def test_coverage_marker_takes_precedence_over_exception() -> None:
    """Coverage is checked before exception notices."""
    module = f"/tmp/{EXCEPTION_END_MARKER}.py"
    line = f"{module}{DELIMITER}{{}}{COVERAGE_END_MARKER}"

    assert decode_line(line) == CoverageResultMessage(module=module, payload={})


@pytest.mark.parametrize(
    "line",
    [
        "garbage without any marker",
        f"{TEST_START_MARKER}/tmp/a.py{DELIMITER}not json{TEST_END_MARKER}",
        f"/tmp/a.py{DELIMITER}[1, 2]{COVERAGE_END_MARKER}",
        f"/tmp/a.py no delimiter {COVERAGE_END_MARKER}",
    ],
)
def test_malformed_line_becomes_exception_notice(line: str) -> None:
    """Undecodable lines produce a context-free notice instead of raising."""
    message = decode_line(line)

    assert isinstance(message, ExceptionNotice)
    assert message.module is None
    assert "Cannot decode" in message.message


def test_encoded_lines_decode_to_the_same_message() -> None:
    """Lines written by workers are read back unchanged."""
    error = ModuleError(
        name="uncaught_exception", error=TestError(name="ValueError", message="bad")
    )
    messages = [
        TestResultMessage(
            module="/tmp/a.py",
            fragment=ResultFragment(
                tests={"test_x": TestOutcomeFactory.build(name="test_x")}
            ),
        ),
        TestResultMessage(module="/tmp/a.py", fragment=ResultFragment(error=error)),
        CoverageResultMessage(module="/tmp/a.py", payload={"files": {}}),
        FileEndMessage(module="/tmp/a.py"),
        ExceptionNotice(module="/tmp/a.py", message="line one\nline two"),
    ]

    for message in messages:
        line = encode_line(message)
        assert "\n" not in line
        assert decode_line(line) == message


RESERVED_MARKERS = [
    DELIMITER,
    TEST_START_MARKER,
    TEST_END_MARKER,
    TEST_FILE_END_MARKER,
    COVERAGE_END_MARKER,
    EXCEPTION_END_MARKER,
    SEPARATOR,
    END_MARKER,
]


@pytest.mark.parametrize("marker", RESERVED_MARKERS)
def test_marker_in_error_message_survives_encoding(marker: str) -> None:
    """A failure message quoting a marker is read back unchanged."""
    outcome = TestOutcomeFactory.build(
        name="test_markers",
        status="failure",
        error=TestError(name="AssertionError", message=f"got {marker}", stack=marker),
    )
    message = TestResultMessage(
        module="/tmp/a.py", fragment=ResultFragment(tests={"test_markers": outcome})
    )

    line = encode_line(message)
    _, _, payload = line.partition(DELIMITER)

    assert marker not in payload.removesuffix(TEST_END_MARKER)
    assert decode_line(line) == message


@pytest.mark.parametrize("marker", RESERVED_MARKERS)
def test_marker_in_exception_notice_survives_encoding(marker: str) -> None:
    """Exception text quoting a marker keeps its module context."""
    message = ExceptionNotice(module="/tmp/a.py", message=f"Unhandled: {marker}")

    assert decode_line(encode_line(message)) == message


@pytest.mark.parametrize("marker", RESERVED_MARKERS)
def test_marker_in_coverage_path_survives_encoding(marker: str) -> None:
    """Coverage keyed by a path holding a marker is read back unchanged."""
    payload = {"files": {f"/src/{marker}.py": {"statements": [1], "missing": []}}}
    message = CoverageResultMessage(module="/tmp/a.py", payload=payload)

    assert decode_line(encode_line(message)) == message


@pytest.mark.parametrize("marker", RESERVED_MARKERS)
def test_marker_in_block_survives_extraction(marker: str) -> None:
    """Framed stdout results quoting a marker are recovered whole."""
    outcome = TestOutcomeFactory.build(
        name="test_markers",
        status="failure",
        error=TestError(name="Error", message=marker),
    )
    fragment = ResultFragment(tests={"test_markers": outcome})
    coverage = {"files": {f"/src/{marker}.py": {"statements": [], "missing": []}}}

    block = extract_block(f"out\n{encode_block(fragment, coverage)}")

    assert block is not None
    assert block.fragment == fragment
    assert block.coverage == coverage
    assert block.remaining == "out\n"


def test_extract_block_recovers_fragment_and_output() -> None:
    """Finds the framed result and returns the surrounding output."""
    fragment = ResultFragment(tests={"test_a": TestOutcomeFactory.build(name="test_a")})
    stdout = f"before\n{encode_block(fragment, {'files': {}})}after\n"

    block = extract_block(stdout)

    assert block is not None
    assert block.fragment == fragment
    assert block.coverage == {"files": {}}
    assert block.remaining == "before\nafter\n"


def test_extract_block_without_coverage() -> None:
    """Coverage is optional in a block."""
    block = extract_block(encode_block(ResultFragment()))

    assert block is not None
    assert block.coverage is None
    assert block.fragment == ResultFragment()


@pytest.mark.parametrize(
    "stdout",
    ["", "plain output", f"{END_MARKER}truncated", f"{END_MARKER}not json{END_MARKER}"],
)
def test_extract_block_returns_none_without_valid_block(stdout: str) -> None:
    """Returns None when stdout holds no complete, decodable block."""
    assert extract_block(stdout) is None
