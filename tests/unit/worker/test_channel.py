"""Tests for the worker side of the protocol."""

import pytest

from whiskey.models.message import (
    CoverageResultMessage,
    FileEndMessage,
    TestResultMessage,
)
from whiskey.models.result import ResultFragment
from whiskey.protocol import extract_block
from whiskey.testing.factories import TestOutcomeFactory
from whiskey.worker.channel import Channel


async def test_connect_falls_back_to_buffering() -> None:
    """Without a listener the channel buffers instead of failing."""
    channel = await Channel.connect("/t/a.py", "/nonexistent/whiskey.sock")

    assert not channel.connected


async def test_unconnected_close_writes_merged_block(
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Buffered results are written to stdout as one framed block."""
    channel = Channel(module="/t/a.py")
    channel.emit(
        TestResultMessage(
            module="/t/a.py",
            fragment=ResultFragment(tests={"test_a": TestOutcomeFactory.build(name="test_a")}),
        )
    )
    channel.emit(
        TestResultMessage(
            module="/t/a.py",
            fragment=ResultFragment(tests={"test_b": TestOutcomeFactory.build(name="test_b")}),
        )
    )
    channel.emit(CoverageResultMessage(module="/t/a.py", payload={"files": {}}))
    channel.emit(FileEndMessage(module="/t/a.py"))

    await channel.close()

    block = extract_block(capsys.readouterr().out)
    assert block is not None
    assert set(block.fragment.tests) == {"test_a", "test_b"}
    assert block.coverage == {"files": {}}
