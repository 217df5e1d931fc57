"""Worker side of the line protocol."""

import asyncio
import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from whiskey.models.message import (
    CoverageResultMessage,
    ProtocolMessage,
    TestResultMessage,
)
from whiskey.models.result import ResultFragment
from whiskey.protocol import encode_block, encode_line

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class Channel:
    """Sends protocol messages for one module to the orchestrator.

    Without a connection, messages are buffered and written to stdout as a
    single framed block when the channel is closed.
    """

    module: str
    writer: asyncio.StreamWriter | None = None
    buffered: list[ProtocolMessage] = field(default_factory=list)

    @classmethod
    async def connect(cls, module: str, socket_path: str) -> "Channel":
        try:
            _, writer = await asyncio.open_unix_connection(socket_path)
        except OSError as exc:
            log.warning("Cannot connect to %s, reporting on stdout: %s", socket_path, exc)
            return cls(module=module)
        return cls(module=module, writer=writer)

    @property
    def connected(self) -> bool:
        return self.writer is not None

    def emit(self, message: ProtocolMessage) -> None:
        if self.writer is None:
            self.buffered.append(message)
            return
        self.writer.write(f"{encode_line(message)}\n".encode())

    async def flush(self) -> None:
        if self.writer is not None:
            await self.writer.drain()

    async def close(self) -> None:
        if self.writer is None:
            fragment, coverage = self._merge_buffered()
            sys.stdout.write(encode_block(fragment, coverage))
            sys.stdout.flush()
            return

        await self.writer.drain()
        self.writer.close()
        await self.writer.wait_closed()

    def _merge_buffered(self) -> tuple[ResultFragment, Mapping[str, Any] | None]:
        fragment = ResultFragment()
        coverage = None
        for message in self.buffered:
            if isinstance(message, TestResultMessage):
                fragment = fragment.merge(message.fragment)
            elif isinstance(message, CoverageResultMessage):
                coverage = message.payload
        return fragment, coverage
