"""Unix socket server receiving protocol lines from workers."""

import asyncio
import logging
import os
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from whiskey.errors import TransportError
from whiskey.models.message import ProtocolMessage
from whiskey.protocol import LineSplitter, decode_line

log = logging.getLogger(__name__)

type Dispatch = Callable[[ProtocolMessage], None]

READ_CHUNK_SIZE = 64 * 1024


def unique_socket_path(base: str) -> str:
    """Derive a per-run socket path from ``base`` with a random suffix.

    ``/tmp/whiskey-parent.sock`` becomes ``/tmp/whiskey-parent-<hex>.sock``.
    """
    path = Path(base)
    return str(path.with_name(f"{path.stem}-{uuid.uuid4().hex[:12]}{path.suffix}"))


@dataclass(kw_only=True)
class IpcListener:
    """Accepts one connection per worker and decodes its lines.

    Each connection gets its own ``LineSplitter``; every decoded message is
    handed to ``dispatch``. Correlating a message with a job is left to the
    dispatch target, using the module identifier inside the message.
    """

    socket_path: str
    dispatch: Dispatch
    _server: asyncio.Server | None = field(default=None, repr=False)
    _connections: set[asyncio.Task[None]] = field(default_factory=set, repr=False)

    @property
    def serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self) -> None:
        """Bind the socket; the listener accepts connections on return.

        Raises:
            TransportError: If the socket cannot be bound

        """
        try:
            self._server = await asyncio.start_unix_server(
                self._handle_connection, path=self.socket_path
            )
        except OSError as exc:
            raise TransportError(
                f"Cannot listen on {self.socket_path}: {exc}"
            ) from exc
        log.info("Listening on %s", self.socket_path)

    async def stop(self) -> None:
        """Close the server and every open connection, then remove the socket."""
        if self._server is None:
            return

        server, self._server = self._server, None
        server.close()
        connections = list(self._connections)
        for task in connections:
            task.cancel()
        await asyncio.gather(*connections, return_exceptions=True)
        await server.wait_closed()

        try:
            os.unlink(self.socket_path)
        except FileNotFoundError:
            pass
        log.info("Stopped listening on %s", self.socket_path)

    async def drain(self, timeout: float) -> bool:
        """Wait for open connections to reach end of stream.

        Returns:
            True if every connection finished within ``timeout`` seconds

        """
        if not self._connections:
            return True
        _, pending = await asyncio.wait(set(self._connections), timeout=timeout)
        if pending:
            log.warning("%d connection(s) still open after %.1fs", len(pending), timeout)
        return not pending

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        if task is None:
            writer.close()
            raise RuntimeError("Worker connections must be handled inside a task")
        self._connections.add(task)
        splitter = LineSplitter()
        log.debug("Worker connected")

        try:
            while data := await reader.read(READ_CHUNK_SIZE):
                for line in splitter.append_data(data):
                    if line.strip():
                        self._dispatch(line)
            if splitter.pending.strip():
                log.warning("Discarding unterminated data: %r", splitter.pending[:200])
        except ConnectionError as exc:
            log.warning("Worker connection failed: %s", exc)
        finally:
            self._connections.discard(task)
            writer.close()

    def _dispatch(self, line: str) -> None:
        message = decode_line(line)
        try:
            self.dispatch(message)
        except Exception:
            log.exception("Dispatch failed for %s", type(message).__name__)
