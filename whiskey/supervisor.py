"""Launching and supervising worker processes."""

import asyncio
import logging
import signal
import sys
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import BinaryIO

from whiskey.models.definition import TestModuleSpec, WorkerInvocation

log = logging.getLogger(__name__)

type ExitCallback = Callable[["JobHandle"], None]

WORKER_COMMAND: Sequence[str] = (sys.executable, "-m", "whiskey.worker")

# Seconds to keep reading a dead worker's pipes, which stay open while any
# grandchild process holds them.
PIPE_DRAIN_GRACE = 1.0

READ_CHUNK_SIZE = 64 * 1024


@dataclass(kw_only=True, eq=False)
class JobHandle:
    """A running (or finished) worker and everything captured from it."""

    spec: TestModuleSpec
    invocation: WorkerInvocation
    process: asyncio.subprocess.Process = field(repr=False)
    started_at: float
    stdout: bytearray = field(default_factory=bytearray, repr=False)
    stderr: bytearray = field(default_factory=bytearray, repr=False)
    killed: bool = False
    returncode: int | None = None
    _exited: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    _exit_callbacks: list[ExitCallback] = field(default_factory=list, repr=False)

    @property
    def module(self) -> str:
        return self.invocation.module_path

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def exited(self) -> bool:
        return self._exited.is_set()

    @property
    def duration(self) -> float:
        return time.monotonic() - self.started_at

    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


@dataclass(kw_only=True)
class WorkerSupervisor:
    """Starts one worker process per module and tracks its lifecycle.

    In passthrough mode worker output is forwarded to this process's own
    stdout/stderr as it arrives instead of being captured, and the worker
    inherits stdin so it can be driven interactively.
    """

    command: Sequence[str] = WORKER_COMMAND
    passthrough: bool = False
    _tasks: set[asyncio.Task[None]] = field(default_factory=set, repr=False)

    async def launch(self, spec: TestModuleSpec, invocation: WorkerInvocation) -> JobHandle:
        """Start a worker for ``spec`` with the given invocation arguments.

        Raises:
            OSError: If the worker process cannot be started

        """
        argv = [*self.command, *invocation.to_argv()]
        log.debug("Launching worker: %s", argv)

        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=None if self.passthrough else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        handle = JobHandle(
            spec=spec,
            invocation=invocation,
            process=process,
            started_at=time.monotonic(),
        )
        log.info("Started worker pid=%d for %s", process.pid, handle.module)

        task = asyncio.create_task(self._supervise(handle))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return handle

    def kill(self, handle: JobHandle, sig: int = signal.SIGKILL) -> None:
        """Send ``sig`` to the worker; a no-op once killed or exited."""
        if handle.killed or handle.exited:
            return

        handle.killed = True
        log.info("Killing worker pid=%d for %s", handle.pid, handle.module)
        try:
            handle.process.send_signal(sig)
        except ProcessLookupError:
            log.debug("Worker pid=%d already gone", handle.pid)

    def is_alive(self, handle: JobHandle) -> bool:
        return not handle.exited and handle.process.returncode is None

    def on_exit(self, handle: JobHandle, callback: ExitCallback) -> None:
        """Call ``callback(handle)`` exactly once, after the worker exits."""
        if handle.exited:
            asyncio.get_running_loop().call_soon(callback, handle)
            return
        handle._exit_callbacks.append(callback)

    async def wait(self, handle: JobHandle) -> int | None:
        """Wait until the worker has exited and its pipes are drained."""
        await handle._exited.wait()
        return handle.returncode

    async def _supervise(self, handle: JobHandle) -> None:
        process = handle.process
        pumps = [
            asyncio.create_task(
                self._pump(process.stdout, handle.stdout, "stdout")
            ),
            asyncio.create_task(
                self._pump(process.stderr, handle.stderr, "stderr")
            ),
        ]

        handle.returncode = await process.wait()
        _, pending = await asyncio.wait(pumps, timeout=PIPE_DRAIN_GRACE)
        for pump in pending:
            pump.cancel()

        log.info(
            "Worker pid=%d for %s exited with code %s after %.3fs",
            handle.pid,
            handle.module,
            handle.returncode,
            handle.duration,
        )
        self._mark_exited(handle)

    def _mark_exited(self, handle: JobHandle) -> None:
        handle._exited.set()

        callbacks, handle._exit_callbacks = handle._exit_callbacks, []
        for callback in callbacks:
            try:
                callback(handle)
            except Exception:
                log.exception("Exit callback failed for %s", handle.module)

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        buffer: bytearray,
        target: str,
    ) -> None:
        if stream is None:
            return

        sink: BinaryIO | None = getattr(sys, target).buffer if self.passthrough else None
        while chunk := await stream.read(READ_CHUNK_SIZE):
            if sink is not None:
                sink.write(chunk)
                sink.flush()
            else:
                buffer.extend(chunk)
