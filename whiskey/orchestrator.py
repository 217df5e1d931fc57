"""Test orchestrator driving one worker process per test module."""

import asyncio
import logging
import shutil
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from whiskey.config import RunConfig
from whiskey.errors import TransportError
from whiskey.listener import IpcListener, unique_socket_path
from whiskey.models.definition import TestModuleSpec, WorkerInvocation
from whiskey.models.message import (
    CoverageResultMessage,
    ExceptionNotice,
    FileEndMessage,
    ProtocolMessage,
    TestResultMessage,
)
from whiskey.models.result import (
    ModuleError,
    ModuleResult,
    ResultFragment,
    RunSummary,
    TestError,
)
from whiskey.protocol import extract_block
from whiskey.reporters.base import CoverageSink, TestReporter
from whiskey.supervisor import JobHandle, WorkerSupervisor
from whiskey.timeouts import TimeoutRegistry

log = logging.getLogger(__name__)

type RunState = Literal["idle", "running", "completed"]

type ModuleState = Literal["pending", "running", "succeeded", "failed", "timed_out"]

# Seconds to wait, once a worker has exited, for its connection to hit EOF.
EXIT_DRAIN_GRACE = 2.0


@dataclass(kw_only=True, eq=False)
class ModuleRun:
    """Bookkeeping for one module, from launch to terminal result."""

    spec: TestModuleSpec
    done: asyncio.Future[ModuleResult] = field(repr=False)
    state: ModuleState = "pending"
    job: JobHandle | None = None
    fragment: ResultFragment = field(default_factory=ResultFragment)
    received: bool = False
    file_ended: bool = False

    @property
    def module(self) -> str:
        return self.spec.path


@dataclass(kw_only=True)
class TestOrchestrator:
    """Runs test modules one at a time, each in its own worker process.

    A module finishes on whichever comes first: its worker exiting or its
    timeout firing. Finalization happens once per module, and completion of
    the run happens once, however many paths reach it.
    """

    __test__ = False

    config: RunConfig
    reporter: TestReporter
    coverage_sink: CoverageSink | None = None
    supervisor: WorkerSupervisor = field(default_factory=WorkerSupervisor)
    socket_path: str = ""
    summary: RunSummary = field(default_factory=RunSummary)
    state: RunState = "idle"
    _active: dict[str, ModuleRun] = field(default_factory=dict, repr=False)
    _timeouts: TimeoutRegistry[JobHandle] = field(
        default_factory=TimeoutRegistry, repr=False
    )
    _listener: IpcListener | None = field(default=None, repr=False)
    _stopped: bool = False
    _completion: asyncio.Future[int] | None = field(default=None, repr=False)
    _tasks: set[asyncio.Task[None]] = field(default_factory=set, repr=False)

    def __post_init__(self) -> None:
        if not self.socket_path:
            self.socket_path = unique_socket_path(self.config.socket_path)

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def active_modules(self) -> Sequence[str]:
        return list(self._active)

    async def run(self, specs: Sequence[TestModuleSpec]) -> int:
        """Run every module in order and return the exit status.

        Raises:
            TransportError: If the IPC listener cannot be started

        """
        if self.state != "idle":
            raise RuntimeError(f"Orchestrator cannot run from state {self.state}")

        self.state = "running"
        self._listener = IpcListener(socket_path=self.socket_path, dispatch=self.dispatch)
        try:
            await self._listener.start()
        except TransportError:
            self.state = "completed"
            raise

        if self.config.coverage:
            self._prepare_coverage_dir()

        self._notify(self.reporter.on_run_start)
        log.info("Running %d test module(s)", len(specs))

        try:
            for spec in specs:
                if self._stopped or self.state == "completed":
                    log.info("Run stopped, not launching %s", spec.path)
                    break
                await self._run_module(spec)
        finally:
            exit_code = await self.complete()

        return exit_code

    async def complete(self) -> int:
        """Finish the run; later calls return the first call's exit status."""
        if self._completion is None:
            self._completion = asyncio.ensure_future(self._complete())
        return await asyncio.shield(self._completion)

    def force_stop(self) -> None:
        """Kill every active worker and launch no further modules.

        Safe to call at any time and any number of times.
        """
        if not self._stopped:
            log.warning("Force-stopping run")
        self._stopped = True

        for run in list(self._active.values()):
            if run.job is None or run.state != "running":
                continue
            self._timeouts.clear(run.job)
            self.supervisor.kill(run.job)

    def dispatch(self, message: ProtocolMessage) -> None:
        """Apply a decoded protocol message to its module's bookkeeping."""
        if isinstance(message, ExceptionNotice) and message.module is None:
            log.warning("Protocol error: %s", message.message)
            return

        run = self._active.get(message.module or "")
        if run is None:
            log.warning(
                "Dropping %s for unknown module %s",
                type(message).__name__,
                message.module,
            )
            return
        if run.state != "running":
            log.debug("Dropping late %s for %s", type(message).__name__, run.module)
            return

        run.received = True
        match message:
            case TestResultMessage(fragment=fragment):
                run.fragment = run.fragment.merge(fragment)
                if self.config.failfast and _has_failure(fragment):
                    log.info("Failure in %s with failfast enabled", run.module)
                    self.force_stop()
            case CoverageResultMessage(payload=payload):
                self._forward_coverage(run.module, payload)
            case FileEndMessage():
                run.file_ended = True
            case ExceptionNotice(message=text):
                log.warning("Uncaught exception in %s: %s", run.module, text)

    async def _run_module(self, spec: TestModuleSpec) -> None:
        spec = spec.resolve(self.config.cwd)
        run = ModuleRun(spec=spec, done=asyncio.get_running_loop().create_future())
        if spec.path in self._active:
            log.warning("Module %s is already running, skipping duplicate", spec.path)
            return
        self._active[spec.path] = run

        try:
            try:
                job = await self.supervisor.launch(spec, self._invocation(spec))
            except OSError as exc:
                log.error("Cannot launch worker for %s: %s", spec.path, exc)
                run.state = "running"
                self._notify(self.reporter.on_module_start, spec.path)
                self._finalize(run, _launch_failure(spec.path, exc))
                return

            run.job = job
            run.state = "running"
            self._notify(self.reporter.on_module_start, spec.path)

            if self._stopped:
                self.supervisor.kill(job)
            elif not self.config.debug:
                self._timeouts.start(job, self.config.timeout_ms / 1000, self._on_timeout)
            self.supervisor.on_exit(job, self._on_exit)

            await run.done
        finally:
            if run.job is not None:
                self._timeouts.clear(run.job)
            del self._active[spec.path]

        # Reap the worker before the next module starts
        await self.supervisor.wait(job)

    def _invocation(self, spec: TestModuleSpec) -> WorkerInvocation:
        config = self.config

        def optional_path(value: str | None) -> str | None:
            return str(config.absolute(value)) if value else None

        return WorkerInvocation(
            module_path=spec.path,
            socket_path=self.socket_path,
            cwd=str(config.cwd),
            coverage_dir=str(config.coverage_output) if config.coverage else None,
            scope_leaks=config.scope_leaks,
            chdir=optional_path(config.chdir),
            custom_assert_module=optional_path(config.custom_assert_module),
            init_file=optional_path(config.test_init_file),
            timeout_ms=config.timeout_ms,
            concurrency=config.worker_concurrency,
            pattern=spec.pattern,
        )

    def _on_timeout(self, job: JobHandle) -> None:
        run = self._active.get(job.module)
        if run is None or run.job is not job or run.state != "running":
            return

        log.warning(
            "Module %s timed out after %d ms", job.module, self.config.timeout_ms
        )
        self.supervisor.kill(job)
        result = ModuleResult(
            path=job.module,
            stdout=job.stdout_text(),
            stderr=job.stderr_text(),
            timed_out=True,
        )
        self._finalize(run, result, state="timed_out")

    def _on_exit(self, job: JobHandle) -> None:
        run = self._active.get(job.module)
        if run is None or run.job is not job:
            return

        self._timeouts.clear(job)
        task = asyncio.create_task(self._finish_exited(run, job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _finish_exited(self, run: ModuleRun, job: JobHandle) -> None:
        if run.state != "running":
            return
        if self._listener is not None:
            await self._listener.drain(EXIT_DRAIN_GRACE)
        if run.state != "running":
            return

        fragment = run.fragment
        stdout = job.stdout_text()
        if not run.received and (block := extract_block(stdout)) is not None:
            log.info("Recovered results for %s from worker stdout", run.module)
            fragment = block.fragment
            stdout = block.remaining
            run.file_ended = True
            if block.coverage is not None:
                self._forward_coverage(run.module, block.coverage)

        error = fragment.error
        if error is None and not run.file_ended and not job.killed:
            error = ModuleError(
                name="uncaught_exception",
                error=TestError(
                    name="WorkerExited",
                    message=(
                        f"Worker exited with code {job.returncode} "
                        "before reporting all results"
                    ),
                ),
            )

        result = ModuleResult(
            path=run.module,
            tests=dict(fragment.tests),
            stdout=stdout,
            stderr=job.stderr_text(),
            error=error,
        )
        self._finalize(run, result)

    def _finalize(
        self, run: ModuleRun, result: ModuleResult, state: ModuleState | None = None
    ) -> None:
        if run.state != "running":
            return

        run.state = state or ("failed" if result.failed else "succeeded")
        self.summary.record(result)
        log.info(
            "Module %s %s: successes=%d failures=%d timeouts=%d",
            run.module,
            run.state,
            result.successes,
            result.failures,
            result.timeouts,
        )
        self._notify(self.reporter.on_module_complete, run.module, result)
        run.done.set_result(result)

        if self.config.failfast and result.failed:
            self.force_stop()

    async def _complete(self) -> int:
        self.state = "completed"

        for run in list(self._active.values()):
            if run.job is not None and run.state == "running":
                self.supervisor.kill(run.job)
                self._finalize(
                    run,
                    ModuleResult(
                        path=run.module,
                        tests=dict(run.fragment.tests),
                        stdout=run.job.stdout_text(),
                        stderr=run.job.stderr_text(),
                        error=run.fragment.error,
                    ),
                )
        self._timeouts.clear_all()
        if self._listener is not None:
            await self._listener.stop()

        exit_code = self.summary.exit_code
        try:
            exit_code = self.reporter.on_run_complete()
        except Exception:
            log.exception("Test reporter failed to complete")

        if self.coverage_sink is not None:
            self._notify(self.coverage_sink.on_run_complete)

        log.info(
            "Run completed: successes=%d failures=%d timeouts=%d",
            self.summary.successes,
            self.summary.failures,
            self.summary.timeouts,
        )
        return exit_code

    def _forward_coverage(self, module: str, payload: Any) -> None:
        if self.coverage_sink is None:
            log.debug("Ignoring coverage payload for %s", module)
            return
        self._notify(self.coverage_sink.on_coverage_payload, module, payload)

    def _prepare_coverage_dir(self) -> None:
        output = self.config.coverage_output
        shutil.rmtree(output, ignore_errors=True)
        output.mkdir(parents=True)

    def _notify(self, method: Callable[..., Any], *args: Any) -> None:
        try:
            method(*args)
        except Exception:
            log.exception("Reporter call %s failed", getattr(method, "__name__", method))


def _has_failure(fragment: ResultFragment) -> bool:
    return fragment.error is not None or any(
        t.status != "success" for t in fragment.tests.values()
    )


def _launch_failure(path: str, exc: OSError) -> ModuleResult:
    return ModuleResult(
        path=path,
        error=ModuleError(name="uncaught_exception", error=TestError.from_exception(exc)),
    )
