"""Runs the tests of one module inside a worker process.

The harness loads the module by path, runs its ``setUp`` hook, every
``test*`` function (sync or async) and its ``tearDown`` hook, and reports
each outcome to the orchestrator as soon as it is known. The run always
ends with a file-end message.
"""

import asyncio
import builtins
import importlib.util
import inspect
import json
import logging
import os
import re
import sys
import threading
import traceback
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any

import coverage

from whiskey.constants import (
    HOOK_TIMEOUT_RATIO,
    INIT_FUNCTION_NAME,
    SETUP_FUNCTION_NAME,
    TEARDOWN_FUNCTION_NAME,
    TEST_FUNCTION_PREFIX,
)
from whiskey.models.definition import WorkerInvocation
from whiskey.models.message import (
    CoverageResultMessage,
    ExceptionNotice,
    FileEndMessage,
    TestResultMessage,
)
from whiskey.models.result import (
    ModuleError,
    ModuleErrorName,
    ResultFragment,
    TestError,
    TestOutcome,
)
from whiskey.worker.channel import Channel

log = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parents[1]

CUSTOM_ASSERT_NAME = "custom_assert"


class HookError(Exception):
    """Raised when a hook fails or runs out of time."""


def _error(exc: BaseException) -> TestError:
    stack = "".join(traceback.format_exception(exc))
    return TestError.from_exception(exc, stack=stack)


def load_module_from_path(
    path: str, injected: Mapping[str, Any] | None = None
) -> ModuleType:
    """Import a module from a file path, seeding its namespace first."""
    name = f"whiskey_module_{Path(path).stem}"
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load module from {path}")

    module = importlib.util.module_from_spec(spec)
    for key, value in (injected or {}).items():
        setattr(module, key, value)
    sys.modules[name] = module
    spec.loader.exec_module(module)
    return module


def collect_tests(
    module: ModuleType, pattern: str | None = None
) -> list[tuple[str, Callable[[], Any]]]:
    """Return the module's test functions in definition order."""
    regex = re.compile(pattern) if pattern else None
    return [
        (name, value)
        for name, value in vars(module).items()
        if name.startswith(TEST_FUNCTION_PREFIX)
        and inspect.isfunction(value)
        and (regex is None or regex.search(name))
    ]


async def call(func: Callable[[], Any]) -> None:
    """Call a sync or async function; sync ones run in a worker thread."""
    if inspect.iscoroutinefunction(func):
        await func()
        return

    result = await asyncio.to_thread(func)
    if inspect.isawaitable(result):
        await result


@dataclass(kw_only=True)
class ModuleRunner:
    """Runs a single module and streams its results over ``channel``."""

    invocation: WorkerInvocation
    channel: Channel
    outcomes: dict[str, TestOutcome] = field(default_factory=dict)
    running: set[str] = field(default_factory=set)
    _attributed: dict[str, TestError] = field(default_factory=dict)
    _uncaught_count: int = 0
    _loop: asyncio.AbstractEventLoop | None = None

    @property
    def module_path(self) -> str:
        return self.invocation.module_path

    @property
    def hook_timeout(self) -> float:
        return self.invocation.timeout_ms * HOOK_TIMEOUT_RATIO / 1000

    async def run(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._loop.set_exception_handler(self._on_loop_exception)
        threading.excepthook = self._on_thread_exception

        self._prepare_paths()
        cov = self._start_coverage()
        builtins_before = set(vars(builtins))

        try:
            if (module := self._load()) is not None:
                await self._run_module(module)
            if self.invocation.scope_leaks:
                self._check_scope_leaks(builtins_before)
        finally:
            if cov is not None and self.invocation.coverage_dir is not None:
                self._report_coverage(cov, Path(self.invocation.coverage_dir))
            self.channel.emit(FileEndMessage(module=self.module_path))
            await self.channel.flush()

    def _prepare_paths(self) -> None:
        for path in (self.invocation.cwd, os.path.dirname(self.module_path)):
            if path and path not in sys.path:
                sys.path.insert(0, path)
        if self.invocation.chdir:
            os.chdir(self.invocation.chdir)

    def _load(self) -> ModuleType | None:
        if not os.path.exists(self.module_path):
            self._module_error(
                "file_does_not_exist",
                TestError(
                    name="FileNotFoundError",
                    message=f"Test file does not exist: {self.module_path}",
                ),
            )
            return None

        injected = {}
        try:
            if self.invocation.custom_assert_module:
                injected[CUSTOM_ASSERT_NAME] = load_module_from_path(
                    self.invocation.custom_assert_module
                )
            return load_module_from_path(self.module_path, injected)
        except Exception as exc:
            self._module_error("uncaught_exception", _error(exc))
            return None

    async def _run_module(self, module: ModuleType) -> None:
        init_file = self.invocation.init_file
        if init_file and not await self._run_init_file(init_file):
            return

        setup = getattr(module, SETUP_FUNCTION_NAME, None)
        if callable(setup) and not await self._run_hook(SETUP_FUNCTION_NAME, setup):
            return

        semaphore = asyncio.Semaphore(self.invocation.concurrency)
        tests = collect_tests(module, self.invocation.pattern)
        await asyncio.gather(
            *(self._run_test(name, func, semaphore) for name, func in tests)
        )

        teardown = getattr(module, TEARDOWN_FUNCTION_NAME, None)
        if callable(teardown):
            await self._run_hook(TEARDOWN_FUNCTION_NAME, teardown)

    async def _run_init_file(self, init_file: str) -> bool:
        try:
            init_module = load_module_from_path(init_file)
        except Exception as exc:
            self._record(INIT_FUNCTION_NAME, "failure", _error(exc))
            return False

        init = getattr(init_module, INIT_FUNCTION_NAME, None)
        if not callable(init):
            return True
        return await self._run_hook(INIT_FUNCTION_NAME, init)

    async def _run_hook(self, name: str, func: Callable[[], Any]) -> bool:
        try:
            await asyncio.wait_for(call(func), timeout=self.hook_timeout)
        except TimeoutError:
            exc = HookError(f"{name} timed out after {self.hook_timeout:.3f}s")
            self._record(name, "failure", TestError.from_exception(exc))
            return False
        except Exception as exc:
            self._record(name, "failure", _error(exc))
            return False
        return True

    async def _run_test(
        self, name: str, func: Callable[[], Any], semaphore: asyncio.Semaphore
    ) -> None:
        async with semaphore:
            self.running.add(name)
            try:
                await call(func)
            except Exception as exc:
                error: TestError | None = _error(exc)
            else:
                error = None
            finally:
                self.running.discard(name)

        error = error or self._attributed.pop(name, None)
        if error is None:
            self._record(name, "success")
        else:
            self._record(name, "failure", error)
        await self.channel.flush()

    def _record(self, name: str, status: str, error: TestError | None = None) -> None:
        outcome = TestOutcome.model_validate(
            {"name": name, "status": status, "error": error}
        )
        self.outcomes[name] = outcome
        self.channel.emit(
            TestResultMessage(
                module=self.module_path,
                fragment=ResultFragment(tests={name: outcome}),
            )
        )

    def _module_error(self, name: ModuleErrorName, error: TestError) -> None:
        self.channel.emit(
            TestResultMessage(
                module=self.module_path,
                fragment=ResultFragment(error=ModuleError(name=name, error=error)),
            )
        )

    def _on_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        exc = context.get("exception")
        if exc is None:
            error = TestError(name="UncaughtException", message=context["message"])
        else:
            error = _error(exc)
        self._record_uncaught(error)

    def _on_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_value is None or self._loop is None:
            return
        error = _error(args.exc_value)
        self._loop.call_soon_threadsafe(self._record_uncaught, error)

    def _record_uncaught(self, error: TestError) -> None:
        if len(self.running) == 1:
            self._attributed.setdefault(next(iter(self.running)), error)
            return

        self._uncaught_count += 1
        self._record(f"uncaught_exception_{self._uncaught_count}", "failure", error)
        self.channel.emit(
            ExceptionNotice(module=self.module_path, message=error.describe())
        )

    def _check_scope_leaks(self, before: set[str]) -> None:
        leaked = sorted(set(vars(builtins)) - before)
        if leaked:
            self._record(
                "scope_leaks",
                "failure",
                TestError(name="ScopeLeak", message=f"Leaked names: {', '.join(leaked)}"),
            )

    def _start_coverage(self) -> coverage.Coverage | None:
        if self.invocation.coverage_dir is None:
            return None
        cov = coverage.Coverage(data_file=None, omit=[f"{PACKAGE_DIR}/*"])
        cov.start()
        return cov

    def _report_coverage(self, cov: coverage.Coverage, output: Path) -> None:
        cov.stop()
        files: dict[str, Any] = {}
        for filename in cov.get_data().measured_files():
            try:
                _, statements, _, missing, _ = cov.analysis2(filename)
            except coverage.CoverageException as exc:
                log.debug("Skipping coverage for %s: %s", filename, exc)
                continue
            files[filename] = {"statements": sorted(statements), "missing": sorted(missing)}

        payload = {"files": files}
        output.mkdir(parents=True, exist_ok=True)
        (output / f"{Path(self.module_path).stem}.{os.getpid()}.json").write_text(
            json.dumps(payload)
        )
        self.channel.emit(CoverageResultMessage(module=self.module_path, payload=payload))


async def run_worker(invocation: WorkerInvocation) -> int:
    """Run one module and report it; returns the worker's exit status."""
    channel = await Channel.connect(invocation.module_path, invocation.socket_path)
    runner = ModuleRunner(invocation=invocation, channel=channel)
    try:
        await runner.run()
    finally:
        await channel.close()
    return 0


def main(argv: list[str] | None = None) -> None:
    """Worker entry point."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        invocation = WorkerInvocation.from_argv(
            sys.argv[1:] if argv is None else argv
        )
    except ValueError as exc:
        print(f"Invalid worker arguments: {exc}", file=sys.stderr)
        sys.exit(2)

    sys.exit(asyncio.run(run_worker(invocation)))
