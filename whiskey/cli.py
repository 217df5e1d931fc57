"""CLI entry point for the whiskey test runner."""

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence
from contextlib import AsyncExitStack
from typing import Any

from pydantic import ValidationError

from whiskey.config import RunConfig
from whiskey.constants import VERSION
from whiskey.errors import TransportError
from whiskey.models.definition import TestModuleSpec
from whiskey.orchestrator import TestOrchestrator
from whiskey.reporters.base import CoverageSink
from whiskey.reporters.loading import (
    load_coverage_reporter_manifest,
    load_test_reporter_manifest,
)
from whiskey.supervisor import WorkerSupervisor

USAGE = 'Usage: whiskey --tests "files" [options]'

LOG_LEVELS = {1: logging.WARNING, 2: logging.INFO, 3: logging.DEBUG}

# Exit statuses wrap modulo 256; a run with 256 failures must not exit 0.
MAX_EXIT_STATUS = 255


def parse_tests(tests: str) -> Sequence[TestModuleSpec]:
    """Parse whitespace-separated ``path`` or ``path:pattern`` entries."""
    return tuple(TestModuleSpec.parse(entry) for entry in tests.split())


def reporter_options(config: RunConfig) -> dict[str, Any]:
    """Options offered to reporter configs; each picks the fields it declares."""
    return {
        "print_stdout": config.print_stdout,
        "print_stderr": config.print_stderr,
        "coverage_dir": config.coverage_output,
        "strip_prefix": str(config.cwd),
    }


async def run(config: RunConfig) -> int:
    """Run the configured test modules and return the exit code."""
    log = logging.getLogger("whiskey")

    if not config.tests:
        print(USAGE)
        return 0

    options = reporter_options(config)
    test_manifest = load_test_reporter_manifest(config.test_reporter)
    coverage_manifest = (
        load_coverage_reporter_manifest(config.coverage_reporter)
        if config.coverage
        else None
    )

    async with AsyncExitStack() as stack:
        reporter = await stack.enter_async_context(
            test_manifest.reporter_factory(test_manifest.config_cls.model_validate(options))
        )
        coverage_sink: CoverageSink | None = None
        if coverage_manifest is not None:
            coverage_sink = await stack.enter_async_context(
                coverage_manifest.reporter_factory(
                    coverage_manifest.config_cls.model_validate(options)
                )
            )

        orchestrator = TestOrchestrator(
            config=config,
            reporter=reporter,
            coverage_sink=coverage_sink,
            supervisor=WorkerSupervisor(passthrough=config.debug),
        )

        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, orchestrator.force_stop)
        try:
            return await orchestrator.run(config.tests)
        except TransportError as exc:
            log.error("Cannot establish control channel: %s", exc)
            return 1
        finally:
            loop.remove_signal_handler(signal.SIGINT)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="whiskey",
        usage=USAGE,
        description="Run test modules, each in its own worker process",
    )
    parser.add_argument("-V", "--version", action="version", version=VERSION)
    parser.add_argument(
        "-t", "--tests", default="", help="Whitespace separated list of tests to run"
    )
    parser.add_argument(
        "-ti",
        "--test-init-file",
        help="An initialization file which is run before each test file",
    )
    parser.add_argument(
        "-c",
        "--chdir",
        help="Directory to which each test process chdirs before running the tests",
    )
    parser.add_argument(
        "-v",
        "--verbosity",
        type=int,
        choices=sorted(LOG_LEVELS),
        default=2,
        help="Test runner verbosity",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        help="How long to wait (ms) for a test file to complete before timing out",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        help="Maximum number of tests in a file which will run in parallel",
    )
    parser.add_argument(
        "--sequential",
        action="store_true",
        help="Run the tests in each file one at a time",
    )
    parser.add_argument(
        "--failfast", action="store_true", help="Stop after the first failure"
    )
    parser.add_argument(
        "--custom-assert-module",
        help="Path to a module exposed to tests as custom_assert",
    )
    parser.add_argument(
        "--print-stdout", action="store_true", help="Print data which was sent to stdout"
    )
    parser.add_argument(
        "--print-stderr", action="store_true", help="Print data which was sent to stderr"
    )
    parser.add_argument("--test-reporter", help="Test reporter type (cli or tap)")
    parser.add_argument("--coverage", action="store_true", help="Enable test coverage")
    parser.add_argument(
        "--coverage-reporter", help="Coverage reporter type (cli or html)"
    )
    parser.add_argument(
        "--coverage-dir", help="Directory where the HTML coverage report is saved"
    )
    parser.add_argument(
        "--socket-path", help="Base path of the socket workers report to"
    )
    parser.add_argument(
        "--scope-leaks",
        action="store_true",
        help="Fail a test file which leaks names into builtins",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Disable timeouts and pass worker output through for interactive debugging",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> RunConfig:
    """Build a run config; flags left unset keep the config defaults."""
    values: dict[str, Any] = {
        "tests": parse_tests(args.tests),
        "timeout_ms": args.timeout,
        "concurrency": args.concurrency,
        "sequential": args.sequential,
        "failfast": args.failfast,
        "test_init_file": args.test_init_file,
        "chdir": args.chdir,
        "custom_assert_module": args.custom_assert_module,
        "coverage": args.coverage,
        "coverage_reporter": args.coverage_reporter,
        "coverage_dir": args.coverage_dir,
        "test_reporter": args.test_reporter,
        "print_stdout": args.print_stdout,
        "print_stderr": args.print_stderr,
        "socket_path": args.socket_path,
        "debug": args.debug,
        "scope_leaks": args.scope_leaks,
        "verbosity": args.verbosity,
    }
    return RunConfig(**{key: value for key, value in values.items() if value is not None})


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    try:
        config = config_from_args(args)
    except ValidationError as exc:
        parser.error(str(exc))

    logging.basicConfig(
        level=LOG_LEVELS[config.verbosity],
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    exit_code = asyncio.run(run(config))
    sys.exit(min(exit_code, MAX_EXIT_STATUS))


if __name__ == "__main__":  # pragma: no cover
    main()
