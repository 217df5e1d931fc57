"""Wire markers and defaults shared by the orchestrator and the worker harness."""

VERSION = "0.3.0"

# Milliseconds a module may run before its worker is killed.
DEFAULT_TEST_TIMEOUT_MS = 15 * 1000

DEFAULT_CONCURRENCY = 100

DEFAULT_TEST_REPORTER = "cli"

DEFAULT_COVERAGE_REPORTER = "cli"

DEFAULT_VERBOSITY = 2

DEFAULT_SOCKET_PATH = "/tmp/whiskey-parent.sock"

INIT_FUNCTION_NAME = "init"
SETUP_FUNCTION_NAME = "setUp"
TEARDOWN_FUNCTION_NAME = "tearDown"

TEST_FUNCTION_PREFIX = "test"

# Share of the module timeout granted to each init/setUp/tearDown hook.
HOOK_TIMEOUT_RATIO = 0.25

# Placeholder for an absent positional worker argument.
ABSENT_ARGUMENT = "none"

DELIMITER = "@-delimiter-@"
TEST_START_MARKER = "@-test-start-@"
TEST_END_MARKER = "@-test-end-@"
TEST_FILE_END_MARKER = "@-test-file-end-@"
COVERAGE_END_MARKER = "@-coverage-end-@"
EXCEPTION_END_MARKER = "@-exception-end-@"

# Legacy batch framing used when a worker cannot reach the listener.
SEPARATOR = "@+separator+@"
END_MARKER = "@-end-@"
