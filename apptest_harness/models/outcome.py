"""Models for test run outcomes and process exit codes."""

from dataclasses import dataclass
from enum import Enum, IntEnum


class ResultKind(Enum):
    """Outcome reported by an app tester once a run is over."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    LAUNCH_FAILURE = "launch_failure"
    CRASHED = "crashed"
    TIMED_OUT = "timed_out"

    # Never expected from a finished run
    NOT_STARTED = "not_started"
    DEVICE_NOT_FOUND = "device_not_found"
    HARNESS_EXCEPTION = "harness_exception"
    BUILD_FAILURE = "build_failure"


class ExitCode(IntEnum):
    """Exit codes returned at the process boundary."""

    SUCCESS = 0
    TESTS_FAILED = 1
    INVALID_ARGUMENTS = 3
    TIMED_OUT = 70
    GENERAL_FAILURE = 71
    APP_CRASH = 80
    DEVICE_NOT_FOUND = 81
    APP_LAUNCH_FAILURE = 83
    SIMULATOR_FAILURE = 85
    DEVICE_FAILURE = 86
    APP_LAUNCH_TIMEOUT = 90


def to_exit_code(value: int) -> int:
    """Return the matching ExitCode member, or the raw value for custom codes."""
    try:
        return ExitCode(value)
    except ValueError:
        return value


@dataclass(frozen=True, kw_only=True)
class ExecutionOutcome:
    """Result of a single app run as reported by the app tester.

    An empty message carries no more information than a missing one.
    """

    kind: ResultKind
    message: str | None = None

    @property
    def detail(self) -> str | None:
        """Message if there is any text in it."""
        return self.message or None
