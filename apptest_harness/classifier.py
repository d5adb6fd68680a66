"""Classification of run outcomes into process exit codes."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from apptest_harness.knowledge_base import ErrorKnowledgeBase
from apptest_harness.logs import Log
from apptest_harness.models.outcome import (
    ExecutionOutcome,
    ExitCode,
    ResultKind,
    to_exit_code,
)

CHECK_LOGS_MESSAGE = "Check logs for more information"


@dataclass(frozen=True, kw_only=True)
class ResultClassifier:
    """Turns an execution outcome into an exit code and one user-facing message."""

    knowledge_base: ErrorKnowledgeBase
    logger: logging.Logger = field(
        default_factory=lambda: logging.getLogger(__name__), repr=False
    )

    def classify(self, outcome: ExecutionOutcome, logs: Iterable[Log]) -> int:
        """Classify the outcome, consulting the knowledge base for launch problems.

        Args:
            outcome: Outcome reported by the app tester
            logs: Log files of the run, in the order they should be searched

        Returns:
            Exit code for the process, possibly a custom one suggested by the
            knowledge base

        """
        message = outcome.detail

        match outcome.kind:
            case ResultKind.SUCCEEDED:
                self.logger.info("Application finished the test run successfully")
                if message:
                    self.logger.info(message)
                return ExitCode.SUCCESS

            case ResultKind.FAILED:
                self.logger.info(
                    "Application finished the test run successfully with some failed tests"
                )
                if message:
                    self.logger.info(message)
                return ExitCode.TESTS_FAILED

            case ResultKind.LAUNCH_FAILURE:
                return self._log_problem(
                    "Failed to launch the application",
                    ExitCode.APP_LAUNCH_FAILURE,
                    message,
                    logs,
                )

            case ResultKind.CRASHED:
                return self._log_problem(
                    "Application test run crashed",
                    ExitCode.APP_LAUNCH_FAILURE,
                    message,
                    logs,
                )

            case ResultKind.TIMED_OUT:
                self.logger.warning("Application test run timed out")
                return ExitCode.TIMED_OUT

            case _:
                details = f"{message}\n\n" if message else ""
                self.logger.error(
                    "Application test run ended in an unexpected way: '%s'\n%s%s",
                    outcome.kind.value,
                    details,
                    CHECK_LOGS_MESSAGE,
                )
                return ExitCode.GENERAL_FAILURE

    def _log_problem(
        self,
        problem: str,
        default_exit_code: ExitCode,
        message: str | None,
        logs: Iterable[Log],
    ) -> int:
        for log in logs:
            if (issue := self.knowledge_base.is_known_issue(log)) is not None:
                self.logger.error("%s\n%s", problem, issue.human_message)
                if issue.suggested_exit_code is None:
                    return default_exit_code
                return to_exit_code(issue.suggested_exit_code)

        if message:
            self.logger.error("%s\n%s\n\n%s", problem, message, CHECK_LOGS_MESSAGE)
        else:
            self.logger.error("%s\n%s", problem, CHECK_LOGS_MESSAGE)

        return default_exit_code
