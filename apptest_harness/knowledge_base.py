"""Knowledge base of known issues recognised in run logs."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from apptest_harness.logs import Log
from apptest_harness.models.outcome import ExitCode

logger = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class KnownIssue:
    """A previously catalogued problem with a hint for the user."""

    human_message: str
    suggested_exit_code: int | None = None


class ErrorKnowledgeBase(Protocol):
    """Maps log content to known issues."""

    def is_known_issue(self, log: Log) -> KnownIssue | None:
        """Return the known issue found in the log, if any."""


@dataclass(frozen=True, kw_only=True)
class KnownIssueSignature:
    """Text which identifies a known issue when found in a log."""

    text: str
    issue: KnownIssue


DEFAULT_SIGNATURES: Sequence[KnownIssueSignature] = (
    KnownIssueSignature(
        text="Failed to launch the application, device is locked",
        issue=KnownIssue(
            human_message="Cannot launch the application while the device is locked",
            suggested_exit_code=ExitCode.DEVICE_FAILURE,
        ),
    ),
    KnownIssueSignature(
        text="Unable to boot the Simulator",
        issue=KnownIssue(
            human_message="The simulator failed to boot, try resetting it",
            suggested_exit_code=ExitCode.SIMULATOR_FAILURE,
        ),
    ),
    KnownIssueSignature(
        text="Could not find the application on the device",
        issue=KnownIssue(
            human_message="The application is not installed on the device anymore",
            suggested_exit_code=ExitCode.APP_LAUNCH_FAILURE,
        ),
    ),
    KnownIssueSignature(
        text="Local network prohibited",
        issue=KnownIssue(
            human_message=(
                "The application was not allowed to use the local network. "
                "Confirm the permission dialog or use the USB tunnel channel"
            ),
        ),
    ),
)


@dataclass(frozen=True, kw_only=True)
class StaticErrorKnowledgeBase:
    """Knowledge base backed by a fixed table of text signatures.

    Signatures are tried in table order; the first one found in the log wins.
    """

    signatures: Sequence[KnownIssueSignature] = DEFAULT_SIGNATURES

    def is_known_issue(self, log: Log) -> KnownIssue | None:
        """Search the log file for a known issue signature."""
        try:
            content = log.path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return None

        for signature in self.signatures:
            if signature.text in content:
                logger.debug("Known issue found in %s: %s", log.path, signature.text)
                return signature.issue

        return None
