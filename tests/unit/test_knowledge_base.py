"""Tests for the static knowledge base and the log collection."""

from pathlib import Path

from apptest_harness.knowledge_base import (
    KnownIssue,
    KnownIssueSignature,
    StaticErrorKnowledgeBase,
)
from apptest_harness.logs import Log, Logs
from apptest_harness.models.outcome import ExitCode


def test_logs_keep_registration_order(tmp_path: Path) -> None:
    """Logs iterate in the order they were registered."""
    logs = Logs(tmp_path / "out")

    first = logs.create("b.log", "second name, first log")
    second = logs.add(tmp_path / "a.log", "external")

    assert list(logs) == [first, second]
    assert len(logs) == 2
    assert first.path == tmp_path / "out" / "b.log"
    assert (tmp_path / "out").is_dir()


def test_default_signature_is_found(tmp_path: Path) -> None:
    """Known text in a log file is recognised."""
    path = tmp_path / "device.log"
    path.write_text("...\nerror: Unable to boot the Simulator (code 164)\n")

    issue = StaticErrorKnowledgeBase().is_known_issue(Log(path=path, description="d"))

    assert issue is not None
    assert issue.suggested_exit_code == ExitCode.SIMULATOR_FAILURE


def test_first_signature_in_table_order_wins(tmp_path: Path) -> None:
    """Signatures are tried in table order."""
    path = tmp_path / "run.log"
    path.write_text("beta alpha")
    kb = StaticErrorKnowledgeBase(
        signatures=[
            KnownIssueSignature(text="alpha", issue=KnownIssue(human_message="A")),
            KnownIssueSignature(text="beta", issue=KnownIssue(human_message="B")),
        ]
    )

    issue = kb.is_known_issue(Log(path=path, description="run"))

    assert issue == KnownIssue(human_message="A")


def test_unknown_content_and_missing_file(tmp_path: Path) -> None:
    """Logs without a signature or without a file match nothing."""
    path = tmp_path / "run.log"
    path.write_text("all tests passed")
    kb = StaticErrorKnowledgeBase()

    assert kb.is_known_issue(Log(path=path, description="run")) is None
    assert kb.is_known_issue(Log(path=tmp_path / "nope", description="x")) is None
