"""Tests for the test messages processor."""

import asyncio
import logging
from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from apptest_harness.messages_processor import TRACE, TestMessagesProcessor

LOGGER_NAME = "tests.app"


@pytest.fixture
def xml_path(tmp_path: Path) -> Path:
    """Path of the extracted results file."""
    return tmp_path / "testResults.xml"


@pytest.fixture
def stdout_path(tmp_path: Path) -> Path:
    """Path of the transcript file."""
    return tmp_path / "stdout.log"


@pytest.fixture
def processor(
    xml_path: Path, stdout_path: Path
) -> Generator[TestMessagesProcessor]:
    """Create processor without error patterns."""
    with TestMessagesProcessor(
        xml_path, stdout_path, logging.getLogger(LOGGER_NAME)
    ) as processor:
        yield processor


def levels(caplog: pytest.LogCaptureFixture) -> list[tuple[int, str]]:
    """Levels and messages logged by the processor."""
    return [
        (r.levelno, r.getMessage())
        for r in caplog.records
        if r.name == LOGGER_NAME
    ]


def test_console_error_envelope(
    processor: TestMessagesProcessor,
    stdout_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Envelope payload is logged with the method severity and transcribed."""
    with caplog.at_level(TRACE):
        processor.consume('{"method":"console.error","payload":"NullRef"}')

    assert levels(caplog) == [(logging.ERROR, "NullRef")]
    assert stdout_path.read_text() == "NullRef\n"


@pytest.mark.parametrize(
    ("method", "level"),
    [
        ("console.debug", logging.DEBUG),
        ("console.error", logging.ERROR),
        ("CONSOLE.WARN", logging.WARNING),
        ("console.trace", TRACE),
        ("console.log", logging.INFO),
        ("console.info", logging.INFO),
    ],
)
def test_method_routes_severity(
    processor: TestMessagesProcessor,
    caplog: pytest.LogCaptureFixture,
    method: str,
    level: int,
) -> None:
    """Envelope method selects the log level, case-insensitively."""
    with caplog.at_level(TRACE):
        processor.consume(f'{{"method":"{method}","payload":"hello"}}')

    assert levels(caplog) == [(level, "hello")]


@pytest.mark.parametrize(
    ("line", "level"),
    [
        ("[PASS] Test.A", logging.DEBUG),
        ("[SKIP] Test.B", logging.DEBUG),
        ("[FAIL] Test.C", logging.ERROR),
        ("plain output", logging.INFO),
    ],
)
def test_plain_lines(
    processor: TestMessagesProcessor,
    stdout_path: Path,
    caplog: pytest.LogCaptureFixture,
    line: str,
    level: int,
) -> None:
    """Plain lines are classified by prefix and trimmed."""
    with caplog.at_level(TRACE):
        processor.consume(f"{line}   \n")

    assert levels(caplog) == [(level, line)]
    assert stdout_path.read_text() == f"{line}\n"


def test_malformed_envelope_falls_back_to_raw_text(
    processor: TestMessagesProcessor,
    stdout_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Invalid JSON is treated as plain text."""
    with caplog.at_level(logging.INFO):
        processor.consume('{"method": broken')

    assert levels(caplog) == [(logging.INFO, '{"method": broken')]
    assert stdout_path.read_text() == '{"method": broken\n'


def test_envelope_without_payload_uses_raw_text(
    processor: TestMessagesProcessor, caplog: pytest.LogCaptureFixture
) -> None:
    """Envelope without payload keeps the raw line but routes by method."""
    with caplog.at_level(logging.INFO):
        processor.consume('{"method":"console.warn"}')

    assert levels(caplog) == [(logging.WARNING, '{"method":"console.warn"}')]


def test_embedded_results_are_written(
    processor: TestMessagesProcessor,
    xml_path: Path,
    stdout_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Results line is decoded into the results file and not transcribed."""
    with caplog.at_level(logging.INFO):
        processor.consume("STARTRESULTXML 4 QUJDRA== ENDRESULTXML")

    assert xml_path.read_bytes() == b"ABCD"
    assert stdout_path.read_text() == ""
    assert "Received expected 4 of" in caplog.text


def test_embedded_results_length_mismatch(
    processor: TestMessagesProcessor,
    xml_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Length mismatch is logged but the decoded bytes are still written."""
    with caplog.at_level(logging.INFO):
        processor.consume("STARTRESULTXML 10 QUJDRA== ENDRESULTXML")

    assert xml_path.read_bytes() == b"ABCD"
    assert "Received 4 of" in caplog.text
    assert "but expected 10" in caplog.text


def test_embedded_results_inside_envelope(
    processor: TestMessagesProcessor, xml_path: Path
) -> None:
    """Results line can arrive as an envelope payload."""
    processor.consume(
        '{"method":"console.log","payload":"STARTRESULTXML 4 QUJDRA== ENDRESULTXML"}'
    )

    assert xml_path.read_bytes() == b"ABCD"


def test_exit_sentinel_sets_exit_once(
    processor: TestMessagesProcessor, caplog: pytest.LogCaptureFixture
) -> None:
    """Exit is signalled once; a repeated sentinel is a no-op."""
    with caplog.at_level(logging.DEBUG):
        processor.consume("WASM EXIT 0")
        processor.consume("WASM EXIT 0")

    assert processor.exit_received.is_set()
    assert caplog.text.count("Reached wasm exit") == 1


async def test_wait_for_exit(processor: TestMessagesProcessor) -> None:
    """Waiters are released by the exit sentinel."""
    waiter = asyncio.create_task(processor.wait_for_exit())
    await asyncio.sleep(0)
    assert not waiter.done()

    processor.consume("WASM EXIT 0")

    await asyncio.wait_for(waiter, timeout=1)


def test_errors_propagate_before_exit(processor: TestMessagesProcessor) -> None:
    """Errors before the exit sentinel propagate."""
    with (
        patch.object(processor, "_write_stdout", side_effect=OSError("disk full")),
        pytest.raises(OSError, match="disk full"),
    ):
        processor.consume("some line")


def test_errors_after_exit_are_warnings(
    processor: TestMessagesProcessor, caplog: pytest.LogCaptureFixture
) -> None:
    """Errors after the exit sentinel are only logged as warnings."""
    processor.consume("WASM EXIT 0")

    with patch.object(processor, "_write_stdout", side_effect=OSError("disk full")):
        processor.consume("late line")

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "late line" in warnings[0].getMessage()


def test_closed_transcript_is_skipped(
    processor: TestMessagesProcessor,
    stdout_path: Path,
) -> None:
    """Lines are not written once the transcript is closed."""
    processor.consume("first")
    processor.close()

    processor.consume("second")

    assert stdout_path.read_text() == "first\n"


def test_missing_error_patterns_file_fails_fast(
    xml_path: Path, stdout_path: Path, tmp_path: Path
) -> None:
    """Missing patterns file is rejected at construction."""
    with pytest.raises(ValueError, match="Cannot find error patterns file"):
        TestMessagesProcessor(
            xml_path,
            stdout_path,
            logging.getLogger(LOGGER_NAME),
            tmp_path / "missing.txt",
        )


class TestErrorScanning:
    """Tests for error pattern scanning."""

    @pytest.fixture
    def scanning_processor(
        self, xml_path: Path, stdout_path: Path, tmp_path: Path
    ) -> Generator[TestMessagesProcessor]:
        """Create processor with an error patterns file."""
        patterns = tmp_path / "patterns.txt"
        patterns.write_text("Segmentation fault\n@abort\\(\\)\n")
        with TestMessagesProcessor(
            xml_path, stdout_path, logging.getLogger(LOGGER_NAME), patterns
        ) as processor:
            yield processor

    def test_scanner_is_built_lazily(
        self, scanning_processor: TestMessagesProcessor
    ) -> None:
        """Scanner is only built on first use."""
        assert "error_scanner" not in vars(scanning_processor)

        scanning_processor.consume("hello")

        assert "error_scanner" in vars(scanning_processor)

    def test_first_matching_line_is_kept(
        self, scanning_processor: TestMessagesProcessor
    ) -> None:
        """Only the first matching line is remembered."""
        scanning_processor.consume("ok")
        scanning_processor.consume("Segmentation fault (core dumped)")
        scanning_processor.consume("abort() called")

        assert (
            scanning_processor.line_that_matched_error_pattern
            == "Segmentation fault (core dumped)"
        )

    def test_pass_and_fail_lines_are_not_scanned(
        self, scanning_processor: TestMessagesProcessor
    ) -> None:
        """Marker lines skip the error scan."""
        scanning_processor.consume("[FAIL] Segmentation fault")

        assert scanning_processor.line_that_matched_error_pattern is None

    def test_process_error_message(
        self,
        scanning_processor: TestMessagesProcessor,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Side channel errors are logged and scanned."""
        scanning_processor.process_error_message("abort() in websocket")

        assert levels(caplog) == [(logging.ERROR, "abort() in websocket")]
        assert (
            scanning_processor.line_that_matched_error_pattern
            == "abort() in websocket"
        )
