"""Interpretation of the live console output of a running test application."""

import asyncio
import base64
import logging
import re
from functools import cached_property
from pathlib import Path
from types import TracebackType
from typing import Self

from pydantic import ValidationError

from apptest_harness.error_scanner import ErrorPatternScanner
from apptest_harness.models.base import Model

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

RESULT_XML_PATTERN = re.compile(r"^STARTRESULTXML ([0-9]*) ([^ ]*) ENDRESULTXML")

# The test runner prints this as its last line, after the results were sent
EXIT_SENTINEL = "WASM EXIT"

CONSOLE_LEVELS = {
    "console.debug": logging.DEBUG,
    "console.error": logging.ERROR,
    "console.warn": logging.WARNING,
    "console.trace": TRACE,
    "console.log": logging.INFO,
}


class WasmLogMessage(Model):
    """Structured envelope wrapping a console message."""

    method: str | None = None
    payload: str | None = None


class TestMessagesProcessor:
    """Consumes the output of a test application one line at a time.

    Lines are logged with a severity derived from their content, copied to a
    transcript file and scanned for error patterns. An inline base64 encoded
    results file is extracted into ``xml_results_path``.
    """

    __test__ = False

    def __init__(
        self,
        xml_results_path: Path,
        stdout_path: Path,
        logger: logging.Logger,
        error_patterns_file: Path | None = None,
    ) -> None:
        if error_patterns_file is not None and not error_patterns_file.exists():
            raise ValueError(f"Cannot find error patterns file {error_patterns_file}")

        self.xml_results_path = xml_results_path
        self.logger = logger
        self.error_patterns_file = error_patterns_file
        self.line_that_matched_error_pattern: str | None = None
        self.exit_received = asyncio.Event()
        self._stdout = stdout_path.open("w", encoding="utf-8")

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the transcript file."""
        self._stdout.close()

    @cached_property
    def error_scanner(self) -> ErrorPatternScanner | None:
        """Scanner built on first use from the error patterns file."""
        if self.error_patterns_file is None:
            return None
        return ErrorPatternScanner(self.error_patterns_file)

    async def wait_for_exit(self) -> None:
        """Wait until the application reports the end of its output."""
        await self.exit_received.wait()

    def consume(self, message: str) -> None:
        """Process one line of application output.

        Once the exit sentinel was received the results are final, so errors
        from later lines are only reported as warnings.
        """
        try:
            self._consume(message)
        except Exception:
            if not self.exit_received.is_set():
                raise
            self.logger.warning(
                "Test has returned a result already, but the message processor "
                "failed while logging the message: %s",
                message,
                exc_info=True,
            )

    def process_error_message(self, message: str) -> None:
        """Report an error noticed outside of the line stream."""
        self.logger.error(message)
        self._scan_message(message)

    def _consume(self, message: str) -> None:
        log_message: WasmLogMessage | None = None
        line = message.rstrip()

        if message.startswith("{"):
            try:
                log_message = WasmLogMessage.model_validate_json(message)
            except ValidationError:
                pass
            else:
                if log_message.payload is not None:
                    line = log_message.payload.rstrip()

        if match := RESULT_XML_PATTERN.match(line):
            self._write_xml_results(int(match.group(1)), match.group(2))
        else:
            if line.startswith(("[PASS]", "[SKIP]")):
                self.logger.debug(line)
            elif line.startswith("[FAIL]"):
                self.logger.error(line)
            else:
                self._scan_message(line)
                method = (log_message.method or "") if log_message else ""
                level = CONSOLE_LEVELS.get(method.lower(), logging.INFO)
                self.logger.log(level, line)

            self._write_stdout(line)

        if line.startswith(EXIT_SENTINEL) and not self.exit_received.is_set():
            self.logger.debug("Reached wasm exit")
            self.exit_received.set()

    def _write_xml_results(self, expected_length: int, payload: str) -> None:
        data = base64.b64decode(payload)
        self.xml_results_path.write_bytes(data)

        if len(data) == expected_length:
            self.logger.info(
                "Received expected %d of %s", len(data), self.xml_results_path
            )
        else:
            self.logger.info(
                "Received %d of %s but expected %d",
                len(data),
                self.xml_results_path,
                expected_length,
            )

    def _write_stdout(self, line: str) -> None:
        if self._stdout.closed or not self._stdout.writable():
            return
        self._stdout.write(line + "\n")
        self._stdout.flush()

    def _scan_message(self, message: str) -> None:
        if self.line_that_matched_error_pattern is not None:
            return
        if self.error_scanner is None:
            return
        if self.error_scanner.is_error(message):
            self.line_that_matched_error_pattern = message
