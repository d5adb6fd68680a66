"""Backend running the test application as a local process on the host."""

import asyncio
import contextlib
import logging
import os
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from apptest_harness.backends.base import (
    AppTester,
    ExecutionBackend,
    RunRequest,
    UnsupportedTargetError,
)
from apptest_harness.backends.process.config import ProcessBackendConfig
from apptest_harness.cancellation import CancellationSignal
from apptest_harness.logs import Logs
from apptest_harness.messages_processor import TestMessagesProcessor
from apptest_harness.models.outcome import ExecutionOutcome, ResultKind
from apptest_harness.models.target import (
    CommunicationChannel,
    DeviceOptions,
    DevicePair,
    TestTargetOs,
)

log = logging.getLogger(__name__)

# The results line carries a whole base64 encoded XML file
STREAM_LIMIT = 16 * 1024 * 1024
STREAM_CHUNK = 64 * 1024

# Seconds a killed process gets to exit and close its output
KILL_TIMEOUT = 5.0

EXIT_CODE_TO_KIND: Mapping[int, ResultKind] = {
    0: ResultKind.SUCCEEDED,
    1: ResultKind.FAILED,
}


@dataclass(frozen=True, kw_only=True)
class ProcessAppTester(AppTester):
    """Runs the application executable and interprets its console output."""

    config: ProcessBackendConfig
    logs: Logs
    logger: logging.Logger = field(default_factory=lambda: log, repr=False)

    async def test_app(
        self,
        request: RunRequest,
        target: TestTargetOs,
        devices: DevicePair,
        cancellation: CancellationSignal,
    ) -> ExecutionOutcome:
        """Device runs are not supported by a local process."""
        raise UnsupportedTargetError(
            f"Cannot run on {target.platform.value} with the process backend"
        )

    async def test_host_app(
        self,
        request: RunRequest,
        cancellation: CancellationSignal,
    ) -> ExecutionOutcome:
        """Run the application executable on the host."""
        stdout_log = self.logs.create("test-stdout.log", "Test application output")
        results_log = self.logs.create("testResults.xml", "Test results")

        with TestMessagesProcessor(
            results_log.path,
            stdout_log.path,
            self.logger,
            self.config.error_patterns_file,
        ) as processor:
            process = await asyncio.create_subprocess_exec(
                request.app_info.launch_app_path,
                *request.passthrough_args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=self._build_environment(request),
                limit=STREAM_LIMIT,
            )
            log.info(
                "Started %s (pid %d)", request.app_info.launch_app_path, process.pid
            )

            try:
                return await self._monitor(process, processor, request, cancellation)
            finally:
                await self._kill(process)

    async def _monitor(
        self,
        process: asyncio.subprocess.Process,
        processor: TestMessagesProcessor,
        request: RunRequest,
        cancellation: CancellationSignal,
    ) -> ExecutionOutcome:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + request.timeout
        first_output = asyncio.Event()

        reader = asyncio.create_task(self._pump(process, processor, first_output))
        exited = asyncio.create_task(process.wait())
        cancelled = asyncio.create_task(cancellation.wait())
        activity = asyncio.create_task(first_output.wait())
        launch_window = min(request.launch_timeout, request.timeout)

        try:
            done, _ = await asyncio.wait(
                {activity, exited, cancelled, reader},
                timeout=launch_window,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if not done:
                return ExecutionOutcome(
                    kind=ResultKind.LAUNCH_FAILURE,
                    message=(
                        "Application produced no output within "
                        f"{launch_window:.1f} seconds"
                    ),
                )

            # A reader that stops early on EOF is fine, one that failed is not
            while not done & {exited, cancelled}:
                if (failure := self._reader_failure(reader)) is not None:
                    return failure
                waiting = {exited, cancelled}
                if not reader.done():
                    waiting.add(reader)
                done, _ = await asyncio.wait(
                    waiting,
                    timeout=max(0.0, deadline - loop.time()),
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if not done:
                    return ExecutionOutcome(
                        kind=ResultKind.TIMED_OUT,
                        message=(
                            "Application did not finish within "
                            f"{request.timeout:.1f} seconds"
                        ),
                    )

            if (failure := self._reader_failure(reader)) is not None:
                return failure

            if exited not in done:
                return ExecutionOutcome(
                    kind=ResultKind.TIMED_OUT, message="Test run was cancelled"
                )

            # Output still buffered in the pipe when the process exited
            await asyncio.wait({reader}, timeout=max(0.0, deadline - loop.time()))
            if not reader.done():
                return ExecutionOutcome(
                    kind=ResultKind.TIMED_OUT,
                    message=(
                        "Application output did not end within "
                        f"{request.timeout:.1f} seconds"
                    ),
                )
            if (failure := self._reader_failure(reader)) is not None:
                return failure
        finally:
            for task in (reader, exited, cancelled, activity):
                if not task.done():
                    task.cancel()
                elif not task.cancelled():
                    task.exception()

        if request.signal_app_end:
            await self._wait_for_exit_sentinel(processor)

        return self._outcome(process.returncode, processor)

    def _reader_failure(self, reader: asyncio.Task[None]) -> ExecutionOutcome | None:
        if not reader.done() or reader.cancelled():
            return None
        error = reader.exception()
        if error is None:
            return None
        self.logger.debug("Reading application output failed", exc_info=error)
        return ExecutionOutcome(
            kind=ResultKind.HARNESS_EXCEPTION,
            message=f"Failed to process application output: {error}",
        )

    async def _pump(
        self,
        process: asyncio.subprocess.Process,
        processor: TestMessagesProcessor,
        first_output: asyncio.Event,
    ) -> None:
        if process.stdout is None:
            return
        async for raw in process.stdout:
            first_output.set()
            processor.consume(raw.decode("utf-8", errors="replace"))

    async def _wait_for_exit_sentinel(self, processor: TestMessagesProcessor) -> None:
        try:
            await asyncio.wait_for(processor.wait_for_exit(), self.config.exit_wait)
        except TimeoutError:
            self.logger.warning(
                "Application exited without signalling the end of the test run"
            )

    def _outcome(
        self, returncode: int | None, processor: TestMessagesProcessor
    ) -> ExecutionOutcome:
        if returncode is not None and returncode in EXIT_CODE_TO_KIND:
            return ExecutionOutcome(kind=EXIT_CODE_TO_KIND[returncode])

        message = f"Application exited with code {returncode}"
        if processor.line_that_matched_error_pattern is not None:
            message += (
                f"\nFirst line matching an error pattern: "
                f"{processor.line_that_matched_error_pattern}"
            )
        return ExecutionOutcome(kind=ResultKind.CRASHED, message=message)

    def _build_environment(self, request: RunRequest) -> dict[str, str]:
        env = dict(os.environ)
        env.update(request.environment)
        env["APPTEST_XML_JARGON"] = request.result_format.value
        if request.filters.single_method_filters:
            env["APPTEST_SKIPPED_METHODS"] = ",".join(
                request.filters.single_method_filters
            )
        if request.filters.class_method_filters:
            env["APPTEST_SKIPPED_CLASSES"] = ",".join(
                request.filters.class_method_filters
            )
        return env

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            log.info("Killing application process %d", process.pid)
            with contextlib.suppress(ProcessLookupError):
                process.kill()

        # Reading stalls once the stream buffer is full, so drain it to EOF
        drain = asyncio.create_task(self._drain(process))
        try:
            await asyncio.wait_for(process.wait(), KILL_TIMEOUT)
        except TimeoutError:
            log.warning(
                "Application process %d did not release its output within %.1f seconds",
                process.pid,
                KILL_TIMEOUT,
            )
        finally:
            drain.cancel()

    async def _drain(self, process: asyncio.subprocess.Process) -> None:
        if process.stdout is None:
            return
        while await process.stdout.read(STREAM_CHUNK):
            pass


@dataclass(frozen=True, kw_only=True)
class ProcessBackend(ExecutionBackend):
    """Backend for host-native runs of a local executable."""

    config: ProcessBackendConfig

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: ProcessBackendConfig
    ) -> AsyncGenerator["ProcessBackend", None]:
        """Create backend from its configuration."""
        yield cls(config=config)

    async def find_devices(
        self,
        target: TestTargetOs,
        device_options: DeviceOptions,
        cancellation: CancellationSignal,
    ) -> DevicePair:
        """Local processes never run on a device."""
        raise UnsupportedTargetError(
            f"Cannot run on {target.platform.value} with the process backend"
        )

    def create_tester(
        self,
        channel: CommunicationChannel,
        is_simulator: bool,
        logs: Logs,
    ) -> AppTester:
        """Create a tester running the app as a local process."""
        return ProcessAppTester(config=self.config, logs=logs)
