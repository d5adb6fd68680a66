"""Test orchestrator running one test application and classifying its outcome."""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from apptest_harness.backends.base import (
    AppTester,
    DeviceNotFoundError,
    ExecutionBackend,
    RunRequest,
    UnsupportedTargetError,
)
from apptest_harness.cancellation import (
    CancellationSignal,
    LaunchTimeoutCancellation,
    RunStartedFlag,
)
from apptest_harness.classifier import ResultClassifier
from apptest_harness.logs import Logs
from apptest_harness.models.outcome import ExecutionOutcome, ResultKind
from apptest_harness.models.target import (
    AppBundleInformation,
    CommunicationChannel,
    DeviceOptions,
    DevicePair,
    RunMode,
    TestFilters,
    TestTargetOs,
    XmlResultJargon,
)

log = logging.getLogger(__name__)

# iOS 14+ asks the user before an app may talk to the local network
LOCAL_NETWORK_PERMISSION_OS_VERSION = 14


class ExecutionStrategy(ABC):
    """How the application gets run for a class of targets."""

    async def prepare(self, cancellation: CancellationSignal) -> None:
        """Do the setup needed before the application can be started."""

    @abstractmethod
    async def execute(
        self,
        tester: AppTester,
        request: RunRequest,
        cancellation: CancellationSignal,
    ) -> ExecutionOutcome:
        """Run the application with the given tester."""


@dataclass(kw_only=True)
class HostNativeStrategy(ExecutionStrategy):
    """Runs the application directly on the host."""

    logger: logging.Logger

    async def execute(
        self,
        tester: AppTester,
        request: RunRequest,
        cancellation: CancellationSignal,
    ) -> ExecutionOutcome:
        """Run the application natively on the host."""
        self.logger.info(
            "Starting test run for %s..", request.app_info.bundle_identifier
        )
        return await tester.test_host_app(request, cancellation)


@dataclass(kw_only=True)
class DeviceStrategy(ExecutionStrategy):
    """Runs the application on a device or a simulator."""

    backend: ExecutionBackend
    target: TestTargetOs
    device_options: DeviceOptions
    logger: logging.Logger
    devices: DevicePair | None = field(default=None, init=False)

    async def prepare(self, cancellation: CancellationSignal) -> None:
        """Resolve the device and companion device to run on."""
        self.devices = await self.backend.find_devices(
            self.target, self.device_options, cancellation
        )
        log.info("Running on device %s", self.devices.device.name)

    async def execute(
        self,
        tester: AppTester,
        request: RunRequest,
        cancellation: CancellationSignal,
    ) -> ExecutionOutcome:
        """Run the application on the resolved device."""
        if self.devices is None:
            raise RuntimeError("Devices must be resolved before executing the app")

        self._warn_about_options(request, self.devices)
        self.logger.info(
            "Starting test run for %s..", request.app_info.bundle_identifier
        )
        return await tester.test_app(request, self.target, self.devices, cancellation)

    def _warn_about_options(self, request: RunRequest, devices: DevicePair) -> None:
        run_mode = self.target.platform.run_mode
        os_major = devices.device.os_major_version

        if (
            run_mode is RunMode.IOS
            and request.channel is CommunicationChannel.NETWORK
            and os_major is not None
            and os_major >= LOCAL_NETWORK_PERMISSION_OS_VERSION
        ):
            self.logger.warning(
                "Applications need user permission for communication over local "
                "network on iOS 14 and newer.\n"
                "Either confirm a dialog on the device after the application "
                "launches or use the USB tunnel communication channel.\n"
                "Test run might fail if permission is not granted. "
                "Permission is valid until app is uninstalled."
            )

        if request.signal_app_end and run_mode in {RunMode.SIM32, RunMode.SIM64}:
            self.logger.warning(
                "The --signal-app-end option is used for device tests "
                "and has no effect on simulators"
            )


@dataclass(frozen=True, kw_only=True)
class TestOrchestrator:
    """Orchestrates a single test run on a device, simulator or the host."""

    __test__ = False

    backend: ExecutionBackend
    classifier: ResultClassifier
    logs: Logs
    logger: logging.Logger = field(default_factory=lambda: log, repr=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    async def orchestrate_test(
        self,
        app_info: AppBundleInformation,
        target: TestTargetOs,
        timeout: float,
        launch_timeout: float,
        channel: CommunicationChannel,
        result_format: XmlResultJargon,
        filters: TestFilters,
        device_options: DeviceOptions,
        environment: Mapping[str, str],
        passthrough_args: Sequence[str],
        signal_app_end: bool,
        cancellation: CancellationSignal,
    ) -> int:
        """Run the application and return the exit code for the process.

        The launch timeout starts counting now and only applies until the app
        run starts. Time spent on setup (e.g. finding the device) is deducted
        from the launch timeout handed to the app tester.

        Args:
            app_info: Application bundle to test
            target: Target platform and OS version
            timeout: Total time budget of the run in seconds
            launch_timeout: Seconds the app has to start the run
            channel: Transport used to talk to the app
            result_format: Flavour of the XML results
            filters: Tests to skip
            device_options: Options for resolving the device
            environment: Environment variables for the app
            passthrough_args: Extra arguments for the app
            signal_app_end: Whether the app signals the end of its run
            cancellation: External cancellation signal

        Returns:
            Process exit code

        """
        started_at = self.clock()
        run_started = RunStartedFlag()

        with LaunchTimeoutCancellation(
            launch_timeout, timeout, cancellation, run_started
        ) as launch_cancellation:
            strategy = self._select_strategy(target, device_options)

            try:
                await strategy.prepare(launch_cancellation)
            except (DeviceNotFoundError, UnsupportedTargetError) as e:
                outcome = ExecutionOutcome(
                    kind=ResultKind.DEVICE_NOT_FOUND, message=str(e)
                )
                return self.classifier.classify(outcome, self.logs)

            if launch_cancellation.cancelled:
                outcome = ExecutionOutcome(
                    kind=ResultKind.TIMED_OUT,
                    message="Run was cancelled before the application started",
                )
                return self.classifier.classify(outcome, self.logs)

            request = RunRequest(
                app_info=app_info,
                timeout=timeout,
                launch_timeout=max(0.0, launch_timeout - (self.clock() - started_at)),
                channel=channel,
                result_format=result_format,
                filters=filters,
                environment=environment,
                passthrough_args=passthrough_args,
                signal_app_end=signal_app_end,
            )
            tester = self.backend.create_tester(
                channel, target.platform.is_simulator, self.logs
            )

            run_started.set()
            outcome = await strategy.execute(tester, request, launch_cancellation)

        return self.classifier.classify(outcome, self.logs)

    def _select_strategy(
        self, target: TestTargetOs, device_options: DeviceOptions
    ) -> ExecutionStrategy:
        if target.platform.is_host_native:
            return HostNativeStrategy(logger=self.logger)
        return DeviceStrategy(
            backend=self.backend,
            target=target,
            device_options=device_options,
            logger=self.logger,
        )
