"""Abstract execution capabilities consumed by the orchestrator."""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from apptest_harness.cancellation import CancellationSignal
from apptest_harness.logs import Logs
from apptest_harness.models.outcome import ExecutionOutcome
from apptest_harness.models.target import (
    AppBundleInformation,
    CommunicationChannel,
    DeviceOptions,
    DevicePair,
    TestFilters,
    TestTargetOs,
    XmlResultJargon,
)


class DeviceNotFoundError(Exception):
    """Raised when no device matching the request can be found."""


class UnsupportedTargetError(Exception):
    """Raised when a backend cannot run apps on the requested target."""


@dataclass(frozen=True, kw_only=True)
class RunRequest:
    """Everything an app tester needs to run the application once."""

    app_info: AppBundleInformation
    timeout: float
    launch_timeout: float
    channel: CommunicationChannel
    result_format: XmlResultJargon
    filters: TestFilters
    environment: Mapping[str, str]
    passthrough_args: Sequence[str]
    signal_app_end: bool


class AppTester(ABC):
    """Launches the test application and reports how the run ended."""

    @abstractmethod
    async def test_app(
        self,
        request: RunRequest,
        target: TestTargetOs,
        devices: DevicePair,
        cancellation: CancellationSignal,
    ) -> ExecutionOutcome:
        """Run the application on a device or simulator.

        Args:
            request: Application, time budget and run options
            target: Target platform
            devices: Resolved device and optional companion device
            cancellation: Signal to stop the run early

        Returns:
            Outcome of the run; cancellation yields a TIMED_OUT outcome

        """

    @abstractmethod
    async def test_host_app(
        self,
        request: RunRequest,
        cancellation: CancellationSignal,
    ) -> ExecutionOutcome:
        """Run the application natively on the host."""


class ExecutionBackend(ABC):
    """Backend resolving devices and creating app testers for a run."""

    @abstractmethod
    async def find_devices(
        self,
        target: TestTargetOs,
        device_options: DeviceOptions,
        cancellation: CancellationSignal,
    ) -> DevicePair:
        """Resolve the device (and companion) to run on.

        Raises:
            DeviceNotFoundError: If no suitable device is available
            UnsupportedTargetError: If the backend cannot run on the target

        """

    @abstractmethod
    def create_tester(
        self,
        channel: CommunicationChannel,
        is_simulator: bool,
        logs: Logs,
    ) -> AppTester:
        """Create an app tester registering its log files in ``logs``."""
