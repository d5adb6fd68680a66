"""Models describing where and how a test application runs."""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from pydantic import Field

from apptest_harness.models.base import Model


class RunMode(Enum):
    """Coarse run mode derived from a target platform."""

    SIM32 = "sim32"
    SIM64 = "sim64"
    IOS = "ios"
    TVOS = "tvos"
    WATCHOS = "watchos"
    MACCATALYST = "maccatalyst"


class TestTarget(Enum):
    """Platforms a test application can be run on."""

    __test__ = False

    SIMULATOR_IOS = "ios-simulator"
    SIMULATOR_TVOS = "tvos-simulator"
    SIMULATOR_WATCHOS = "watchos-simulator"
    DEVICE_IOS = "ios-device"
    DEVICE_TVOS = "tvos-device"
    DEVICE_WATCHOS = "watchos-device"
    MACCATALYST = "maccatalyst"

    @property
    def is_simulator(self) -> bool:
        """Whether the target is a simulator."""
        return self in {
            TestTarget.SIMULATOR_IOS,
            TestTarget.SIMULATOR_TVOS,
            TestTarget.SIMULATOR_WATCHOS,
        }

    @property
    def is_host_native(self) -> bool:
        """Whether the app runs directly on the host, without any device."""
        return self is TestTarget.MACCATALYST

    @property
    def run_mode(self) -> RunMode:
        """Run mode used to pick device specific behaviour."""
        return _RUN_MODES[self]


_RUN_MODES = {
    TestTarget.SIMULATOR_IOS: RunMode.SIM64,
    TestTarget.SIMULATOR_TVOS: RunMode.SIM64,
    TestTarget.SIMULATOR_WATCHOS: RunMode.SIM32,
    TestTarget.DEVICE_IOS: RunMode.IOS,
    TestTarget.DEVICE_TVOS: RunMode.TVOS,
    TestTarget.DEVICE_WATCHOS: RunMode.WATCHOS,
    TestTarget.MACCATALYST: RunMode.MACCATALYST,
}


class CommunicationChannel(Enum):
    """Transport used to talk to a running test application."""

    NETWORK = "network"
    USB_TUNNEL = "usb-tunnel"


class XmlResultJargon(Enum):
    """Flavour of the XML results produced by the test application."""

    XUNIT = "xunit"
    NUNIT_V2 = "nunit-v2"
    NUNIT_V3 = "nunit-v3"
    TOUCH_UNIT = "touch-unit"


@dataclass(frozen=True, kw_only=True)
class TestTargetOs:
    """Target platform together with an optional OS version."""

    __test__ = False

    platform: TestTarget
    os_version: str | None = None


@dataclass(frozen=True, kw_only=True)
class Device:
    """A resolved device or simulator."""

    name: str
    udid: str
    os_version: str | None = None

    @property
    def os_major_version(self) -> int | None:
        """Major component of the OS version, if it can be parsed."""
        if not self.os_version:
            return None
        major = self.os_version.split(".", 1)[0]
        return int(major) if major.isdigit() else None


@dataclass(frozen=True, kw_only=True)
class DevicePair:
    """Device to run on plus an optional companion (e.g. a watch's phone)."""

    device: Device
    companion: Device | None = None


class AppBundleInformation(Model):
    """Application bundle to test."""

    app_name: str = Field(..., description="Display name of the application")
    bundle_identifier: str = Field(..., description="Bundle identifier")
    app_path: str = Field(..., description="Path to the application bundle")
    launch_app_path: str = Field(
        ..., description="Path to the executable used to launch the app"
    )


class TestFilters(Model):
    """Tests to skip during the run."""

    __test__ = False

    single_method_filters: Sequence[str] = Field(default_factory=tuple)
    class_method_filters: Sequence[str] = Field(default_factory=tuple)


class DeviceOptions(Model):
    """Options used when resolving the device to run on."""

    device_name: str | None = Field(
        default=None, description="Name or UDID of a specific device"
    )
    include_wireless_devices: bool = False
    reset_simulator: bool = False
    enable_lldb: bool = False
