"""CLI entry point for running a test application."""

import argparse
import asyncio
import logging
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

from pydantic import ValidationError

from apptest_harness.backends.loading import BackendNotFoundError, load_backend_manifest
from apptest_harness.cancellation import CancellationSignal
from apptest_harness.classifier import ResultClassifier
from apptest_harness.knowledge_base import StaticErrorKnowledgeBase
from apptest_harness.logs import Logs
from apptest_harness.models.outcome import ExitCode
from apptest_harness.models.target import (
    AppBundleInformation,
    CommunicationChannel,
    DeviceOptions,
    TestFilters,
    TestTarget,
    TestTargetOs,
    XmlResultJargon,
)
from apptest_harness.orchestrator import TestOrchestrator


def parse_environment(variables: Sequence[str]) -> Mapping[str, str]:
    """Parse KEY=VALUE pairs into a mapping."""
    environment: dict[str, str] = {}
    for variable in variables:
        key, sep, value = variable.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid environment variable '{variable}', use KEY=VALUE")
        environment[key] = value
    return environment


async def run(args: argparse.Namespace) -> int:
    """Run the test application and return exit code."""
    log = logging.getLogger("apptest_harness")

    try:
        manifest = load_backend_manifest(args.backend)
        config = manifest.config_cls.model_validate_json(args.backend_config)
        environment = parse_environment(args.env)
    except (BackendNotFoundError, ValidationError, ValueError) as e:
        log.error("%s", e)
        return ExitCode.INVALID_ARGUMENTS

    app_info = AppBundleInformation(
        app_name=args.app_path.stem,
        bundle_identifier=args.bundle_id or args.app_path.stem,
        app_path=str(args.app_path),
        launch_app_path=str(args.launch_path or args.app_path),
    )
    logs = Logs(args.output_directory)
    cancellation = CancellationSignal()

    async with manifest.backend_factory(config) as backend:
        orchestrator = TestOrchestrator(
            backend=backend,
            classifier=ResultClassifier(
                knowledge_base=StaticErrorKnowledgeBase(), logger=log
            ),
            logs=logs,
            logger=log,
        )
        exit_code = await orchestrator.orchestrate_test(
            app_info=app_info,
            target=TestTargetOs(platform=args.target, os_version=args.os_version),
            timeout=args.timeout,
            launch_timeout=args.launch_timeout,
            channel=args.channel,
            result_format=args.xml_jargon,
            filters=TestFilters(
                single_method_filters=tuple(args.filter),
                class_method_filters=tuple(args.class_filter),
            ),
            device_options=DeviceOptions(
                device_name=args.device_name,
                include_wireless_devices=args.include_wireless_devices,
                reset_simulator=args.reset_simulator,
                enable_lldb=args.enable_lldb,
            ),
            environment=environment,
            passthrough_args=tuple(args.passthrough),
            signal_app_end=args.signal_app_end,
            cancellation=cancellation,
        )

    for produced in logs:
        if produced.path.exists():
            log.info("  %s: %s", produced.description, produced.path)

    return exit_code


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Run a test application and report its outcome"
    )
    parser.add_argument(
        "--backend",
        default="process",
        help="Execution backend key (default: process)",
    )
    parser.add_argument(
        "--backend-config",
        default="{}",
        help="JSON configuration for the backend",
    )
    parser.add_argument(
        "--app-path",
        type=Path,
        required=True,
        help="Path to the application bundle",
    )
    parser.add_argument(
        "--launch-path",
        type=Path,
        help="Executable launching the app (defaults to the app path)",
    )
    parser.add_argument("--bundle-id", help="Bundle identifier of the application")
    parser.add_argument(
        "--target",
        type=TestTarget,
        choices=list(TestTarget),
        required=True,
        help="Target platform",
    )
    parser.add_argument("--os-version", help="Target OS version")
    parser.add_argument("--device-name", help="Name or UDID of the device to use")
    parser.add_argument("--include-wireless-devices", action="store_true")
    parser.add_argument("--reset-simulator", action="store_true")
    parser.add_argument("--enable-lldb", action="store_true")
    parser.add_argument(
        "--output-directory",
        type=Path,
        default=Path("logs"),
        help="Directory for logs and results",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=900.0,
        help="Total run timeout in seconds",
    )
    parser.add_argument(
        "--launch-timeout",
        type=float,
        default=300.0,
        help="Seconds the app has to start running tests",
    )
    parser.add_argument(
        "--channel",
        type=CommunicationChannel,
        choices=list(CommunicationChannel),
        default=CommunicationChannel.USB_TUNNEL,
    )
    parser.add_argument(
        "--xml-jargon",
        type=XmlResultJargon,
        choices=list(XmlResultJargon),
        default=XmlResultJargon.XUNIT,
    )
    parser.add_argument(
        "--filter", action="append", default=[], help="Test method to skip"
    )
    parser.add_argument(
        "--class-filter", action="append", default=[], help="Test class to skip"
    )
    parser.add_argument(
        "--env",
        action="append",
        default=[],
        help="Environment variable for the app (KEY=VALUE)",
    )
    parser.add_argument(
        "--signal-app-end",
        action="store_true",
        help="Wait for the app to signal the end of the run",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "passthrough", nargs="*", help="Arguments passed to the app after --"
    )
    return parser


def main() -> None:
    """CLI entry point."""
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    exit_code = asyncio.run(run(args))
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
