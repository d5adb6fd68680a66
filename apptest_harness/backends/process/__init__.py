"""Local process backend module."""

from apptest_harness.backends.process.backend import ProcessAppTester, ProcessBackend
from apptest_harness.backends.process.config import ProcessBackendConfig
from apptest_harness.backends.process.manifest import process_manifest

__all__ = [
    "ProcessAppTester",
    "ProcessBackend",
    "ProcessBackendConfig",
    "process_manifest",
]
