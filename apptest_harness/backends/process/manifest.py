"""Local process backend manifest."""

from apptest_harness.backends.manifest import BackendManifest
from apptest_harness.backends.process.backend import ProcessBackend
from apptest_harness.backends.process.config import ProcessBackendConfig

process_manifest = BackendManifest(
    config_cls=ProcessBackendConfig,
    backend_factory=ProcessBackend.from_config,
)
