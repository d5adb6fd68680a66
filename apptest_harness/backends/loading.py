"""Lookup of installed execution backends."""

from importlib.metadata import entry_points
from typing import Any

from apptest_harness.backends.manifest import BackendManifest

ENTRY_POINT_GROUP = "apptest_harness.backends"


class BackendNotFoundError(Exception):
    """No installed backend is registered under the requested key."""


def load_backend_manifest(key: str) -> BackendManifest[Any]:
    """Import the manifest of the backend registered as ``key``.

    Only the requested entry point is imported, so a broken third party
    backend does not affect runs using another one.

    Raises:
        BackendNotFoundError: If nothing is registered under ``key``

    """
    registered = {entry.name: entry for entry in entry_points(group=ENTRY_POINT_GROUP)}

    if key not in registered:
        installed = ", ".join(sorted(registered)) or "none"
        raise BackendNotFoundError(
            f"Unknown backend '{key}' (installed backends: {installed})"
        )

    manifest: BackendManifest[Any] = registered[key].load()
    return manifest
