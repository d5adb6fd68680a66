"""Tests for backend loading module."""

import pytest

from apptest_harness.backends.loading import (
    BackendNotFoundError,
    load_backend_manifest,
)
from apptest_harness.backends.process import process_manifest


def test_load_backend_manifest_returns_manifest() -> None:
    """Resolves the built-in process backend by its key."""
    manifest = load_backend_manifest("process")

    assert manifest is process_manifest


def test_load_backend_manifest_raises_for_unknown_backend() -> None:
    """Unknown keys name the backends that are installed."""
    with pytest.raises(BackendNotFoundError) as exc_info:
        load_backend_manifest("unknown-backend")

    assert "unknown-backend" in str(exc_info.value)
    assert "installed backends: " in str(exc_info.value)
    assert "process" in str(exc_info.value)
