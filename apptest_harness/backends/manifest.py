"""What a backend plugin publishes through its entry point."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel

from apptest_harness.backends.base import ExecutionBackend

ConfigT = TypeVar("ConfigT", bound=BaseModel)


@dataclass(frozen=True, kw_only=True)
class BackendManifest(Generic[ConfigT]):
    """Entry point object of an execution backend.

    ``config_cls`` validates the JSON passed with ``--backend-config``. The
    validated configuration is handed to ``backend_factory``, which opens the
    backend for the duration of one run.
    """

    config_cls: type[ConfigT]
    backend_factory: Callable[[ConfigT], AbstractAsyncContextManager[ExecutionBackend]]
