"""Configuration for the local process backend."""

from pydantic import BaseModel, Field, FilePath


class ProcessBackendConfig(BaseModel):
    """Configuration for the local process backend."""

    error_patterns_file: FilePath | None = None
    # Seconds to wait for the exit sentinel once the process has ended
    exit_wait: float = Field(default=5.0, ge=0)
