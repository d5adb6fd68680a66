"""Log artifacts produced during a test run."""

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, kw_only=True)
class Log:
    """A single log file produced by the run."""

    path: Path
    description: str


class Logs:
    """Ordered collection of the log files of one run.

    Iteration follows registration order, which is the order the knowledge
    base is consulted in.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self._logs: list[Log] = []

    def __iter__(self) -> Iterator[Log]:
        return iter(self._logs)

    def __len__(self) -> int:
        return len(self._logs)

    def add(self, path: Path, description: str) -> Log:
        """Register an existing file as a log of this run."""
        log = Log(path=path, description=description)
        self._logs.append(log)
        return log

    def create(self, filename: str, description: str) -> Log:
        """Register a new log file placed in the logs directory."""
        self.directory.mkdir(parents=True, exist_ok=True)
        return self.add(self.directory / filename, description)
