"""Cancellation signals and the launch timeout watchdog."""

import asyncio
import logging
import threading
from collections.abc import Callable
from types import TracebackType

log = logging.getLogger(__name__)


class CancellationSignal:
    """One-shot signal telling a running operation to stop.

    Callbacks run synchronously when the signal is cancelled, which lets
    linked signals propagate cancellation without polling.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []

    @classmethod
    def linked(cls, *parents: "CancellationSignal") -> "LinkedCancellationSignal":
        """Create a signal cancelled as soon as any of the parents is."""
        return LinkedCancellationSignal(parents)

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation. Repeated calls have no effect."""
        if self._event.is_set():
            return
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    async def wait(self) -> None:
        """Wait until cancellation is requested."""
        await self._event.wait()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run the callback on cancellation, right away if already cancelled."""
        if self.cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        """Stop notifying the callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)


class LinkedCancellationSignal(CancellationSignal):
    """Signal cancelled whenever one of its parents is cancelled."""

    def __init__(self, parents: tuple[CancellationSignal, ...]) -> None:
        super().__init__()
        self._parents = parents
        for parent in parents:
            parent.add_callback(self.cancel)

    def unlink(self) -> None:
        """Detach from the parents so they no longer keep this signal alive."""
        for parent in self._parents:
            parent.remove_callback(self.cancel)


class RunStartedFlag:
    """Set once the application run starts; never reset."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def set(self) -> None:
        """Mark the run as started."""
        self._event.set()

    def is_set(self) -> bool:
        """Whether the run has started."""
        return self._event.is_set()


class LaunchTimeoutCancellation:
    """Composes the launch timeout with an external cancellation signal.

    The resulting signal is cancelled when the external signal is, or when
    ``min(launch_timeout, timeout)`` elapses before the run was marked as
    started. The total timeout alone never cancels it; that is left to the
    app tester which receives the remaining time budget.

    Use as a context manager; leaving it disarms the watchdog.
    """

    def __init__(
        self,
        launch_timeout: float,
        timeout: float,
        cancellation: CancellationSignal,
        run_started: RunStartedFlag,
    ) -> None:
        self.launch_timeout = launch_timeout
        self.timeout = timeout
        self.run_started = run_started
        self._launch_cancellation = CancellationSignal()
        self.signal = CancellationSignal.linked(
            self._launch_cancellation, cancellation
        )
        self._handle: asyncio.TimerHandle | None = None

    @property
    def deadline(self) -> float:
        """Seconds after which the watchdog checks whether the run started."""
        return min(self.launch_timeout, self.timeout)

    def __enter__(self) -> CancellationSignal:
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.deadline, self._on_deadline)
        return self.signal

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.signal.unlink()

    def _on_deadline(self) -> None:
        if self.run_started.is_set():
            return
        log.debug("Run did not start within %.1fs, cancelling", self.deadline)
        self._launch_cancellation.cancel()

