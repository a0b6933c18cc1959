"""Process lifecycle for the email worker: signals and bounded shutdown."""

import logging
import os
import signal
import threading
from collections.abc import Callable, Iterable
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class StoppableWorker(Protocol):
    should_stop: bool

    def run(self) -> None: ...

    def close(self) -> None: ...


class LifecycleController:
    """Runs a worker until a termination signal, then shuts it down in bounded time.

    The first SIGINT/SIGTERM asks the worker to stop between messages and arms
    a watchdog. If the worker has not returned when the watchdog fires, or a
    second signal arrives, the process is force-terminated. Unfinished work is
    never acknowledged; the broker redelivers it once the connection drops.
    """

    def __init__(
        self,
        worker: StoppableWorker,
        shutdown_timeout: float = 5.0,
        force_exit: Callable[[int], None] = os._exit,
        signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
    ):
        self.worker = worker
        self.shutdown_timeout = shutdown_timeout
        self.force_exit = force_exit
        self.signals = tuple(signals)
        self._stopping = threading.Event()
        self._watchdog: threading.Timer | None = None
        self._previous_handlers: dict[signal.Signals, object] = {}

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def install(self) -> None:
        """Install signal handlers (main thread only)."""
        for sig in self.signals:
            self._previous_handlers[sig] = signal.signal(sig, self.handle_signal)

    def restore(self) -> None:
        """Restore the handlers that were active before install()."""
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)  # type: ignore[arg-type]
        self._previous_handlers.clear()

    def handle_signal(self, signum: int, _frame=None) -> None:
        name = signal.Signals(signum).name
        if self.stopping:
            logger.warning(f"Received {name} during shutdown, forcing exit")
            self.force_exit(1)
            return

        logger.info(f"Received {name}, finishing in-flight work (up to {self.shutdown_timeout}s)")
        self.request_stop()

    def request_stop(self) -> None:
        """Stop taking new messages and arm the shutdown watchdog."""
        if self.stopping:
            return
        self._stopping.set()
        self.worker.should_stop = True

        self._watchdog = threading.Timer(self.shutdown_timeout, self._on_shutdown_timeout)
        self._watchdog.daemon = True
        self._watchdog.start()

    def _on_shutdown_timeout(self) -> None:
        logger.error(
            f"Graceful shutdown did not finish within {self.shutdown_timeout}s, "
            "abandoning in-flight work to broker redelivery"
        )
        self.force_exit(1)

    def run(self) -> None:
        """Run the worker in the current thread until it stops."""
        self.install()
        try:
            self.worker.run()
        finally:
            if self._watchdog is not None:
                self._watchdog.cancel()
            self.restore()
            self.worker.close()

        logger.info("Email worker shut down cleanly")
