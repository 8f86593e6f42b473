"""Background timers for cache maintenance."""

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PeriodicWorker:
    """Run a callable every ``interval`` seconds on a daemon thread.

    The thread is independent of request handling. Exceptions raised by the
    callable are logged and the schedule continues.

    Example:
        ```python
        worker = PeriodicWorker("tiered-cleanup", 300, cache.cleanup_expired)
        worker.start()
        ...
        worker.stop()
        ```
    """

    def __init__(self, name: str, interval: float, action: Callable[[], object]) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._name = name
        self._interval = interval
        self._action = action
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._action()
            except Exception:
                logger.exception("Periodic task %s failed", self._name)
