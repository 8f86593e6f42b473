"""Typed write-behind queue for durable cache writes.

The request path only enqueues. A single daemon worker drains the queue and
performs the blocking durable write; failures are logged and never reach
the caller.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from venue_retrieval.errors import CacheBackendUnavailable
from venue_retrieval.protocols import DurableCacheStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PendingWrite(Generic[T]):
    key: str
    data: T
    ttl: float
    tags: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)


_STOP = object()


class WriteBehindQueue(Generic[T]):
    """Bounded queue of durable writes for one cache type.

    Example:
        ```python
        writes = WriteBehindQueue("geo", store, max_size=1000)
        writes.submit(PendingWrite("place:45.46:9.19:5", ("p1",), ttl=600))
        writes.flush()
        writes.close()
        ```
    """

    def __init__(self, name: str, store: DurableCacheStore[T], max_size: int = 1000) -> None:
        self._name = name
        self._store = store
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=max_size)
        self._lock = threading.Lock()
        self._closed = False
        self.written = 0
        self.failed = 0
        self.dropped = 0
        self._thread = threading.Thread(target=self._drain, name=f"{name}-write-behind", daemon=True)
        self._thread.start()

    def submit(self, write: PendingWrite[T]) -> bool:
        """Enqueue a write without blocking.

        Returns:
            False if the queue is closed or full and the write was dropped
        """
        with self._lock:
            if self._closed:
                return False
        try:
            self._queue.put_nowait(write)
        except queue.Full:
            with self._lock:
                self.dropped += 1
            logger.warning("%s write-behind queue full, dropping write for %s", self._name, write.key)
            return False
        return True

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._store.set(item.key, item.data, item.ttl, tags=item.tags, metadata=item.metadata)
                with self._lock:
                    self.written += 1
            except CacheBackendUnavailable as exc:
                with self._lock:
                    self.failed += 1
                logger.warning("%s durable write failed for %s: %s", self._name, item.key, exc)
            except Exception:
                with self._lock:
                    self.failed += 1
                logger.exception("%s durable write raised unexpectedly for %s", self._name, item.key)
            finally:
                self._queue.task_done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def flush(self) -> None:
        """Block until every queued write has been attempted."""
        self._queue.join()

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "pending": self._queue.qsize(),
                "written": self.written,
                "failed": self.failed,
                "dropped": self.dropped,
            }

    def close(self, timeout: float | None = 5.0) -> None:
        """Drain pending writes and stop the worker."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._queue.put(_STOP)
        self._thread.join(timeout)
