"""Hybrid cache facade: in-process tier in front of the durable tier.

Read path: memory, then durable, then miss. A durable hit re-populates the
memory tier with the remaining TTL so the next read stays in-process.

Write path: memory synchronously, durable through the write-behind queue.
The caller never waits for the durable write and never sees it fail.
"""

import asyncio
import logging
import time
from collections.abc import Iterable
from typing import Any, Generic, TypeVar

from venue_retrieval.cache.tiered import Priority, TieredCache
from venue_retrieval.cache.write_behind import PendingWrite, WriteBehindQueue
from venue_retrieval.errors import CacheBackendUnavailable
from venue_retrieval.metrics import MetricsCollector
from venue_retrieval.protocols import DurableCacheStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DURABLE_SYNC_TAG = "durable-sync"


class HybridCache(Generic[T]):
    """Memory-first cache backed by an optional durable store.

    Without a durable store this behaves as a plain tiered cache.

    Example:
        ```python
        geo_cache = HybridCache(
            memory=TieredCache("geo", max_entries=1000, default_ttl=600),
            durable=RedisDurableCache.create("geo", CandidateIdsCodec()),
        )
        ids = await geo_cache.get(key)
        if ids is None:
            ids = await fetch()
            geo_cache.set(key, ids, tags=["places"])
        ```
    """

    def __init__(
        self,
        memory: TieredCache[T],
        durable: DurableCacheStore[T] | None = None,
        metrics: MetricsCollector | None = None,
        durable_timeout: float = 0.5,
        write_queue_size: int = 1000,
    ) -> None:
        """Initialize the facade.

        Args:
            memory: The in-process tier (required).
            durable: Shared durable tier. If None, only memory is used.
            metrics: Collector for durable hit/miss events.
            durable_timeout: Seconds allowed for one durable read.
            write_queue_size: Bound of the write-behind queue.
        """
        self._memory = memory
        self._durable = durable
        self._metrics = metrics
        self._timeout = durable_timeout
        self._durable_type = f"{memory.name}-durable"
        self._writes: WriteBehindQueue[T] | None = (
            WriteBehindQueue(memory.name, durable, max_size=write_queue_size) if durable is not None else None
        )

    @property
    def name(self) -> str:
        return self._memory.name

    @property
    def memory(self) -> TieredCache[T]:
        """Get the in-process tier (for testing)."""
        return self._memory

    @property
    def durable(self) -> DurableCacheStore[T] | None:
        """Get the durable tier (for testing)."""
        return self._durable

    async def get(self, key: str) -> T | None:
        """Return the cached value from memory or the durable tier, or None."""
        value = self._memory.get(key)
        if value is not None:
            return value
        if self._durable is None:
            return None

        start = time.perf_counter()
        try:
            record = await asyncio.wait_for(asyncio.to_thread(self._durable.get, key), self._timeout)
        except (asyncio.TimeoutError, CacheBackendUnavailable) as exc:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.warning("%s durable read failed for %s: %r", self.name, key, exc)
            self._record_miss(key, "durable_unavailable", elapsed_ms)
            return None

        elapsed_ms = (time.perf_counter() - start) * 1000
        if record is None:
            self._record_miss(key, "not_found", elapsed_ms)
            return None
        remaining = record.remaining_ttl
        if remaining <= 0:
            self._record_miss(key, "expired", elapsed_ms)
            return None

        if self._metrics is not None:
            self._metrics.record_hit(key, self._durable_type, elapsed_ms)
        self._memory.set(key, record.data, ttl=remaining, tags=record.tags | {DURABLE_SYNC_TAG})
        logger.debug("%s durable hit: %s (%.1fs left)", self.name, key, remaining)
        return record.data

    def _record_miss(self, key: str, reason: str, elapsed_ms: float) -> None:
        if self._metrics is not None:
            self._metrics.record_miss(key, self._durable_type, reason, elapsed_ms)

    def set(
        self,
        key: str,
        data: T,
        ttl: float | None = None,
        tags: Iterable[str] = (),
        metadata: dict[str, Any] | None = None,
        priority: Priority = "normal",
    ) -> None:
        """Store in memory now and queue the durable write.

        Args:
            key: Cache key
            data: Value to store
            ttl: Lifetime in seconds; defaults to the memory tier's TTL
            tags: Labels for tag invalidation in both tiers
            metadata: Extra bookkeeping stored alongside the durable entry
            priority: Eviction priority in the memory tier
        """
        tag_tuple = tuple(tags)
        self._memory.set(key, data, ttl=ttl, tags=tag_tuple, priority=priority)
        if self._writes is not None:
            effective_ttl = self._memory.default_ttl if ttl is None else ttl
            self._writes.submit(PendingWrite(key, data, effective_ttl, tag_tuple, metadata or {}))

    async def invalidate(self, tags: Iterable[str] | None = None, pattern: str | None = None) -> dict[str, int]:
        """Invalidate by tags and/or key pattern in both tiers.

        The pattern is a regular expression for the memory tier and a
        substring for the durable tier.

        Returns:
            Entries removed per tier
        """
        tag_list = list(tags or [])
        removed = {"memory": 0, "durable": 0}
        if tag_list:
            removed["memory"] += self._memory.invalidate_by_tag(tag_list)
        if pattern:
            removed["memory"] += self._memory.invalidate_by_pattern(pattern)
        if self._durable is not None and (tag_list or pattern):
            try:
                removed["durable"] = await asyncio.to_thread(
                    self._durable.invalidate, pattern=pattern, tags=tag_list or None
                )
            except CacheBackendUnavailable as exc:
                logger.warning("%s durable invalidation failed: %s", self.name, exc)
        return removed

    async def cleanup_expired(self) -> dict[str, int]:
        removed = {"memory": self._memory.cleanup_expired(), "durable": 0}
        if self._durable is not None:
            try:
                removed["durable"] = await asyncio.to_thread(self._durable.cleanup_expired)
            except CacheBackendUnavailable as exc:
                logger.warning("%s durable cleanup failed: %s", self.name, exc)
        return removed

    async def stats(self) -> dict[str, Any]:
        """Get memory, durable and combined statistics."""
        memory = self._memory.stats()
        durable: dict[str, Any] | None = None
        if self._durable is not None:
            try:
                durable = await asyncio.to_thread(self._durable.stats)
            except CacheBackendUnavailable as exc:
                durable = {"available": False, "error": str(exc)}
        combined: dict[str, Any] = {
            "entries": memory["entries"] + ((durable or {}).get("total_entries") or 0),
            "memory_hit_rate": memory["hit_rate"],
        }
        if self._writes is not None:
            combined["write_behind"] = self._writes.stats()
        return {"memory": memory, "durable": durable, "combined": combined}

    def start(self) -> None:
        self._memory.start()

    def flush(self) -> None:
        """Wait for queued durable writes."""
        if self._writes is not None:
            self._writes.flush()

    def close(self) -> None:
        """Stop the memory cleanup timer and drain the write-behind queue."""
        self._memory.dispose()
        if self._writes is not None:
            self._writes.close()
        if self._durable is not None:
            self._durable.close()
