"""In-process bounded cache (LRU + TTL + tag index).

This is the fast path for every cache type. One re-entrant lock guards the
entry map, the access order, the tag index and the counters, so concurrent
``get``/``set``/``invalidate`` calls stay linearizable. Metric events are
recorded after the lock is released.
"""

import json
import logging
import re
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Generic, Literal, TypeVar

from venue_retrieval.entities import CacheEntry
from venue_retrieval.maintenance import PeriodicWorker
from venue_retrieval.metrics import MetricsCollector

logger = logging.getLogger(__name__)

T = TypeVar("T")

Priority = Literal["low", "normal", "high"]

FALLBACK_SIZE_BYTES = 1024


def estimate_size(data: Any) -> int:
    """Approximate the memory footprint of a value in bytes.

    Strings count two bytes per character, numbers 8 and booleans 4.
    Anything else is measured through its JSON form.
    """
    if isinstance(data, str):
        return len(data) * 2
    if isinstance(data, bool):
        return 4
    if isinstance(data, (int, float)):
        return 8
    try:
        return len(json.dumps(data, default=str)) * 2
    except (TypeError, ValueError):
        return FALLBACK_SIZE_BYTES


class TieredCache(Generic[T]):
    """Thread-safe LRU cache with per-entry TTL and tag invalidation.

    ``None`` is never stored; ``get`` returns ``None`` for a miss.

    Example:
        ```python
        cache: TieredCache[list[str]] = TieredCache("geo", max_entries=1000, default_ttl=600)
        cache.set("place:45.46:9.19:5", ["p1", "p2"], tags=["places"])
        cache.get("place:45.46:9.19:5")       # ["p1", "p2"]
        cache.invalidate_by_tag(["places"])   # 1
        ```
    """

    def __init__(
        self,
        name: str,
        max_entries: int,
        default_ttl: float,
        max_memory_bytes: int | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.monotonic,
        cleanup_interval: float | None = None,
        cleanup_batch_size: int = 200,
        size_estimator: Callable[[Any], int] = estimate_size,
    ) -> None:
        """Initialize the cache.

        Args:
            name: Cache type, reported in metrics as ``{name}-memory``
            max_entries: Entry count bound
            default_ttl: TTL in seconds for entries stored without one
            max_memory_bytes: Optional bound on the summed entry sizes
            metrics: Collector for hit/miss/set events
            clock: Monotonic clock in seconds, injectable for tests
            cleanup_interval: If set, ``start()`` runs ``cleanup_expired`` at this interval
            cleanup_batch_size: Keys deleted per lock acquisition during cleanup
            size_estimator: Size heuristic for stored values
        """
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")

        self._name = name
        self._metric_type = f"{name}-memory"
        self._max_entries = max_entries
        self._default_ttl = default_ttl
        self._max_memory = max_memory_bytes
        self._metrics = metrics
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._batch_size = max(1, cleanup_batch_size)
        self._estimate = size_estimator

        self._entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._tags: dict[str, set[str]] = {}
        self._size_bytes = 0
        self._lock = threading.RLock()
        self._worker: PeriodicWorker | None = None

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._evictions = 0
        self._expirations = 0
        self._access_ms_total = 0.0
        self._accesses = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    # Internal helpers. Callers must hold the lock.

    def _unindex(self, key: str, entry: CacheEntry[T]) -> None:
        for tag in entry.tags:
            keys = self._tags.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._tags[tag]

    def _remove(self, key: str) -> CacheEntry[T] | None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._size_bytes -= entry.size_bytes
            self._unindex(key, entry)
        return entry

    def _evict_lru(self) -> str | None:
        if not self._entries:
            return None
        key = next(iter(self._entries))
        self._remove(key)
        self._evictions += 1
        return key

    def _track_access(self, elapsed_ms: float) -> None:
        self._access_ms_total += elapsed_ms
        self._accesses += 1

    # Public API

    def get(self, key: str) -> T | None:
        """Return the cached value, or None when absent or expired.

        A successful read bumps the entry's hit count and moves it to the
        most-recently-used end.
        """
        start = time.perf_counter()
        reason: str | None = None
        size = 0
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None:
                reason = "not_found"
            elif entry.is_expired(now):
                self._remove(key)
                self._expirations += 1
                reason = "expired"
            else:
                entry.hit_count += 1
                entry.last_accessed_at = now
                self._entries.move_to_end(key)
                size = entry.size_bytes
            if reason is None:
                self._hits += 1
            else:
                self._misses += 1
            elapsed_ms = (time.perf_counter() - start) * 1000
            self._track_access(elapsed_ms)
            data = entry.data if reason is None and entry is not None else None

        if self._metrics is not None:
            if reason is None:
                self._metrics.record_hit(key, self._metric_type, elapsed_ms, size)
            else:
                self._metrics.record_miss(key, self._metric_type, reason, elapsed_ms)
        if reason is None:
            logger.debug("%s cache hit: %s", self._name, key)
        return data

    def get_entry(self, key: str) -> CacheEntry[T] | None:
        """Return the live entry bookkeeping without counting a read."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self._clock()):
                return None
            return entry

    def set(
        self,
        key: str,
        data: T,
        ttl: float | None = None,
        tags: Iterable[str] = (),
        priority: Priority = "normal",
    ) -> bool:
        """Store a value, evicting least-recently-used entries as needed.

        Args:
            key: Cache key
            data: Value to store (not None)
            ttl: Lifetime in seconds; defaults to the cache's TTL
            tags: Labels for ``invalidate_by_tag``
            priority: "low" entries go to the LRU end and are evicted first

        Returns:
            True if stored, False if the value alone exceeds the memory bound
        """
        if data is None:
            raise ValueError("None cannot be cached")
        effective_ttl = self._default_ttl if ttl is None else ttl
        if effective_ttl <= 0:
            raise ValueError("ttl must be positive")

        start = time.perf_counter()
        size = self._estimate(data)
        if self._max_memory is not None and size > self._max_memory:
            logger.warning(
                "%s cache entry %s too large (%d bytes > %d), skipping",
                self._name,
                key,
                size,
                self._max_memory,
            )
            return False

        with self._lock:
            now = self._clock()
            self._remove(key)
            while len(self._entries) >= self._max_entries:
                self._evict_lru()
            if self._max_memory is not None:
                while self._entries and self._size_bytes + size > self._max_memory:
                    self._evict_lru()

            entry = CacheEntry(
                data=data,
                created_at=now,
                last_accessed_at=now,
                ttl=effective_ttl,
                size_bytes=size,
                tags=frozenset(tags),
            )
            self._entries[key] = entry
            if priority == "low":
                self._entries.move_to_end(key, last=False)
            self._size_bytes += size
            for tag in entry.tags:
                self._tags.setdefault(tag, set()).add(key)
            self._sets += 1
            elapsed_ms = (time.perf_counter() - start) * 1000

        if self._metrics is not None:
            self._metrics.record_set(key, self._metric_type, elapsed_ms, size)
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            removed = self._remove(key) is not None
            if removed:
                self._deletes += 1
            return removed

    def get_many(self, keys: Iterable[str]) -> dict[str, T]:
        """Return the present values among ``keys``."""
        found: dict[str, T] = {}
        for key in keys:
            value = self.get(key)
            if value is not None:
                found[key] = value
        return found

    def set_many(
        self,
        entries: Mapping[str, T],
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> int:
        tag_list = list(tags)
        return sum(1 for key, data in entries.items() if self.set(key, data, ttl=ttl, tags=tag_list))

    def invalidate_by_tag(self, tags: Iterable[str]) -> int:
        """Remove every entry indexed under any of ``tags``.

        Returns:
            Number of entries removed
        """
        count = 0
        with self._lock:
            for tag in list(tags):
                keys = self._tags.pop(tag, None)
                if not keys:
                    continue
                for key in list(keys):
                    if self._remove(key) is not None:
                        count += 1
            self._deletes += count
        if count:
            logger.info("%s cache invalidated %d entries by tag", self._name, count)
        return count

    def invalidate_by_pattern(self, pattern: str | re.Pattern[str]) -> int:
        """Remove every entry whose key matches the regular expression.

        Scans all keys, which is acceptable for a bounded cache.
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        with self._lock:
            matched = [key for key in self._entries if regex.search(key)]
            for key in matched:
                self._remove(key)
            self._deletes += len(matched)
        if matched:
            logger.info("%s cache invalidated %d entries by pattern %s", self._name, len(matched), regex.pattern)
        return len(matched)

    def cleanup_expired(self) -> int:
        """Delete expired entries in batches, releasing the lock between batches.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]

        removed = 0
        for offset in range(0, len(expired), self._batch_size):
            batch = expired[offset : offset + self._batch_size]
            batch_removed = 0
            with self._lock:
                now = self._clock()
                for key in batch:
                    entry = self._entries.get(key)
                    # The key may have been rewritten since the scan.
                    if entry is not None and entry.is_expired(now):
                        self._remove(key)
                        batch_removed += 1
                self._expirations += batch_removed
            removed += batch_removed
            time.sleep(0)

        if removed:
            logger.info("%s cache cleaned up %d expired entries", self._name, removed)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._tags.clear()
            self._size_bytes = 0

    def stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with hits, misses, hit_rate, evictions, size_bytes
            and the 10 most-hit keys
        """
        with self._lock:
            lookups = self._hits + self._misses
            top = sorted(self._entries.items(), key=lambda item: item[1].hit_count, reverse=True)[:10]
            return {
                "name": self._name,
                "entries": len(self._entries),
                "max_entries": self._max_entries,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / lookups if lookups else 0.0,
                "sets": self._sets,
                "deletes": self._deletes,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "size_bytes": self._size_bytes,
                "max_memory_bytes": self._max_memory,
                "avg_access_ms": self._access_ms_total / self._accesses if self._accesses else 0.0,
                "top_keys": [{"key": key, "hits": entry.hit_count} for key, entry in top],
            }

    def export(self) -> dict[str, dict[str, Any]]:
        """Dump per-entry bookkeeping for debugging."""
        with self._lock:
            now = self._clock()
            return {
                key: {
                    "hit_count": entry.hit_count,
                    "size_bytes": entry.size_bytes,
                    "age": now - entry.created_at,
                    "remaining_ttl": entry.remaining_ttl(now),
                    "tags": sorted(entry.tags),
                }
                for key, entry in self._entries.items()
            }

    def keys(self) -> list[str]:
        """Keys in access order, least recently used first."""
        with self._lock:
            return list(self._entries)

    def start(self) -> None:
        """Start the periodic cleanup timer if an interval was configured."""
        if not self._cleanup_interval:
            return
        if self._worker is None:
            self._worker = PeriodicWorker(f"{self._name}-cleanup", self._cleanup_interval, self.cleanup_expired)
        self._worker.start()

    def dispose(self) -> None:
        """Stop the cleanup timer. The stored entries are kept."""
        if self._worker is not None:
            self._worker.stop()
            self._worker = None
