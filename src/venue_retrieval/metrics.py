"""Cache metrics collection.

Every cache tier reports hit, miss and set events here. Events live in a
bounded rolling window; periodic snapshots aggregate them for trend reporting.
"""

import logging
import re
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from venue_retrieval.maintenance import PeriodicWorker

logger = logging.getLogger(__name__)

MAX_HISTORY = 10_000
MAX_SNAPSHOTS = 1440  # 24 hours of one-minute snapshots
MAX_KEY_LENGTH = 50
_EMAIL_PREFIX = re.compile(r"[^@:]+@")

LOW_HIT_RATE = 0.6
SLOW_ACCESS_MS = 5.0
HIGH_EXPIRATION_SHARE = 0.3
CRITICAL_HIT_RATE = 0.65

# Health score thresholds, highest first
HEALTH_LEVELS = ((90, "excellent"), (75, "good"), (50, "warning"))


class MetricKind(str, Enum):
    HIT = "hit"
    MISS = "miss"
    SET = "set"


@dataclass(frozen=True)
class MetricEvent:
    """A single cache operation.

    Attributes:
        key: Sanitized cache key
        cache_type: Tier that produced the event (e.g. "geo-memory")
        kind: hit, miss or set
        latency_ms: Time spent in the operation
        reason: Miss reason (not_found, expired, durable_unavailable)
        size_bytes: Entry size for hits and sets
        timestamp: Wall clock time of the event
    """

    key: str
    cache_type: str
    kind: MetricKind
    latency_ms: float
    reason: str | None = None
    size_bytes: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class TypeStats:
    hits: int
    misses: int
    hit_rate: float


@dataclass(frozen=True)
class MetricsSnapshot:
    """Immutable aggregate of the events inside one time window."""

    timestamp: float
    hits: int
    misses: int
    sets: int
    hit_rate: float
    avg_hit_ms: float
    total_size_bytes: int
    expired_misses: int
    by_type: dict[str, TypeStats] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "hit_rate": self.hit_rate,
            "avg_hit_ms": self.avg_hit_ms,
            "total_size_bytes": self.total_size_bytes,
            "expired_misses": self.expired_misses,
            "by_type": {
                name: {"hits": s.hits, "misses": s.misses, "hit_rate": s.hit_rate}
                for name, s in self.by_type.items()
            },
        }


def sanitize_key(key: str) -> str:
    """Mask e-mail local parts and truncate long keys before they are retained."""
    if "@" in key:
        key = _EMAIL_PREFIX.sub("***@", key, count=1)
    if len(key) > MAX_KEY_LENGTH:
        return key[:MAX_KEY_LENGTH] + "..."
    return key


def health_status(score: int) -> str:
    for threshold, status in HEALTH_LEVELS:
        if score >= threshold:
            return status
    return "critical"


def _aggregate(events: Iterable[MetricEvent], timestamp: float) -> MetricsSnapshot:
    hits = misses = sets = expired = total_size = 0
    hit_latency = 0.0
    per_type: dict[str, list[int]] = {}

    for event in events:
        counts = per_type.setdefault(event.cache_type, [0, 0])
        if event.kind is MetricKind.HIT:
            hits += 1
            hit_latency += event.latency_ms
            total_size += event.size_bytes
            counts[0] += 1
        elif event.kind is MetricKind.MISS:
            misses += 1
            counts[1] += 1
            if event.reason == "expired":
                expired += 1
        else:
            sets += 1

    lookups = hits + misses
    by_type = {
        name: TypeStats(
            hits=h,
            misses=m,
            hit_rate=h / (h + m) if h + m else 0.0,
        )
        for name, (h, m) in per_type.items()
        if h + m
    }
    return MetricsSnapshot(
        timestamp=timestamp,
        hits=hits,
        misses=misses,
        sets=sets,
        hit_rate=hits / lookups if lookups else 0.0,
        avg_hit_ms=hit_latency / hits if hits else 0.0,
        total_size_bytes=total_size,
        expired_misses=expired,
        by_type=by_type,
    )


class MetricsCollector:
    """Thread-safe recorder of cache events.

    Example:
        ```python
        metrics = MetricsCollector(retention=900, snapshot_interval=60)
        metrics.record_hit("place:45.46:9.19:5", "geo-memory", 0.02)
        metrics.start()   # periodic snapshots
        ...
        metrics.dispose()
        ```
    """

    def __init__(
        self,
        retention: float = 900.0,
        snapshot_interval: float = 60.0,
        max_history: int = MAX_HISTORY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the collector.

        Args:
            retention: Events older than this many seconds are trimmed.
            snapshot_interval: Window of each periodic snapshot, in seconds.
            max_history: Hard cap on retained events.
            clock: Wall clock, injectable for tests.
        """
        self._retention = retention
        self._snapshot_interval = snapshot_interval
        self._clock = clock
        self._events: deque[MetricEvent] = deque(maxlen=max_history)
        self._snapshots: deque[MetricsSnapshot] = deque(maxlen=MAX_SNAPSHOTS)
        self._lock = threading.Lock()
        self._worker: PeriodicWorker | None = None

    def record(self, event: MetricEvent) -> None:
        with self._lock:
            self._events.append(event)
            self._trim(event.timestamp)

    def record_hit(self, key: str, cache_type: str, latency_ms: float, size_bytes: int = 0) -> None:
        self.record(
            MetricEvent(
                key=sanitize_key(key),
                cache_type=cache_type,
                kind=MetricKind.HIT,
                latency_ms=latency_ms,
                size_bytes=size_bytes,
                timestamp=self._clock(),
            )
        )

    def record_miss(self, key: str, cache_type: str, reason: str = "not_found", latency_ms: float = 0.0) -> None:
        self.record(
            MetricEvent(
                key=sanitize_key(key),
                cache_type=cache_type,
                kind=MetricKind.MISS,
                latency_ms=latency_ms,
                reason=reason,
                timestamp=self._clock(),
            )
        )

    def record_set(self, key: str, cache_type: str, latency_ms: float, size_bytes: int = 0) -> None:
        self.record(
            MetricEvent(
                key=sanitize_key(key),
                cache_type=cache_type,
                kind=MetricKind.SET,
                latency_ms=latency_ms,
                size_bytes=size_bytes,
                timestamp=self._clock(),
            )
        )

    def _trim(self, now: float) -> None:
        cutoff = now - self._retention
        while self._events and self._events[0].timestamp < cutoff:
            self._events.popleft()

    def events(self, window: float | None = None) -> list[MetricEvent]:
        """Return retained events, optionally only those inside the last ``window`` seconds."""
        now = self._clock()
        with self._lock:
            self._trim(now)
            if window is None:
                return list(self._events)
            return [e for e in self._events if now - e.timestamp < window]

    def snapshot(self) -> MetricsSnapshot:
        """Aggregate the last snapshot interval and append it to the history."""
        now = self._clock()
        snap = _aggregate(self.events(self._snapshot_interval), now)
        with self._lock:
            self._snapshots.append(snap)
        logger.debug("Metrics snapshot: %d hits, %d misses", snap.hits, snap.misses)
        return snap

    @property
    def snapshots(self) -> list[MetricsSnapshot]:
        with self._lock:
            return list(self._snapshots)

    def current_metrics(self, window: float = 300.0) -> dict[str, Any]:
        """Get real-time metrics over the last ``window`` seconds.

        Returns:
            Dictionary with ``overall`` and ``by_type`` aggregates and
            ``trends`` from the last 10 snapshots
        """
        now = self._clock()
        recent = self.events(window)
        overall = _aggregate(recent, now)

        by_type: dict[str, dict[str, Any]] = {}
        for cache_type in sorted({e.cache_type for e in recent}):
            typed = [e for e in recent if e.cache_type == cache_type]
            by_type[cache_type] = _aggregate(typed, now).to_dict()

        last = self.snapshots[-10:]
        return {
            "overall": overall.to_dict(),
            "by_type": by_type,
            "trends": {
                "hit_rate": [s.hit_rate for s in last],
                "avg_hit_ms": [s.avg_hit_ms for s in last],
                "size_bytes": [s.total_size_bytes for s in last],
            },
        }

    def insights(self, window: float = 900.0) -> dict[str, Any]:
        """Get the slowest and hottest keys plus detected problem areas.

        Args:
            window: Look-back in seconds (default 15 minutes)
        """
        recent = self.events(window)
        hits = [e for e in recent if e.kind is MetricKind.HIT]
        misses = [e for e in recent if e.kind is MetricKind.MISS]

        hit_times: dict[str, list[float]] = {}
        for event in hits:
            hit_times.setdefault(event.key, []).append(event.latency_ms)
        miss_counts: dict[str, int] = {}
        for event in misses:
            miss_counts[event.key] = miss_counts.get(event.key, 0) + 1

        slowest = sorted(
            (
                {"key": key, "avg_hit_ms": sum(times) / len(times), "hit_count": len(times)}
                for key, times in hit_times.items()
            ),
            key=lambda item: item["avg_hit_ms"],
            reverse=True,
        )[:10]
        hottest = sorted(
            (
                {
                    "key": key,
                    "hit_count": len(times),
                    "hit_rate": len(times) / (len(times) + miss_counts.get(key, 0)),
                }
                for key, times in hit_times.items()
            ),
            key=lambda item: item["hit_count"],
            reverse=True,
        )[:10]

        problems: list[dict[str, str]] = []
        lookups = len(hits) + len(misses)
        if lookups:
            hit_rate = len(hits) / lookups
            if hit_rate < LOW_HIT_RATE:
                problems.append(
                    {
                        "issue": "Low Hit Rate",
                        "description": f"Overall hit rate is {hit_rate * 100:.1f}%",
                        "recommendation": "Consider increasing cache size or TTL values",
                    }
                )
        if hits:
            avg_hit = sum(e.latency_ms for e in hits) / len(hits)
            if avg_hit > SLOW_ACCESS_MS:
                problems.append(
                    {
                        "issue": "Slow Cache Access",
                        "description": f"Average hit time is {avg_hit:.2f}ms",
                        "recommendation": "Check cache size and consider memory optimization",
                    }
                )
        if misses:
            expired = sum(1 for e in misses if e.reason == "expired")
            if expired > len(misses) * HIGH_EXPIRATION_SHARE:
                problems.append(
                    {
                        "issue": "High Expiration Rate",
                        "description": f"{expired / len(misses) * 100:.1f}% of misses are due to expiration",
                        "recommendation": "Consider increasing TTL values for frequently accessed data",
                    }
                )

        return {"slowest_keys": slowest, "hottest_keys": hottest, "problem_areas": problems}

    def health(self, window: float = 900.0) -> dict[str, Any]:
        """Score cache health from 0 to 100.

        Every problem area from ``insights`` costs 10 points; an overall hit
        rate below ``CRITICAL_HIT_RATE`` costs another 20. With no lookups in
        the window the score is 100.

        Returns:
            Dictionary with ``score``, ``status`` (excellent, good, warning
            or critical) and the ``issues`` found
        """
        issues = [{**problem, "severity": "warning"} for problem in self.insights(window)["problem_areas"]]
        overall = self.current_metrics(window)["overall"]
        if overall["hits"] + overall["misses"] and overall["hit_rate"] < CRITICAL_HIT_RATE:
            issues.append(
                {
                    "issue": "Critical Hit Rate",
                    "description": f"Overall hit rate too low: {overall['hit_rate'] * 100:.1f}%",
                    "recommendation": "Review cache strategy and consider increasing cache sizes",
                    "severity": "error",
                }
            )
        errors = sum(1 for issue in issues if issue["severity"] == "error")
        score = max(0, 100 - errors * 20 - (len(issues) - errors) * 10)
        return {"score": score, "status": health_status(score), "issues": issues}

    def export_prometheus(self, window: float = 300.0) -> str:
        """Render the current counters in Prometheus text exposition format."""
        overall = self.current_metrics(window)["overall"]
        lines = [
            "# HELP cache_hits_total Total number of cache hits",
            "# TYPE cache_hits_total counter",
            f"cache_hits_total {overall['hits']}",
            "# HELP cache_misses_total Total number of cache misses",
            "# TYPE cache_misses_total counter",
            f"cache_misses_total {overall['misses']}",
            "# HELP cache_hit_rate Current hit rate",
            "# TYPE cache_hit_rate gauge",
            f"cache_hit_rate {overall['hit_rate']}",
            "# HELP cache_average_hit_time_ms Average hit time in milliseconds",
            "# TYPE cache_average_hit_time_ms gauge",
            f"cache_average_hit_time_ms {overall['avg_hit_ms']}",
        ]
        for cache_type, stats in overall["by_type"].items():
            lines.append(f'cache_type_hit_rate{{cache_type="{cache_type}"}} {stats["hit_rate"]}')
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            self._events.clear()
            self._snapshots.clear()

    def start(self) -> None:
        """Start periodic snapshotting on a background thread."""
        if self._worker is None:
            self._worker = PeriodicWorker("metrics-snapshot", self._snapshot_interval, self.snapshot)
        self._worker.start()

    def dispose(self) -> None:
        """Stop the snapshot timer."""
        if self._worker is not None:
            self._worker.stop()
            self._worker = None
