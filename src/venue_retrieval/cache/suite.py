"""The four typed hybrid caches used by the pipeline, built and owned together."""

import asyncio
import logging
import re
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from venue_retrieval.cache.codecs import (
    CandidateIdsCodec,
    CandidateSet,
    Embedding,
    EmbeddingCodec,
    PayloadCodec,
    PipelineResultCodec,
    SimilarityCodec,
    SimilarityList,
)
from venue_retrieval.cache.hybrid import HybridCache
from venue_retrieval.cache.tiered import TieredCache
from venue_retrieval.config import Settings, get_settings
from venue_retrieval.entities import PipelineResult
from venue_retrieval.metrics import MetricsCollector
from venue_retrieval.protocols import DurableCacheStore

logger = logging.getLogger(__name__)

CACHE_TYPES = ("geo", "vector", "embedding", "pipeline")

DurableFactory = Callable[[str, PayloadCodec[Any]], DurableCacheStore[Any]]


@dataclass
class CacheSuite:
    """Geo, vector, embedding and pipeline caches sharing one metrics collector.

    Example:
        ```python
        suite = CacheSuite.create(
            durable_factory=lambda cache_type, codec: RedisDurableCache.create(cache_type, codec, client),
        )
        suite.start()
        ...
        suite.dispose()
        ```
    """

    geo: HybridCache[CandidateSet]
    vector: HybridCache[SimilarityList]
    embedding: HybridCache[Embedding]
    pipeline: HybridCache[PipelineResult]
    metrics: MetricsCollector

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
        durable_factory: DurableFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "CacheSuite":
        """Factory method to build every cache from settings.

        Args:
            settings: Sizing and TTLs. If None, uses the global settings.
            metrics: Shared collector. If None, creates one from settings.
            durable_factory: Builds the durable store of a cache type from its
                codec. If None, the caches are memory-only.
            clock: Monotonic clock for the memory tiers.

        Returns:
            Configured CacheSuite
        """
        settings = settings or get_settings()
        metrics = metrics or MetricsCollector(
            retention=settings.metrics_retention,
            snapshot_interval=settings.metrics_snapshot_interval,
        )
        codecs: dict[str, PayloadCodec[Any]] = {
            "geo": CandidateIdsCodec(),
            "vector": SimilarityCodec(),
            "embedding": EmbeddingCodec(),
            "pipeline": PipelineResultCodec(),
        }

        def build(cache_type: str) -> HybridCache[Any]:
            tier = settings.tier(cache_type)
            memory: TieredCache[Any] = TieredCache(
                name=cache_type,
                max_entries=tier.max_entries,
                default_ttl=tier.ttl,
                max_memory_bytes=tier.max_memory_bytes,
                metrics=metrics,
                clock=clock,
                cleanup_interval=settings.cache_cleanup_interval,
                cleanup_batch_size=settings.cache_cleanup_batch_size,
            )
            durable = durable_factory(cache_type, codecs[cache_type]) if durable_factory else None
            return HybridCache(
                memory=memory,
                durable=durable,
                metrics=metrics,
                durable_timeout=settings.durable_timeout,
                write_queue_size=settings.write_queue_size,
            )

        return cls(
            geo=build("geo"),
            vector=build("vector"),
            embedding=build("embedding"),
            pipeline=build("pipeline"),
            metrics=metrics,
        )

    def caches(self) -> dict[str, HybridCache[Any]]:
        return {
            "geo": self.geo,
            "vector": self.vector,
            "embedding": self.embedding,
            "pipeline": self.pipeline,
        }

    def _select(self, cache_types: Iterable[str] | None) -> dict[str, HybridCache[Any]]:
        caches = self.caches()
        if cache_types is None:
            return caches
        selected = list(cache_types)
        unknown = [name for name in selected if name not in caches]
        if unknown:
            raise ValueError(f"Unknown cache types: {unknown}; expected any of {list(CACHE_TYPES)}")
        return {name: caches[name] for name in selected}

    async def invalidate(
        self,
        tags: Iterable[str] | None = None,
        pattern: str | None = None,
        cache_types: Iterable[str] | None = None,
    ) -> dict[str, dict[str, int]]:
        """Invalidate by tags and/or key pattern across the selected caches.

        Returns:
            Entries removed per cache type and tier

        Raises:
            ValueError: If a cache type is unknown
            re.error: If the pattern is not a valid regular expression
        """
        tag_list = list(tags or [])
        selected = self._select(cache_types)
        if pattern:
            re.compile(pattern)
        results = await asyncio.gather(
            *(cache.invalidate(tags=tag_list, pattern=pattern) for cache in selected.values())
        )
        removed = dict(zip(selected, results))
        logger.info("Cache invalidation (tags=%s, pattern=%s): %s", tag_list, pattern, removed)
        return removed

    async def cleanup_expired(self) -> dict[str, dict[str, int]]:
        caches = self.caches()
        results = await asyncio.gather(*(cache.cleanup_expired() for cache in caches.values()))
        return dict(zip(caches, results))

    async def stats(self) -> dict[str, Any]:
        caches = self.caches()
        results = await asyncio.gather(*(cache.stats() for cache in caches.values()))
        return dict(zip(caches, results))

    def start(self) -> None:
        """Start cleanup timers and metric snapshots."""
        for cache in self.caches().values():
            cache.start()
        self.metrics.start()

    def flush(self) -> None:
        for cache in self.caches().values():
            cache.flush()

    def dispose(self) -> None:
        """Stop every timer and drain the write-behind queues."""
        for cache in self.caches().values():
            cache.close()
        self.metrics.dispose()
