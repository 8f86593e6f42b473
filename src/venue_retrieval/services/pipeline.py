"""Retrieval pipeline orchestration.

State machine::

    CACHE_CHECK -> GEO_FILTER -> VECTOR_SEARCH -> RERANK -> DONE

with early exits CACHE_CHECK -> DONE (full hit), GEO_FILTER -> DONE (no
candidates) and VECTOR_SEARCH -> DONE (no matches). Every stage fans out
across entity kinds with ``asyncio.gather`` and a failing kind never aborts
its siblings.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Iterable, Sequence
from dataclasses import replace
from typing import Any, TypeVar

from venue_retrieval.cache import CacheSuite, CandidateSet, SimilarityList
from venue_retrieval.config import RerankWeights, Settings, get_settings
from venue_retrieval.entities import (
    EntityKind,
    PipelineMeta,
    PipelineResult,
    PipelineStage,
    RankedResult,
    SuggestionContext,
)
from venue_retrieval.errors import RetrievalError
from venue_retrieval.keys import pipeline_key
from venue_retrieval.protocols import EmbeddingProvider, GeoQueryService, MetadataStore, VectorSearchService
from venue_retrieval.services.geo_resolver import GeoCandidateResolver, kind_tag
from venue_retrieval.services.query_embedder import QueryEmbedder
from venue_retrieval.services.reranker import RerankingEngine, sort_results
from venue_retrieval.services.semantic_query import build_semantic_query
from venue_retrieval.services.vector_resolver import VectorSimilarityResolver

logger = logging.getLogger(__name__)

R = TypeVar("R")


class _BranchFailed:
    """Marks a kind whose stage raised a RetrievalError."""

    def __init__(self, error: RetrievalError) -> None:
        self.error = error


async def _guard(stage: PipelineStage, kind: EntityKind, work: Awaitable[R]) -> R | _BranchFailed:
    try:
        return await work
    except RetrievalError as exc:
        logger.warning("%s failed for %s, degrading: %s", stage.value, kind.value, exc)
        return _BranchFailed(exc)


class PipelineOrchestrator:
    """Composes the resolvers and the re-ranker into one cached operation.

    Example:
        ```python
        pipeline = PipelineOrchestrator.create(
            geo_service=geo,
            vector_service=vectors,
            metadata_store=metadata,
            embedding_provider=OllamaEmbeddingProvider.create(),
            cache=CacheSuite.create(),
        )
        result = await pipeline.run_pipeline(SuggestionContext(lat=45.46, lon=9.19, budget="€€"))
        pipeline.dispose()
        ```
    """

    def __init__(
        self,
        geo_resolver: GeoCandidateResolver,
        embedder: QueryEmbedder,
        vector_resolver: VectorSimilarityResolver,
        reranker: RerankingEngine,
        cache: CacheSuite | None = None,
        entity_kinds: Sequence[EntityKind | str] = (EntityKind.PLACE, EntityKind.EVENT),
        max_results_per_kind: int = 6,
        ttl: float = 300.0,
        negative_ttl: float = 60.0,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            geo_resolver: Candidate lookup (required).
            embedder: Query embedding (required).
            vector_resolver: Similarity search (required).
            reranker: Business-rule scorer (required).
            cache: Cache suite. If None, caching is disabled and every run recomputes.
            entity_kinds: Kinds retrieved and merged per run.
            max_results_per_kind: Cap on each kind's ranked results before merging.
            ttl: Lifetime of a full pipeline result in seconds.
            negative_ttl: Lifetime of an empty pipeline result in seconds.
        """
        self._geo = geo_resolver
        self._embedder = embedder
        self._vectors = vector_resolver
        self._reranker = reranker
        self._cache = cache
        self._kinds = tuple(EntityKind(kind) for kind in entity_kinds)
        self._max_per_kind = max_results_per_kind
        self._ttl = ttl
        self._negative_ttl = negative_ttl

    @classmethod
    def create(
        cls,
        geo_service: GeoQueryService,
        vector_service: VectorSearchService,
        metadata_store: MetadataStore,
        embedding_provider: EmbeddingProvider,
        cache: CacheSuite | None = None,
        settings: Settings | None = None,
        weights: RerankWeights | None = None,
    ) -> "PipelineOrchestrator":
        """Factory method wiring every stage from settings.

        Args:
            geo_service: Geo collaborator (required).
            vector_service: Vector similarity collaborator (required).
            metadata_store: Snapshot collaborator (required).
            embedding_provider: Embedding collaborator (required).
            cache: Cache suite. If None, caching is disabled.
            settings: If None, uses the global settings.
            weights: Re-ranking constants. If None, uses the defaults.

        Returns:
            Configured PipelineOrchestrator
        """
        settings = settings or get_settings()
        tier = settings.tier("pipeline")
        return cls(
            geo_resolver=GeoCandidateResolver.create(geo_service, cache.geo if cache else None, settings),
            embedder=QueryEmbedder(
                embedding_provider,
                cache.embedding if cache else None,
                upstream_timeout=settings.upstream_timeout,
            ),
            vector_resolver=VectorSimilarityResolver.create(
                vector_service, cache.vector if cache else None, settings
            ),
            reranker=RerankingEngine.create(metadata_store, weights, settings),
            cache=cache,
            entity_kinds=settings.entity_kinds,
            max_results_per_kind=settings.max_results_per_kind,
            ttl=tier.ttl,
            negative_ttl=tier.negative_ttl or tier.ttl,
        )

    @property
    def cache(self) -> CacheSuite | None:
        return self._cache

    async def run_pipeline(self, context: SuggestionContext) -> PipelineResult:
        """Return ranked places and events for the context.

        Never raises for collaborator failures: a failing kind contributes
        nothing, and a run where nothing succeeded returns an empty result.

        Args:
            context: Validated suggestion context

        Returns:
            PipelineResult with ranked results and meta
        """
        start = time.perf_counter()
        stages = [PipelineStage.CACHE_CHECK]
        key = pipeline_key(context)

        if self._cache is not None:
            cached = await self._cache.pipeline.get(key)
            if cached is not None:
                logger.info("Pipeline cache hit %s (%d results)", key, len(cached.ranked_results))
                return PipelineResult(
                    ranked_results=cached.ranked_results,
                    meta=replace(
                        cached.meta,
                        cache_used=True,
                        processing_time_ms=self._elapsed_ms(start),
                        stages=(PipelineStage.CACHE_CHECK, PipelineStage.DONE),
                    ),
                )

        # Geo filter
        stages.append(PipelineStage.GEO_FILTER)
        geo_results = await asyncio.gather(
            *(
                _guard(
                    PipelineStage.GEO_FILTER,
                    kind,
                    self._geo.resolve(kind, context.lat, context.lon, context.radius_km),
                )
                for kind in self._kinds
            )
        )
        degraded = False
        candidates: dict[EntityKind, CandidateSet] = {}
        for kind, outcome in zip(self._kinds, geo_results):
            if isinstance(outcome, _BranchFailed):
                degraded = True
                candidates[kind] = ()
            else:
                candidates[kind] = outcome
        by_kind = {kind.value: len(ids) for kind, ids in candidates.items()}
        total = sum(by_kind.values())

        if total == 0:
            return self._finish(key, (), total, by_kind, degraded, stages, start)

        # Vector search
        stages.append(PipelineStage.VECTOR_SEARCH)
        active = [kind for kind in self._kinds if candidates[kind]]
        similarities: dict[EntityKind, SimilarityList | None] = {}
        try:
            embedding = await self._embedder.embed(build_semantic_query(context))
        except RetrievalError as exc:
            logger.warning("Query embedding failed, ranking without similarity: %s", exc)
            degraded = True
            similarities = {kind: None for kind in active}
        else:
            vector_results = await asyncio.gather(
                *(
                    _guard(
                        PipelineStage.VECTOR_SEARCH,
                        kind,
                        self._vectors.search(kind, embedding, candidates[kind]),
                    )
                    for kind in active
                )
            )
            for kind, outcome in zip(active, vector_results):
                if isinstance(outcome, _BranchFailed):
                    degraded = True
                    similarities[kind] = None
                else:
                    similarities[kind] = outcome

        if all(matches is not None and not matches for matches in similarities.values()):
            return self._finish(key, (), total, by_kind, degraded, stages, start)

        # Re-rank
        stages.append(PipelineStage.RERANK)
        plans: list[tuple[EntityKind, list[str], dict[str, float]]] = []
        for kind in active:
            matches = similarities[kind]
            if matches is None:
                # Degraded branch: leading geo candidates, no similarity.
                plans.append((kind, list(candidates[kind][: self._vectors.top_k]), {}))
            elif matches:
                plans.append((kind, [m.entity_id for m in matches], {m.entity_id: m.similarity for m in matches}))

        ranked_results = await asyncio.gather(
            *(
                _guard(PipelineStage.RERANK, kind, self._reranker.rerank(kind, ids, context, scores))
                for kind, ids, scores in plans
            )
        )
        merged: list[RankedResult] = []
        for (kind, _, _), outcome in zip(plans, ranked_results):
            if isinstance(outcome, _BranchFailed):
                degraded = True
                continue
            merged.extend(outcome[: self._max_per_kind])

        return self._finish(key, tuple(sort_results(merged)), total, by_kind, degraded, stages, start)

    def _finish(
        self,
        key: str,
        ranked: tuple[RankedResult, ...],
        total: int,
        by_kind: dict[str, int],
        degraded: bool,
        stages: list[PipelineStage],
        start: float,
    ) -> PipelineResult:
        stages.append(PipelineStage.DONE)
        result = PipelineResult(
            ranked_results=ranked,
            meta=PipelineMeta(
                total_candidates=total,
                cache_used=False,
                processing_time_ms=self._elapsed_ms(start),
                candidates_by_kind=by_kind,
                degraded=degraded,
                stages=tuple(stages),
            ),
        )

        if self._cache is not None and not degraded:
            ttl = self._ttl if ranked else self._negative_ttl
            tags = ["pipeline", *sorted({kind_tag(r.kind) for r in ranked})]
            self._cache.pipeline.set(key, result, ttl=ttl, tags=tags)

        logger.info(
            "Pipeline %s: %d results from %d candidates in %.1fms%s",
            key,
            len(ranked),
            total,
            result.meta.processing_time_ms,
            " (degraded)" if degraded else "",
        )
        return result

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000

    async def warm_zone(self, lat: float, lon: float, radius_km: float = 5.0) -> dict[str, int | None]:
        """Pre-populate the geo cache for a zone.

        Resolves every entity kind around the point so later runs in the same
        bucket skip the geo lookup. A failing kind does not stop the others.

        Args:
            lat: Zone centre latitude
            lon: Zone centre longitude
            radius_km: Zone radius in kilometres

        Returns:
            Candidate count per kind, or None for a kind whose lookup failed

        Raises:
            InvalidContext: If the coordinates or radius are out of range
        """
        zone = SuggestionContext(lat=lat, lon=lon, radius_km=radius_km)
        outcomes = await asyncio.gather(
            *(
                _guard(PipelineStage.GEO_FILTER, kind, self._geo.resolve(kind, zone.lat, zone.lon, zone.radius_km))
                for kind in self._kinds
            )
        )
        warmed = {
            kind.value: None if isinstance(outcome, _BranchFailed) else len(outcome)
            for kind, outcome in zip(self._kinds, outcomes)
        }
        logger.info("Warmed geo cache around %.4f,%.4f (%.1fkm): %s", lat, lon, radius_km, warmed)
        return warmed

    async def invalidate(
        self,
        tags: Iterable[str] | None = None,
        pattern: str | None = None,
        cache_types: Iterable[str] | None = None,
    ) -> dict[str, dict[str, int]]:
        """Invalidate cached entries; a no-op without a cache suite."""
        if self._cache is None:
            return {}
        return await self._cache.invalidate(tags=tags, pattern=pattern, cache_types=cache_types)

    async def cleanup_expired(self) -> dict[str, dict[str, int]]:
        if self._cache is None:
            return {}
        return await self._cache.cleanup_expired()

    async def cache_stats(self) -> dict[str, Any]:
        if self._cache is None:
            return {"enabled": False}
        return {"enabled": True, "caches": await self._cache.stats()}

    def metrics_report(self) -> dict[str, Any]:
        """Current metrics, insights and health score from the shared collector."""
        if self._cache is None:
            return {"enabled": False}
        metrics = self._cache.metrics
        return {
            "enabled": True,
            "current": metrics.current_metrics(),
            "insights": metrics.insights(),
            "health": metrics.health(),
        }

    def prometheus_metrics(self) -> str:
        if self._cache is None:
            return ""
        return self._cache.metrics.export_prometheus()

    def start(self) -> None:
        if self._cache is not None:
            self._cache.start()

    def dispose(self) -> None:
        """Stop background timers and drain pending durable writes."""
        if self._cache is not None:
            self._cache.dispose()
