"""HTTP handlers for pipeline and cache operations.

Handlers convert between DTOs (API contracts) and service calls.
They handle HTTP concerns like status codes, validation, and error handling.
"""

import asyncio
import logging
import re

from fastapi import HTTPException, status

from venue_retrieval.dto import (
    CacheStatsResponse,
    CleanupResponse,
    HealthCheckResponse,
    InvalidateRequest,
    InvalidateResponse,
    PipelineMetaResponse,
    PipelineRunRequest,
    PipelineRunResponse,
    RankedItem,
    WarmZoneRequest,
    WarmZoneResponse,
)
from venue_retrieval.entities import EventSnapshot, PipelineResult, RankedResult, SuggestionContext
from venue_retrieval.errors import InvalidContext
from venue_retrieval.protocols import EmbeddingProvider
from venue_retrieval.services import PipelineOrchestrator

logger = logging.getLogger(__name__)


def to_ranked_item(result: RankedResult) -> RankedItem:
    snapshot = result.metadata
    return RankedItem(
        entity_id=result.entity_id,
        kind=result.kind.value,
        name=snapshot.name,
        score=result.score,
        distance_km=result.distance_km,
        similarity=result.similarity,
        is_past=result.is_past,
        verified=snapshot.verified,
        price_tier=snapshot.price_tier,
        tags=list(snapshot.tags),
        start_at=snapshot.start_at if isinstance(snapshot, EventSnapshot) else None,
    )


def to_run_response(result: PipelineResult) -> PipelineRunResponse:
    meta = result.meta
    return PipelineRunResponse(
        results=[to_ranked_item(ranked) for ranked in result.ranked_results],
        meta=PipelineMetaResponse(
            total_candidates=meta.total_candidates,
            cache_used=meta.cache_used,
            processing_time_ms=meta.processing_time_ms,
            candidates_by_kind=dict(meta.candidates_by_kind),
            degraded=meta.degraded,
            stages=[stage.value for stage in meta.stages],
        ),
    )


class PipelineHandler:
    """HTTP handlers for the retrieval pipeline and its caches.

    This handler delegates business logic to PipelineOrchestrator
    and handles HTTP-specific concerns like:
    - Building a validated SuggestionContext from the request
    - Converting entities to DTOs
    - Setting appropriate status codes

    Example:
        ```python
        pipeline = PipelineOrchestrator.create(geo, vectors, metadata, provider, cache=suite)
        handler = PipelineHandler(pipeline=pipeline, embedding_provider=provider)

        @app.post("/pipeline/run", response_model=PipelineRunResponse)
        async def run(request: PipelineRunRequest):
            return await handler.run_pipeline(request)
        ```
    """

    def __init__(
        self,
        pipeline: PipelineOrchestrator,
        embedding_provider: EmbeddingProvider | None = None,
    ) -> None:
        """Initialize the pipeline handler.

        Args:
            pipeline: The orchestrator for business logic (required).
            embedding_provider: Probed by the health check, if given.
        """
        self._pipeline = pipeline
        self._embedding_provider = embedding_provider

    async def run_pipeline(self, request: PipelineRunRequest) -> PipelineRunResponse:
        """Handle POST /pipeline/run requests.

        Raises:
            HTTPException: 422 for an invalid context, 500 for unexpected failures
        """
        try:
            context = SuggestionContext(
                lat=request.lat,
                lon=request.lon,
                radius_km=request.radius_km,
                companionship=request.companionship,
                mood=request.mood,
                budget=request.budget,
                time_of_day=request.time_of_day,
                preferences=tuple(request.preferences),
            )
        except InvalidContext as e:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=e.errors,
            ) from e

        try:
            result = await self._pipeline.run_pipeline(context)
        except Exception as e:
            logger.exception("Pipeline run failed")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Pipeline run failed: {e}",
            ) from e

        return to_run_response(result)

    async def invalidate(self, request: InvalidateRequest) -> InvalidateResponse:
        """Handle POST /cache/invalidate requests."""
        try:
            removed = await self._pipeline.invalidate(
                tags=request.tags,
                pattern=request.pattern,
                cache_types=request.cache_types,
            )
        except (ValueError, re.error) as e:
            # Unknown cache type or malformed pattern
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

        total = sum(sum(tiers.values()) for tiers in removed.values())
        return InvalidateResponse(
            success=True,
            removed=removed,
            message=f"Invalidated {total} entries",
        )

    async def warm_zone(self, request: WarmZoneRequest) -> WarmZoneResponse:
        """Handle POST /cache/warm requests.

        Raises:
            HTTPException: 422 for coordinates or radius out of range
        """
        try:
            warmed = await self._pipeline.warm_zone(request.lat, request.lon, request.radius_km)
        except InvalidContext as e:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=e.errors,
            ) from e
        return WarmZoneResponse(
            success=all(count is not None for count in warmed.values()),
            warmed=warmed,
        )

    async def cleanup(self) -> CleanupResponse:
        """Handle POST /cache/cleanup requests."""
        try:
            removed = await self._pipeline.cleanup_expired()
        except Exception as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Cleanup failed: {e}",
            ) from e
        return CleanupResponse(success=True, removed=removed)

    async def get_stats(self) -> CacheStatsResponse:
        """Handle GET /cache/stats requests."""
        stats = await self._pipeline.cache_stats()
        return CacheStatsResponse(enabled=stats["enabled"], caches=stats.get("caches", {}))

    def get_metrics(self) -> dict:
        """Handle GET /cache/metrics requests."""
        return self._pipeline.metrics_report()

    def get_prometheus(self) -> str:
        return self._pipeline.prometheus_metrics()

    async def health_check(self) -> HealthCheckResponse:
        """Handle GET /health requests.

        The service stays usable when the durable cache is down, so an
        unreachable backend reports "degraded" rather than failing.
        """
        cache_healthy: bool | None = None
        cache = self._pipeline.cache
        if cache is not None and cache.pipeline.durable is not None:
            cache_healthy = await asyncio.to_thread(cache.pipeline.durable.health_check)

        embedding_healthy: bool | None = None
        if self._embedding_provider is not None:
            embedding_healthy = await self._embedding_provider.is_available()

        healthy = cache_healthy is not False and embedding_healthy is not False
        return HealthCheckResponse(
            status="healthy" if healthy else "degraded",
            cache_healthy=cache_healthy,
            embedding_healthy=embedding_healthy,
        )
