import logging
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from venue_retrieval.api.dependencies import HandlerDep, lifespan
from venue_retrieval.config import settings
from venue_retrieval.dto import (
    CacheStatsResponse,
    CleanupResponse,
    HealthCheckResponse,
    InvalidateRequest,
    InvalidateResponse,
    PipelineRunRequest,
    PipelineRunResponse,
    WarmZoneRequest,
    WarmZoneResponse,
)

app = FastAPI(
    title="Venue Retrieval API",
    description="Geo + vector retrieval of places and events with tiered caching and business re-ranking",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,  # type: ignore[arg-type]
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint with API information."""
    return {
        "name": "Venue Retrieval API",
        "version": "0.1.0",
        "description": "Geo + vector retrieval of places and events with tiered caching and business re-ranking",
        "endpoints": {
            "pipeline": "/pipeline/run",
            "cache": "/cache",
            "health": "/health",
            "docs": "/docs",
        },
    }


@app.get("/health", response_model=HealthCheckResponse)
async def health(handler: HandlerDep) -> HealthCheckResponse:
    """Health check endpoint."""
    return await handler.health_check()


@app.post("/pipeline/run", response_model=PipelineRunResponse)
async def run_pipeline(request: PipelineRunRequest, handler: HandlerDep) -> PipelineRunResponse:
    """
    Retrieve ranked places and events for a suggestion context.

    Args:
        request: Location, radius and situational preferences.

    Returns:
        Ranked results with pipeline meta (cache usage, timing, stages).
    """
    return await handler.run_pipeline(request)


@app.get("/cache/stats", response_model=CacheStatsResponse)
async def cache_stats(handler: HandlerDep) -> CacheStatsResponse:
    """Get per-tier statistics of every cache type."""
    return await handler.get_stats()


@app.get("/cache/metrics", response_model=dict[str, Any])
async def cache_metrics(handler: HandlerDep) -> dict[str, Any]:
    """Get current hit/miss metrics, trends and insights."""
    return handler.get_metrics()


@app.get("/cache/metrics/prometheus", response_class=PlainTextResponse)
async def prometheus_metrics(handler: HandlerDep) -> str:
    """Export cache metrics in Prometheus text format."""
    return handler.get_prometheus()


@app.post("/cache/invalidate", response_model=InvalidateResponse)
async def invalidate_cache(request: InvalidateRequest, handler: HandlerDep) -> InvalidateResponse:
    """
    Invalidate cached entries by tags and/or key pattern.

    Args:
        request: Tags, regex pattern and optional cache types.

    Returns:
        Entries removed per cache type and tier.
    """
    return await handler.invalidate(request)


@app.post("/cache/warm", response_model=WarmZoneResponse)
async def warm_cache(request: WarmZoneRequest, handler: HandlerDep) -> WarmZoneResponse:
    """
    Pre-populate the geo cache around a zone.

    Args:
        request: Zone centre and radius.

    Returns:
        Candidates cached per entity kind.
    """
    return await handler.warm_zone(request)


@app.post("/cache/cleanup", response_model=CleanupResponse)
async def cleanup_cache(handler: HandlerDep) -> CleanupResponse:
    """Sweep expired entries from every tier now."""
    return await handler.cleanup()


def main() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "venue_retrieval.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )


if __name__ == "__main__":
    main()
