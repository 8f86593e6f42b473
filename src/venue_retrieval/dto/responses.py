"""Response DTOs for API endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class RankedItem(BaseModel):
    """Single ranked place or event."""

    entity_id: str = Field(..., description="Entity identifier")
    kind: str = Field(..., description="'place' or 'event'")
    name: str = Field(..., description="Display name")
    score: float = Field(..., description="Final re-ranking score", ge=0.0)
    distance_km: float = Field(..., description="Approximate distance from the user", ge=0.0)
    similarity: float | None = Field(None, description="Vector similarity, null when search was skipped")
    is_past: bool = Field(False, description="True for events that already started")
    verified: bool = Field(False, description="Whether the venue is verified")
    price_tier: str | None = Field(None, description="Price band")
    tags: list[str] = Field(default_factory=list, description="Ambience, music or category tags")
    start_at: datetime | None = Field(None, description="Event start time (events only)")


class PipelineMetaResponse(BaseModel):
    """Bookkeeping about a pipeline run."""

    total_candidates: int = Field(..., ge=0)
    cache_used: bool = Field(..., description="True when served from the pipeline cache")
    processing_time_ms: float = Field(..., ge=0.0)
    candidates_by_kind: dict[str, int] = Field(default_factory=dict)
    degraded: bool = Field(False, description="True when a branch failed and a narrower result was used")
    stages: list[str] = Field(default_factory=list, description="State-machine path taken")


class PipelineRunResponse(BaseModel):
    """Response DTO for a pipeline run."""

    results: list[RankedItem] = Field(
        default_factory=list,
        description="Ranked places and events (upcoming first, highest score first)",
    )
    meta: PipelineMetaResponse


class InvalidateResponse(BaseModel):
    """Response DTO for cache invalidation."""

    success: bool
    removed: dict[str, dict[str, int]] = Field(
        default_factory=dict,
        description="Removed entries per cache type and tier",
    )
    message: str


class WarmZoneResponse(BaseModel):
    """Response DTO for zone cache warming."""

    success: bool = Field(..., description="False when any kind's lookup failed")
    warmed: dict[str, int | None] = Field(
        default_factory=dict,
        description="Candidates cached per kind; null for a kind whose lookup failed",
    )


class CleanupResponse(BaseModel):
    """Response DTO for an on-demand expiry sweep."""

    success: bool
    removed: dict[str, dict[str, int]] = Field(default_factory=dict)


class CacheStatsResponse(BaseModel):
    """Response DTO for cache statistics."""

    enabled: bool = Field(..., description="Whether caching is configured")
    caches: dict[str, Any] = Field(default_factory=dict, description="Stats per cache type")


class HealthCheckResponse(BaseModel):
    """Response DTO for health check."""

    status: str = Field(..., description="Health status: 'healthy' or 'degraded'")
    cache_healthy: bool | None = Field(None, description="Whether the durable cache backend is reachable")
    embedding_healthy: bool | None = Field(None, description="Whether the embedding service is reachable")
