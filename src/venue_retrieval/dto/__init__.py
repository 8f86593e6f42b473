"""Data Transfer Objects for API contracts.

These Pydantic models define the external API contract.
They are used for request/response validation and serialization.

Internal domain logic should use entities from the entities package.
"""

from .requests import InvalidateRequest, PipelineRunRequest, WarmZoneRequest
from .responses import (
    CacheStatsResponse,
    CleanupResponse,
    HealthCheckResponse,
    InvalidateResponse,
    PipelineMetaResponse,
    PipelineRunResponse,
    RankedItem,
    WarmZoneResponse,
)

__all__ = [
    "PipelineRunRequest",
    "InvalidateRequest",
    "WarmZoneRequest",
    "RankedItem",
    "PipelineMetaResponse",
    "PipelineRunResponse",
    "InvalidateResponse",
    "CleanupResponse",
    "WarmZoneResponse",
    "CacheStatsResponse",
    "HealthCheckResponse",
]
