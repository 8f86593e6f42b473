"""Request DTOs for API endpoints."""

from pydantic import BaseModel, Field


class PipelineRunRequest(BaseModel):
    """Request DTO for running the retrieval pipeline.

    Only the shape is checked here; the handler builds a SuggestionContext,
    which validates ranges and enum values.
    """

    lat: float = Field(..., description="Latitude of the user")
    lon: float = Field(..., description="Longitude of the user")
    radius_km: float = Field(5.0, description="Search radius in kilometres (0.5-50)")
    companionship: str | None = Field(None, description="alone, partner, friends or family")
    mood: str | None = Field(None, description="relaxed, energetic, romantic, adventurous or cultural")
    budget: str | None = Field(None, description="Price band: €, €€, €€€ or €€€€")
    time_of_day: str | None = Field(None, description="morning, afternoon, evening or night")
    preferences: list[str] = Field(default_factory=list, description="Free-text preference tags")


class InvalidateRequest(BaseModel):
    """Request DTO for invalidating cache entries.

    With neither tags nor pattern, nothing is removed.
    """

    tags: list[str] | None = Field(None, description="Remove entries carrying any of these tags")
    pattern: str | None = Field(None, description="Remove entries whose key matches this regex")
    cache_types: list[str] | None = Field(
        None,
        description="Restrict to these cache types (geo, vector, embedding, pipeline); null means all",
    )


class WarmZoneRequest(BaseModel):
    """Request DTO for pre-populating the geo cache of a zone."""

    lat: float = Field(..., description="Zone centre latitude")
    lon: float = Field(..., description="Zone centre longitude")
    radius_km: float = Field(5.0, description="Zone radius in kilometres (0.5-50)")
