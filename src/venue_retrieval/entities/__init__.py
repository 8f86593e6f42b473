"""Domain entities for internal representation.

These are pure dataclasses (frozen, except the tier-owned ``CacheEntry``)
used internally by services, caches and repositories. They are NOT used
for API contracts - use DTOs from the dto package for that.
"""

from .cache_entry import CacheEntry, DurableRecord
from .context import Budget, Companionship, Mood, SuggestionContext, TimeOfDay
from .results import PipelineMeta, PipelineResult, PipelineStage, RankedResult, SimilarityMatch
from .snapshots import EntityKind, EntitySnapshot, EventSnapshot, PlaceSnapshot

__all__ = [
    "Budget",
    "CacheEntry",
    "Companionship",
    "DurableRecord",
    "EntityKind",
    "EntitySnapshot",
    "EventSnapshot",
    "Mood",
    "PipelineMeta",
    "PipelineResult",
    "PipelineStage",
    "PlaceSnapshot",
    "RankedResult",
    "SimilarityMatch",
    "SuggestionContext",
    "TimeOfDay",
]
