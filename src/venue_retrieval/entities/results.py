"""Retrieval results produced by the resolvers and the pipeline."""

from dataclasses import dataclass, field
from enum import Enum

from .snapshots import EntityKind, EntitySnapshot


@dataclass(frozen=True)
class SimilarityMatch:
    """A single vector search hit.

    Attributes:
        entity_id: Matched entity
        similarity: Cosine similarity (1 = identical)
    """

    entity_id: str
    similarity: float


@dataclass(frozen=True)
class RankedResult:
    """A candidate after business-rule re-ranking.

    Attributes:
        entity_id: Entity identifier
        kind: Place or event
        score: Final clamped score (never negative)
        metadata: Snapshot the score was computed from
        distance_km: Planar approximate distance from the user
        similarity: Vector similarity, None when vector search was skipped
        is_past: True for events that already started
    """

    entity_id: str
    kind: EntityKind
    score: float
    metadata: EntitySnapshot
    distance_km: float
    similarity: float | None = None
    is_past: bool = False


class PipelineStage(str, Enum):
    """States of the pipeline state machine."""

    CACHE_CHECK = "cache_check"
    GEO_FILTER = "geo_filter"
    VECTOR_SEARCH = "vector_search"
    RERANK = "rerank"
    DONE = "done"


@dataclass(frozen=True)
class PipelineMeta:
    """Bookkeeping returned alongside the ranked results.

    Attributes:
        total_candidates: Geo candidates found across all kinds
        cache_used: True when the whole result came from the pipeline cache
        processing_time_ms: Wall time spent in ``run_pipeline``
        candidates_by_kind: Geo candidates per entity kind
        degraded: True when a branch failed and a narrower result was used
        stages: State-machine path taken
    """

    total_candidates: int
    cache_used: bool
    processing_time_ms: float
    candidates_by_kind: dict[str, int] = field(default_factory=dict)
    degraded: bool = False
    stages: tuple[PipelineStage, ...] = ()


@dataclass(frozen=True)
class PipelineResult:
    """Output of ``run_pipeline``."""

    ranked_results: tuple[RankedResult, ...]
    meta: PipelineMeta

    @property
    def is_empty(self) -> bool:
        return not self.ranked_results
