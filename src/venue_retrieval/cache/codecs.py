"""Typed payload codecs for the durable tier.

Each cache type stores one bounded payload shape, written to its own field
of the durable entry:

- geo: candidate ID list (``result_ids``)
- vector: similarity list (``similarities``)
- embedding: query vector (``embedding_vector``)
- pipeline: ranked results and meta (``response_data``)
"""

import json
from datetime import datetime
from typing import Any, Protocol, TypeVar

from venue_retrieval.entities import (
    EntityKind,
    EntitySnapshot,
    EventSnapshot,
    PipelineMeta,
    PipelineResult,
    PipelineStage,
    PlaceSnapshot,
    RankedResult,
    SimilarityMatch,
)

T = TypeVar("T")

CandidateSet = tuple[str, ...]
SimilarityList = tuple[SimilarityMatch, ...]
Embedding = tuple[float, ...]


class PayloadCodec(Protocol[T]):
    """Converts one payload type to and from its stored text form."""

    field: str

    def encode(self, data: T) -> str: ...

    def decode(self, raw: str) -> T: ...


class CandidateIdsCodec:
    field = "result_ids"

    def encode(self, data: CandidateSet) -> str:
        return json.dumps(list(data))

    def decode(self, raw: str) -> CandidateSet:
        return tuple(str(item) for item in json.loads(raw))


class SimilarityCodec:
    field = "similarities"

    def encode(self, data: SimilarityList) -> str:
        return json.dumps([[match.entity_id, match.similarity] for match in data])

    def decode(self, raw: str) -> SimilarityList:
        return tuple(SimilarityMatch(str(entity_id), float(similarity)) for entity_id, similarity in json.loads(raw))


class EmbeddingCodec:
    field = "embedding_vector"

    def encode(self, data: Embedding) -> str:
        return json.dumps([float(value) for value in data])

    def decode(self, raw: str) -> Embedding:
        return tuple(float(value) for value in json.loads(raw))


def snapshot_to_dict(snapshot: EntitySnapshot) -> dict[str, Any]:
    """Serialize a snapshot to a JSON-safe dict with a ``kind`` discriminant."""
    base: dict[str, Any] = {
        "kind": snapshot.kind.value,
        "entity_id": snapshot.entity_id,
        "name": snapshot.name,
        "lat": snapshot.lat,
        "lon": snapshot.lon,
        "tags": list(snapshot.tags),
        "price_tier": snapshot.price_tier,
        "verified": snapshot.verified,
        "popularity": snapshot.popularity,
    }
    match snapshot:
        case PlaceSnapshot(place_type=place_type):
            base["place_type"] = place_type
        case EventSnapshot(start_at=start_at, end_at=end_at, place_id=place_id):
            base["start_at"] = start_at.isoformat()
            base["end_at"] = end_at.isoformat() if end_at else None
            base["place_id"] = place_id
    return base


def snapshot_from_dict(data: dict[str, Any]) -> EntitySnapshot:
    """Inverse of ``snapshot_to_dict``.

    Raises:
        ValueError: If the ``kind`` discriminant is unknown
    """
    common = {
        "entity_id": data["entity_id"],
        "name": data["name"],
        "lat": float(data["lat"]),
        "lon": float(data["lon"]),
        "tags": tuple(data.get("tags") or ()),
        "price_tier": data.get("price_tier"),
        "verified": bool(data.get("verified", False)),
        "popularity": int(data.get("popularity") or 0),
    }
    kind = EntityKind(data["kind"])
    if kind is EntityKind.PLACE:
        return PlaceSnapshot(**common, place_type=data.get("place_type"))
    end_at = data.get("end_at")
    return EventSnapshot(
        **common,
        start_at=datetime.fromisoformat(data["start_at"]),
        end_at=datetime.fromisoformat(end_at) if end_at else None,
        place_id=data.get("place_id"),
    )


class PipelineResultCodec:
    field = "response_data"

    def encode(self, data: PipelineResult) -> str:
        return json.dumps(
            {
                "ranked_results": [
                    {
                        "entity_id": result.entity_id,
                        "kind": result.kind.value,
                        "score": result.score,
                        "distance_km": result.distance_km,
                        "similarity": result.similarity,
                        "is_past": result.is_past,
                        "metadata": snapshot_to_dict(result.metadata),
                    }
                    for result in data.ranked_results
                ],
                "meta": {
                    "total_candidates": data.meta.total_candidates,
                    "processing_time_ms": data.meta.processing_time_ms,
                    "candidates_by_kind": data.meta.candidates_by_kind,
                    "stages": [stage.value for stage in data.meta.stages],
                },
            },
            ensure_ascii=False,
        )

    def decode(self, raw: str) -> PipelineResult:
        payload = json.loads(raw)
        meta = payload.get("meta") or {}
        return PipelineResult(
            ranked_results=tuple(
                RankedResult(
                    entity_id=item["entity_id"],
                    kind=EntityKind(item["kind"]),
                    score=float(item["score"]),
                    metadata=snapshot_from_dict(item["metadata"]),
                    distance_km=float(item["distance_km"]),
                    similarity=item.get("similarity"),
                    is_past=bool(item.get("is_past", False)),
                )
                for item in payload.get("ranked_results", [])
            ),
            meta=PipelineMeta(
                total_candidates=int(meta.get("total_candidates", 0)),
                cache_used=False,
                processing_time_ms=float(meta.get("processing_time_ms", 0.0)),
                candidates_by_kind=dict(meta.get("candidates_by_kind") or {}),
                stages=tuple(PipelineStage(stage) for stage in meta.get("stages", [])),
            ),
        )
