"""Protocols for the external data collaborators.

The geospatial store, the vector similarity service and the metadata store
are consumed only through these interfaces. Implementations raise
``TransientUpstreamFailure`` for timeouts and server errors and
``UpstreamError`` for anything else.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from venue_retrieval.entities import EntityKind, EntitySnapshot, SimilarityMatch


@runtime_checkable
class GeoQueryService(Protocol):
    """Resolves the entities of one kind within a radius."""

    async def within_radius(
        self,
        kind: EntityKind,
        lat: float,
        lon: float,
        radius_meters: float,
    ) -> list[str]:
        """Return entity IDs within ``radius_meters`` of the point.

        At most 100 results, in no particular order.
        """
        ...


@runtime_checkable
class VectorSearchService(Protocol):
    """Ranks candidate entities by embedding similarity."""

    async def similarity_search(
        self,
        kind: EntityKind,
        query_embedding: Sequence[float],
        candidate_ids: Sequence[str],
        threshold: float,
        top_k: int,
    ) -> list[SimilarityMatch]:
        """Return matches among ``candidate_ids`` with similarity above ``threshold``.

        The same entity may appear more than once when it is embedded in chunks.
        """
        ...


@runtime_checkable
class MetadataStore(Protocol):
    """Batched snapshot reads for re-ranking."""

    async def fetch_by_ids(self, kind: EntityKind, ids: Sequence[str]) -> list[EntitySnapshot]:
        """Return snapshots for the IDs that exist, in one call."""
        ...
