"""Vector similarity search behind the vector cache."""

import logging
from collections.abc import Iterable, Sequence

from venue_retrieval.cache import HybridCache, SimilarityList
from venue_retrieval.config import Settings, get_settings
from venue_retrieval.entities import EntityKind, SimilarityMatch
from venue_retrieval.keys import vector_key
from venue_retrieval.protocols import VectorSearchService
from venue_retrieval.services.geo_resolver import kind_tag
from venue_retrieval.services.upstream import call_upstream

logger = logging.getLogger(__name__)


def rank_matches(matches: Iterable[SimilarityMatch], threshold: float, top_k: int) -> SimilarityList:
    """Collapse duplicate entities, drop matches below ``threshold`` and order them.

    Each entity keeps its best similarity. Order is similarity descending,
    then entity ID ascending.
    """
    best: dict[str, float] = {}
    for match in matches:
        if match.similarity < threshold:
            continue
        if match.similarity > best.get(match.entity_id, float("-inf")):
            best[match.entity_id] = match.similarity
    ordered = sorted(best.items(), key=lambda item: (-item[1], item[0]))
    return tuple(SimilarityMatch(entity_id, similarity) for entity_id, similarity in ordered[:top_k])


class VectorSimilarityResolver:
    """Ranks a candidate set against a query embedding.

    The cache key fingerprints the embedding's leading components and the
    sorted candidate set, so it serves exact repeats only.
    """

    def __init__(
        self,
        vector_service: VectorSearchService,
        cache: HybridCache[SimilarityList] | None = None,
        threshold: float = 0.3,
        top_k: int = 8,
        key_components: int = 16,
        ttl: float = 300.0,
        upstream_timeout: float = 5.0,
    ) -> None:
        self._vectors = vector_service
        self._cache = cache
        self._threshold = threshold
        self._top_k = top_k
        self._components = key_components
        self._ttl = ttl
        self._timeout = upstream_timeout

    @classmethod
    def create(
        cls,
        vector_service: VectorSearchService,
        cache: HybridCache[SimilarityList] | None = None,
        settings: Settings | None = None,
    ) -> "VectorSimilarityResolver":
        """Factory method to create a resolver configured from settings."""
        settings = settings or get_settings()
        return cls(
            vector_service=vector_service,
            cache=cache,
            threshold=settings.vector_threshold,
            top_k=settings.vector_top_k,
            key_components=settings.vector_key_components,
            ttl=settings.tier("vector").ttl,
            upstream_timeout=settings.upstream_timeout,
        )

    @property
    def top_k(self) -> int:
        return self._top_k

    async def search(
        self,
        kind: EntityKind | str,
        query_embedding: Sequence[float],
        candidate_ids: Sequence[str],
        top_k: int | None = None,
    ) -> SimilarityList:
        """Return the best matches among ``candidate_ids``.

        Args:
            kind: Entity kind of the candidates
            query_embedding: Query vector
            candidate_ids: Geo candidates to search within
            top_k: Result cap. Defaults to the resolver's top_k.

        Returns:
            Matches ordered by similarity descending, ties by entity ID

        Raises:
            UpstreamError: If the collaborator fails after the retry policy
        """
        kind = EntityKind(kind)
        limit = top_k or self._top_k
        if not candidate_ids:
            return ()

        key = vector_key(kind.value, query_embedding, candidate_ids, limit, self._components)
        if self._cache is not None:
            cached = await self._cache.get(key)
            if cached is not None:
                return cached

        raw = await call_upstream(
            f"vector:{kind.value}",
            lambda: self._vectors.similarity_search(
                kind, list(query_embedding), list(candidate_ids), self._threshold, limit
            ),
            self._timeout,
        )
        # Only entities from the candidate set are kept.
        allowed = set(candidate_ids)
        matches = rank_matches((m for m in raw if m.entity_id in allowed), self._threshold, limit)

        if self._cache is not None:
            self._cache.set(key, matches, ttl=self._ttl, tags=("vector", kind_tag(kind)))
        logger.debug("Vector search %s: %d of %d candidates matched", kind.value, len(matches), len(candidate_ids))
        return matches
