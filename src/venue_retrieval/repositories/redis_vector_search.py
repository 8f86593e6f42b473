"""Redis Stack implementation of VectorSearchService.

Entity embeddings live in an HNSW index (COSINE distance) built with
redisvl. Each entity may be stored as several chunks; similarity search
filters by entity kind and candidate IDs and returns every matching chunk,
leaving de-duplication to the vector resolver.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import numpy as np
import redis
from redisvl.exceptions import RedisSearchError
from redisvl.index import SearchIndex
from redisvl.query import VectorQuery
from redisvl.query.filter import Tag

from venue_retrieval.config import get_redis_client, settings
from venue_retrieval.entities import EntityKind, SimilarityMatch
from venue_retrieval.errors import TransientUpstreamFailure, UpstreamError
from venue_retrieval.protocols import EmbeddingProvider

logger = logging.getLogger(__name__)

# Chunked entities return several hits each; over-fetch before de-duplication.
CHUNK_OVERFETCH = 3


class RedisVectorSearch:
    """Redis implementation using an HNSW vector index.

    This class satisfies the VectorSearchService protocol through structural
    typing - no explicit inheritance needed.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        embedding_provider: EmbeddingProvider | None = None,
        index_name: str | None = None,
        dimension: int | None = None,
    ) -> None:
        """Initialize the vector search repository.

        Args:
            redis_client: Redis client instance. If None, creates default.
            embedding_provider: Provider for the vector dimension.
            index_name: Name of the Redis search index. Defaults to
                ``{namespace}_embeddings``.
            dimension: Vector dimension, if no provider is given.
        """
        self._client = redis_client or get_redis_client()
        self._index_name = index_name or f"{settings.cache_namespace}_embeddings"
        if embedding_provider is not None:
            self._dimension = embedding_provider.dimension
        else:
            self._dimension = dimension or 768
        self._index: SearchIndex | None = None
        self._ensure_index()

    @classmethod
    def create(
        cls,
        embedding_provider: EmbeddingProvider | None = None,
        redis_client: redis.Redis | None = None,
        index_name: str | None = None,
    ) -> "RedisVectorSearch":
        """Factory method to create RedisVectorSearch with defaults."""
        return cls(redis_client=redis_client, embedding_provider=embedding_provider, index_name=index_name)

    @property
    def prefix(self) -> str:
        return f"{self._index_name}:"

    @property
    def index(self) -> SearchIndex:
        if self._index is None:
            raise RuntimeError(f"Vector index {self._index_name} is not initialized")
        return self._index

    def _ensure_index(self) -> None:
        """Ensure the Redis vector index exists."""
        if self._index is not None:
            return

        index_schema = {
            "index": {
                "name": self._index_name,
                "prefix": self.prefix,
                "storage_type": "hash",
            },
            "fields": [
                {"name": "entity_id", "type": "tag"},
                {"name": "kind", "type": "tag"},
                {"name": "chunk", "type": "numeric"},
                {
                    "name": "embedding",
                    "type": "vector",
                    "attrs": {
                        "dims": self._dimension,
                        "algorithm": "HNSW",
                        "distance_metric": "COSINE",
                        "datatype": "FLOAT32",
                    },
                },
            ],
        }

        self._index = SearchIndex.from_dict(index_schema)
        self._index.set_client(self._client)
        if self._index.exists():
            logger.info("Using existing vector index: %s", self._index_name)
        else:
            self._index.create(overwrite=False)
            logger.info("Created vector index: %s (%d dims)", self._index_name, self._dimension)

    def _search_sync(
        self,
        kind: EntityKind,
        query_embedding: Sequence[float],
        candidate_ids: Sequence[str],
        top_k: int,
    ) -> list[dict[str, Any]]:
        query = VectorQuery(
            vector=list(query_embedding),
            vector_field_name="embedding",
            return_fields=["entity_id", "kind", "chunk"],
            filter_expression=(Tag("kind") == kind.value) & (Tag("entity_id") == list(candidate_ids)),
            num_results=top_k * CHUNK_OVERFETCH,
        )
        return self.index.query(query)

    async def similarity_search(
        self,
        kind: EntityKind,
        query_embedding: Sequence[float],
        candidate_ids: Sequence[str],
        threshold: float,
        top_k: int,
    ) -> list[SimilarityMatch]:
        """Return matches among ``candidate_ids`` with similarity at or above ``threshold``.

        Raises:
            TransientUpstreamFailure: If Redis is unreachable or times out
            UpstreamError: If the search itself fails
        """
        if not candidate_ids:
            return []
        try:
            rows = await asyncio.to_thread(self._search_sync, kind, query_embedding, candidate_ids, top_k)
        except (redis.ConnectionError, redis.TimeoutError) as e:
            raise TransientUpstreamFailure(f"vector:{kind.value}", str(e)) from e
        except (redis.RedisError, RedisSearchError) as e:
            raise UpstreamError(f"vector:{kind.value}", str(e)) from e

        matches = []
        for row in rows:
            # COSINE distance is 1 - similarity
            similarity = 1.0 - float(row.get("vector_distance", 2.0))
            if similarity >= threshold:
                matches.append(SimilarityMatch(str(row["entity_id"]), similarity))
        return matches

    def upsert_embeddings(self, kind: EntityKind, entity_id: str, chunks: Sequence[Sequence[float]]) -> list[str]:
        """Store the chunk embeddings of one entity, replacing earlier chunks.

        Args:
            kind: Entity kind
            entity_id: Entity identifier
            chunks: One vector per text chunk

        Returns:
            The Redis keys written
        """
        index = self.index
        stale = list(self._client.scan_iter(match=f"{self.prefix}{kind.value}:{entity_id}:*"))
        if stale:
            self._client.delete(*stale)

        records = []
        keys = []
        for position, vector in enumerate(chunks):
            if len(vector) != self._dimension:
                raise ValueError(f"Expected {self._dimension} dims, got {len(vector)}")
            keys.append(f"{self.prefix}{kind.value}:{entity_id}:{position}")
            records.append(
                {
                    "entity_id": entity_id,
                    "kind": kind.value,
                    "chunk": position,
                    "embedding": np.asarray(vector, dtype=np.float32).tobytes(),
                }
            )
        if records:
            index.load(records, keys=keys)
        return keys

    def health_check(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False
