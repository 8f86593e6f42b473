"""Query embedding behind the embedding cache."""

import logging

from venue_retrieval.cache import Embedding, HybridCache
from venue_retrieval.keys import embedding_key
from venue_retrieval.protocols import EmbeddingProvider
from venue_retrieval.services.upstream import call_upstream

logger = logging.getLogger(__name__)


class QueryEmbedder:
    """Embeds semantic query text, caching vectors per (model, normalized text)."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache: HybridCache[Embedding] | None = None,
        upstream_timeout: float = 5.0,
    ) -> None:
        self._provider = provider
        self._cache = cache
        self._timeout = upstream_timeout

    @property
    def provider(self) -> EmbeddingProvider:
        """Get the underlying embedding provider (for testing)."""
        return self._provider

    async def embed(self, text: str) -> Embedding:
        """Return the embedding of ``text``.

        Raises:
            UpstreamError: If the embedding service fails after the retry policy
        """
        key = embedding_key(text, self._provider.model_name)
        if self._cache is not None:
            cached = await self._cache.get(key)
            if cached is not None:
                return cached

        vector = await call_upstream("embedding", lambda: self._provider.encode(text), self._timeout)
        embedding: Embedding = tuple(float(value) for value in vector)
        if self._cache is not None:
            self._cache.set(key, embedding, tags=("embedding", self._provider.model_name))
        logger.debug("Embedded query (%d dims) with %s", len(embedding), self._provider.model_name)
        return embedding
