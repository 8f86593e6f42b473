"""Repository layer for data access.

This layer implements the protocols against concrete backends (Redis,
Supabase, embedding services). The repositories are protocol-based
(structural typing), not inheritance-based: any class implementing the
required methods satisfies the protocol.

The local sentence-transformers provider is not imported here because it
loads torch; import it from its module.
"""

from venue_retrieval.protocols import (
    DurableCacheStore,
    EmbeddingProvider,
    GeoQueryService,
    MetadataStore,
    VectorSearchService,
)

from .ollama_embedding_provider import OllamaEmbeddingProvider
from .postgrest_repository import (
    PostgrestClient,
    SupabaseGeoQuery,
    SupabaseMetadataStore,
    SupabaseVectorSearch,
    event_from_row,
    place_from_row,
)
from .redis_repository import RedisDurableCache
from .redis_vector_search import RedisVectorSearch

__all__ = [
    "DurableCacheStore",
    "EmbeddingProvider",
    "GeoQueryService",
    "MetadataStore",
    "OllamaEmbeddingProvider",
    "PostgrestClient",
    "RedisDurableCache",
    "RedisVectorSearch",
    "SupabaseGeoQuery",
    "SupabaseMetadataStore",
    "SupabaseVectorSearch",
    "VectorSearchService",
    "event_from_row",
    "place_from_row",
]
