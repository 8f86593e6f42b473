"""Venue Retrieval - geo + vector retrieval of places and events with tiered caching.

This package provides a layered architecture for venue and event suggestions:

Layers:
    - protocols: Interface contracts (collaborators, DurableCacheStore, EmbeddingProvider)
    - repositories: Data access implementations (Redis, Supabase, embeddings)
    - cache: In-process and hybrid caches, write-behind queues
    - services: Resolvers, re-ranking and the pipeline orchestrator
    - handlers: HTTP endpoint handlers
    - dto: Data transfer objects (API contracts)
    - entities: Domain models (internal)

Usage:
    ```python
    from venue_retrieval.cache import CacheSuite
    from venue_retrieval.entities import SuggestionContext
    from venue_retrieval.services import PipelineOrchestrator

    pipeline = PipelineOrchestrator.create(geo, vectors, metadata, provider, cache=CacheSuite.create())
    result = await pipeline.run_pipeline(SuggestionContext(lat=45.4642, lon=9.19, mood="romantic"))
    ```

For HTTP API:
    ```python
    from venue_retrieval.api.app import app
    ```
"""

from venue_retrieval.cache import CacheSuite, HybridCache, TieredCache
from venue_retrieval.config import get_redis_client, settings
from venue_retrieval.entities import PipelineResult, RankedResult, SuggestionContext
from venue_retrieval.errors import (
    CacheBackendUnavailable,
    InvalidContext,
    RetrievalError,
    TransientUpstreamFailure,
    UpstreamError,
)
from venue_retrieval.metrics import MetricsCollector
from venue_retrieval.protocols import (
    DurableCacheStore,
    EmbeddingProvider,
    GeoQueryService,
    MetadataStore,
    VectorSearchService,
)
from venue_retrieval.services import PipelineOrchestrator

__all__ = [
    # Configuration
    "settings",
    "get_redis_client",
    # Protocols (interfaces)
    "DurableCacheStore",
    "EmbeddingProvider",
    "GeoQueryService",
    "MetadataStore",
    "VectorSearchService",
    # Caching
    "TieredCache",
    "HybridCache",
    "CacheSuite",
    "MetricsCollector",
    # Services (business logic)
    "PipelineOrchestrator",
    # Entities (domain models)
    "SuggestionContext",
    "RankedResult",
    "PipelineResult",
    # Errors
    "RetrievalError",
    "UpstreamError",
    "TransientUpstreamFailure",
    "CacheBackendUnavailable",
    "InvalidContext",
]
