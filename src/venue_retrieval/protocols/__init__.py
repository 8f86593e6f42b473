"""Protocol interfaces for swappable implementations.

This package contains protocol definitions using structural typing.
Protocols enable:
- Easy swapping of implementations (Redis → PostgreSQL, Supabase → any geo store)
- Unit testing with fake implementations
- Clear separation of concerns

Usage:
    ```python
    from venue_retrieval.protocols import DurableCacheStore, GeoQueryService

    geo: GeoQueryService = SupabaseGeoQuery(client)   # works
    geo: GeoQueryService = FakeGeoQuery(...)          # also works
    ```
"""

from .cache_store import DurableCacheStore
from .collaborators import GeoQueryService, MetadataStore, VectorSearchService
from .embedding_provider import EmbeddingProvider

__all__ = [
    "DurableCacheStore",
    "EmbeddingProvider",
    "GeoQueryService",
    "MetadataStore",
    "VectorSearchService",
]
