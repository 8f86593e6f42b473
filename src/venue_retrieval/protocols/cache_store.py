"""Durable cache store protocol.

Defines the interface for the shared, slower cache tier that sits behind
the in-process cache. Values are addressed by the same keys as the fast
tier; the store compares TTLs against its own clock.

Implementations can include:
- Redis hashes with native expiry (default)
- A PostgreSQL table keyed by ``cache_key``
- Any key-value store with upsert and pattern delete
"""

from collections.abc import Iterable
from typing import Any, Protocol, TypeVar, runtime_checkable

from venue_retrieval.entities import DurableRecord

T = TypeVar("T")


@runtime_checkable
class DurableCacheStore(Protocol[T]):
    """Protocol for durable cache backends.

    Any type that implements these methods satisfies the protocol, no
    explicit inheritance needed. Implementations raise
    ``CacheBackendUnavailable`` when the store cannot be reached.

    Example:
        ```python
        store: DurableCacheStore[tuple[str, ...]] = RedisDurableCache.create("geo", CandidateIdsCodec())
        ```
    """

    def get(self, key: str) -> DurableRecord[T] | None:
        """Return the live record for ``key``.

        Only records with ``expires_at > now`` (store clock) are returned.
        Hit bookkeeping is recorded in the background and never fails the read.
        """
        ...

    def set(
        self,
        key: str,
        data: T,
        ttl: float,
        tags: Iterable[str] = (),
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Upsert a value. Last writer wins."""
        ...

    def invalidate(self, pattern: str | None = None, tags: Iterable[str] | None = None) -> int:
        """Delete entries whose key contains ``pattern`` and/or that carry any of ``tags``.

        Returns:
            Number of entries deleted
        """
        ...

    def cleanup_expired(self) -> int:
        """Delete entries whose ``expires_at`` has passed.

        Returns:
            Number of entries deleted
        """
        ...

    def stats(self) -> dict[str, Any]:
        ...

    def health_check(self) -> bool:
        ...

    def close(self) -> None:
        """Release background resources. The stored entries are kept."""
        ...
