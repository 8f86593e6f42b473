"""Cache entry owned by the in-process tier."""

from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Bookkeeping for one value held by the tiered cache.

    Unlike the other entities this one is mutable: the owning tier bumps
    ``last_accessed_at`` and ``hit_count`` on every successful read.

    Attributes:
        data: The cached value
        created_at: Clock reading when the entry was stored
        last_accessed_at: Clock reading of the latest successful read
        hit_count: Number of successful reads
        ttl: Lifetime in seconds, measured from ``created_at``
        size_bytes: Approximate memory footprint
        tags: Labels the entry is indexed under for bulk invalidation
    """

    data: T
    created_at: float
    last_accessed_at: float
    ttl: float
    size_bytes: int
    hit_count: int = 0
    tags: frozenset[str] = field(default_factory=frozenset)

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl

    def remaining_ttl(self, now: float) -> float:
        return max(0.0, self.created_at + self.ttl - now)


@dataclass(frozen=True)
class DurableRecord(Generic[T]):
    """A live value read from the durable store.

    Attributes:
        data: The decoded payload
        expires_at: Expiry as epoch seconds on the store's clock
        server_now: The store's own clock at read time
        tags: Labels the value was stored with
    """

    data: T
    expires_at: float
    server_now: float
    tags: frozenset[str] = field(default_factory=frozenset)

    @property
    def remaining_ttl(self) -> float:
        return max(0.0, self.expires_at - self.server_now)
