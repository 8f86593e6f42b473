"""Geo candidate resolution behind the geo cache."""

import logging
from collections.abc import Sequence

from venue_retrieval.cache import CandidateSet, HybridCache
from venue_retrieval.config import Settings, get_settings
from venue_retrieval.entities import EntityKind
from venue_retrieval.keys import DEFAULT_RADIUS_BUCKETS, geo_key, rounded_center
from venue_retrieval.protocols import GeoQueryService
from venue_retrieval.services.upstream import call_upstream

logger = logging.getLogger(__name__)


def kind_tag(kind: EntityKind) -> str:
    """Tag every cache entry of one entity kind carries ("places", "events")."""
    return f"{kind.value}s"


class GeoCandidateResolver:
    """Turns (kind, lat, lon, radius) into a bounded candidate set.

    The query centre and radius are bucketed before both the cache lookup and
    the collaborator call, so every query in a bucket shares one entry and
    one candidate set. Candidates near a bucket edge may be missed or
    included loosely; re-ranking applies a distance penalty anyway.
    """

    def __init__(
        self,
        geo_service: GeoQueryService,
        cache: HybridCache[CandidateSet] | None = None,
        radius_buckets: Sequence[float] = DEFAULT_RADIUS_BUCKETS,
        precision_table: dict[float, int] | None = None,
        ttl: float = 600.0,
        negative_ttl: float = 60.0,
        candidate_cap: int = 100,
        upstream_timeout: float = 5.0,
    ) -> None:
        """Initialize the resolver.

        Args:
            geo_service: Collaborator answering radius queries (required).
            cache: Geo cache. If None, every call goes to the collaborator.
            radius_buckets: Ascending radius buckets in km.
            precision_table: Rounding decimals per bucket. If None, uses the default table.
            ttl: Lifetime of a non-empty candidate set in seconds.
            negative_ttl: Lifetime of an empty candidate set in seconds.
            candidate_cap: Maximum number of candidates returned.
            upstream_timeout: Seconds allowed per collaborator attempt.
        """
        self._geo = geo_service
        self._cache = cache
        self._buckets = tuple(radius_buckets)
        self._precision = precision_table
        self._ttl = ttl
        self._negative_ttl = negative_ttl
        self._cap = candidate_cap
        self._timeout = upstream_timeout

    @classmethod
    def create(
        cls,
        geo_service: GeoQueryService,
        cache: HybridCache[CandidateSet] | None = None,
        settings: Settings | None = None,
    ) -> "GeoCandidateResolver":
        """Factory method to create a resolver configured from settings."""
        settings = settings or get_settings()
        tier = settings.tier("geo")
        return cls(
            geo_service=geo_service,
            cache=cache,
            radius_buckets=settings.geo_radius_buckets,
            ttl=tier.ttl,
            negative_ttl=tier.negative_ttl or tier.ttl,
            candidate_cap=settings.candidate_cap,
            upstream_timeout=settings.upstream_timeout,
        )

    def cache_key(self, kind: EntityKind, lat: float, lon: float, radius_km: float) -> str:
        return geo_key(kind.value, lat, lon, radius_km, self._buckets, self._precision)

    async def resolve(self, kind: EntityKind | str, lat: float, lon: float, radius_km: float) -> CandidateSet:
        """Return up to ``candidate_cap`` unique entity IDs near the point.

        Raises:
            UpstreamError: If the collaborator fails after the retry policy
        """
        kind = EntityKind(kind)
        key = self.cache_key(kind, lat, lon, radius_km)
        if self._cache is not None:
            cached = await self._cache.get(key)
            if cached is not None:
                logger.debug("Geo cache hit for %s (%d candidates)", key, len(cached))
                return cached

        center_lat, center_lon, bucket_km = rounded_center(lat, lon, radius_km, self._buckets, self._precision)
        ids = await call_upstream(
            f"geo:{kind.value}",
            lambda: self._geo.within_radius(kind, center_lat, center_lon, bucket_km * 1000),
            self._timeout,
        )
        candidates: CandidateSet = tuple(dict.fromkeys(str(entity_id) for entity_id in ids))[: self._cap]

        if self._cache is not None:
            ttl = self._ttl if candidates else self._negative_ttl
            self._cache.set(key, candidates, ttl=ttl, tags=("geo", kind_tag(kind)))
        logger.debug("Geo lookup %s returned %d candidates", key, len(candidates))
        return candidates
