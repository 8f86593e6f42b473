"""Supabase (PostgREST) implementations of the data collaborators.

The geospatial lookups and pgvector matching run as Postgres functions
exposed over PostgREST RPC:

- ``places_within_radius`` / ``events_within_radius(center_lat, center_lon, radius_meters)``
- ``match_place_embeddings`` / ``match_event_embeddings(query_embedding, candidate_ids,
  match_threshold, match_count)``

Metadata snapshots are read from the ``places`` and ``events`` tables in one
``id=in.(...)`` request per kind.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import httpx

from venue_retrieval.config import settings
from venue_retrieval.entities import EntityKind, EntitySnapshot, EventSnapshot, PlaceSnapshot, SimilarityMatch
from venue_retrieval.errors import TransientUpstreamFailure, UpstreamError

logger = logging.getLogger(__name__)

GEO_FUNCTIONS = {
    EntityKind.PLACE: "places_within_radius",
    EntityKind.EVENT: "events_within_radius",
}
MATCH_FUNCTIONS = {
    EntityKind.PLACE: "match_place_embeddings",
    EntityKind.EVENT: "match_event_embeddings",
}
TABLES = {
    EntityKind.PLACE: "places",
    EntityKind.EVENT: "events",
}
COLUMNS = {
    EntityKind.PLACE: (
        "id,name,lat,lon,place_type,price_range,ambience_tags,music_genre,verification_status,suggestions_count"
    ),
    EntityKind.EVENT: (
        "id,title,start_datetime,end_datetime,category,tags,price_range,interest_count,place_id,"
        "place:places(lat,lon,verification_status)"
    ),
}
VERIFIED_STATUS = "approved"


class PostgrestClient:
    """Thin async client for the Supabase REST endpoint.

    Every failure is mapped onto the retrieval error taxonomy: timeouts,
    transport errors and 5xx responses raise ``TransientUpstreamFailure``,
    other HTTP errors raise ``UpstreamError``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Supabase project URL. Defaults to settings.supabase_url.
            api_key: Service or anon key. Defaults to settings.supabase_key.
            timeout: Request timeout in seconds.
            client: Preconfigured HTTP client (for testing).
        """
        self._base_url = (base_url or settings.supabase_url).rstrip("/") + "/rest/v1"
        key = api_key if api_key is not None else settings.supabase_key
        self._headers = {"Content-Type": "application/json"}
        if key:
            self._headers["apikey"] = key
            self._headers["Authorization"] = f"Bearer {key}"
        self._timeout = timeout
        self._client = client

    @classmethod
    def create(cls, base_url: str | None = None, api_key: str | None = None) -> "PostgrestClient":
        """Factory method to create PostgrestClient with defaults."""
        return cls(base_url=base_url, api_key=api_key)

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-load the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=self._timeout,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            )
        return self._client

    async def _request(self, service: str, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TransientUpstreamFailure(service, f"timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status >= 500:
                raise TransientUpstreamFailure(service, f"server error {status}") from e
            raise UpstreamError(service, f"request rejected with {status}: {e.response.text[:200]}") from e
        except httpx.TransportError as e:
            raise TransientUpstreamFailure(service, f"transport error: {e}") from e
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(service, f"unparseable response body: {response.text[:200]}") from e

    @staticmethod
    def _as_rows(service: str, payload: Any) -> list[Any]:
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise UpstreamError(service, f"expected a list of rows, got {type(payload).__name__}")
        return payload

    async def rpc(self, service: str, function: str, params: dict[str, Any]) -> Any:
        return await self._request(service, "POST", f"/rpc/{function}", json=params)

    async def rows(self, service: str, function: str, params: dict[str, Any]) -> list[Any]:
        """Call an RPC that returns a set of rows."""
        return self._as_rows(service, await self.rpc(service, function, params))

    async def select(self, service: str, table: str, columns: str, ids: Sequence[str]) -> list[Any]:
        in_filter = "in.(" + ",".join(f'"{entity_id}"' for entity_id in ids) + ")"
        payload = await self._request(service, "GET", f"/{table}", params={"select": columns, "id": in_filter})
        return self._as_rows(service, payload)

    async def close(self) -> None:
        """Close the async HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class SupabaseGeoQuery:
    """GeoQueryService over the ``*_within_radius`` RPCs."""

    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    async def within_radius(
        self,
        kind: EntityKind,
        lat: float,
        lon: float,
        radius_meters: float,
    ) -> list[str]:
        rows = await self._client.rows(
            f"geo:{kind.value}",
            GEO_FUNCTIONS[kind],
            {"center_lat": lat, "center_lon": lon, "radius_meters": radius_meters},
        )
        ids = []
        for row in rows:
            try:
                ids.append(str(row["id"]))
            except (KeyError, TypeError) as e:
                logger.warning("Skipping malformed %s geo row %r: %s", kind.value, row, e)
        return ids


class SupabaseVectorSearch:
    """VectorSearchService over the pgvector ``match_*_embeddings`` RPCs."""

    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    async def similarity_search(
        self,
        kind: EntityKind,
        query_embedding: Sequence[float],
        candidate_ids: Sequence[str],
        threshold: float,
        top_k: int,
    ) -> list[SimilarityMatch]:
        rows = await self._client.rows(
            f"vector:{kind.value}",
            MATCH_FUNCTIONS[kind],
            {
                "query_embedding": list(query_embedding),
                "candidate_ids": list(candidate_ids),
                "match_threshold": threshold,
                "match_count": top_k,
            },
        )
        matches = []
        for row in rows:
            try:
                matches.append(SimilarityMatch(str(row["entity_id"]), float(row["similarity"])))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed %s match row %r: %s", kind.value, row, e)
        return matches


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    # PostgREST may emit a trailing "Z", which older fromisoformat rejects.
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def place_from_row(row: dict[str, Any]) -> PlaceSnapshot:
    return PlaceSnapshot(
        entity_id=str(row["id"]),
        name=row.get("name") or "",
        lat=float(row["lat"]),
        lon=float(row["lon"]),
        tags=tuple((row.get("ambience_tags") or []) + (row.get("music_genre") or [])),
        price_tier=row.get("price_range"),
        verified=row.get("verification_status") == VERIFIED_STATUS,
        popularity=int(row.get("suggestions_count") or 0),
        place_type=row.get("place_type"),
    )


def event_from_row(row: dict[str, Any]) -> EventSnapshot:
    place = row.get("place") or {}
    start_at = _parse_datetime(row.get("start_datetime"))
    if start_at is None:
        raise ValueError(f"event {row.get('id')} has no start_datetime")
    tags = list(row.get("tags") or [])
    if row.get("category"):
        tags.insert(0, row["category"])
    return EventSnapshot(
        entity_id=str(row["id"]),
        name=row.get("title") or "",
        lat=float(row.get("lat", place.get("lat"))),
        lon=float(row.get("lon", place.get("lon"))),
        start_at=start_at,
        end_at=_parse_datetime(row.get("end_datetime")),
        tags=tuple(tags),
        price_tier=row.get("price_range"),
        verified=place.get("verification_status") == VERIFIED_STATUS,
        popularity=int(row.get("interest_count") or 0),
        place_id=row.get("place_id"),
    )


class SupabaseMetadataStore:
    """MetadataStore reading ``places`` and ``events`` rows in one batch per kind."""

    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    async def fetch_by_ids(self, kind: EntityKind, ids: Sequence[str]) -> list[EntitySnapshot]:
        if not ids:
            return []
        rows = await self._client.select(f"metadata:{kind.value}", TABLES[kind], COLUMNS[kind], ids)
        convert = place_from_row if kind is EntityKind.PLACE else event_from_row
        snapshots: list[EntitySnapshot] = []
        for row in rows:
            try:
                snapshots.append(convert(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed %s row %r: %s", kind.value, row, e)
        return snapshots
