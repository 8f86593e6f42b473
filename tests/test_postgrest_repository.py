"""
Tests for the Supabase collaborators, over httpx.MockTransport.
"""

import json
from datetime import datetime, timezone

import httpx
import pytest

from venue_retrieval.entities import EntityKind, EventSnapshot, SimilarityMatch
from venue_retrieval.errors import TransientUpstreamFailure, UpstreamError
from venue_retrieval.repositories import (
    PostgrestClient,
    SupabaseGeoQuery,
    SupabaseMetadataStore,
    SupabaseVectorSearch,
)
from venue_retrieval.repositories.postgrest_repository import event_from_row, place_from_row


def make_client(handler):
    transport = httpx.MockTransport(handler)
    return PostgrestClient(
        base_url="http://supabase.test",
        api_key="key",
        client=httpx.AsyncClient(transport=transport, base_url="http://supabase.test/rest/v1"),
    )


async def test_geo_rpc_request():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=[{"id": 1}, {"id": "b"}])

    geo = SupabaseGeoQuery(make_client(handler))

    ids = await geo.within_radius(EntityKind.EVENT, 45.46, 9.19, 5000.0)

    assert ids == ["1", "b"]
    assert requests[0].method == "POST"
    assert requests[0].url.path == "/rest/v1/rpc/events_within_radius"
    assert json.loads(requests[0].content) == {"center_lat": 45.46, "center_lon": 9.19, "radius_meters": 5000.0}


async def test_vector_rpc_request():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=[{"entity_id": "A", "similarity": 0.82}])

    vectors = SupabaseVectorSearch(make_client(handler))

    matches = await vectors.similarity_search(EntityKind.PLACE, (0.1, 0.2), ["A", "B"], 0.3, 8)

    assert matches == [SimilarityMatch("A", 0.82)]
    assert bodies[0] == {
        "query_embedding": [0.1, 0.2],
        "candidate_ids": ["A", "B"],
        "match_threshold": 0.3,
        "match_count": 8,
    }


async def test_server_error_is_transient():
    geo = SupabaseGeoQuery(make_client(lambda request: httpx.Response(503, text="unavailable")))
    with pytest.raises(TransientUpstreamFailure, match="503"):
        await geo.within_radius(EntityKind.PLACE, 45.46, 9.19, 5000.0)


async def test_client_error_is_rejection():
    geo = SupabaseGeoQuery(make_client(lambda request: httpx.Response(400, text="bad function")))
    with pytest.raises(UpstreamError) as excinfo:
        await geo.within_radius(EntityKind.PLACE, 45.46, 9.19, 5000.0)
    assert not isinstance(excinfo.value, TransientUpstreamFailure)
    assert excinfo.value.service == "geo:place"


async def test_transport_error_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    geo = SupabaseGeoQuery(make_client(handler))
    with pytest.raises(TransientUpstreamFailure):
        await geo.within_radius(EntityKind.PLACE, 45.46, 9.19, 5000.0)


async def test_metadata_batch_select():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json=[
                {
                    "id": "P1",
                    "name": "Bar Basso",
                    "lat": 45.47,
                    "lon": 9.21,
                    "price_range": "€€",
                    "ambience_tags": ["storico"],
                    "music_genre": ["jazz"],
                    "verification_status": "approved",
                    "suggestions_count": 12,
                },
                {"id": "P2", "name": "Broken"},
            ],
        )

    store = SupabaseMetadataStore(make_client(handler))

    snapshots = await store.fetch_by_ids(EntityKind.PLACE, ["P1", "P2"])

    assert len(requests) == 1
    assert requests[0].url.path == "/rest/v1/places"
    assert requests[0].url.params["id"] == 'in.("P1","P2")'
    # The malformed row is skipped
    assert [s.entity_id for s in snapshots] == ["P1"]
    assert snapshots[0].verified
    assert snapshots[0].tags == ("storico", "jazz")


async def test_metadata_empty_ids_skip_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    store = SupabaseMetadataStore(make_client(handler))
    assert await store.fetch_by_ids(EntityKind.EVENT, []) == []


def test_event_from_row_uses_hosting_place():
    snapshot = event_from_row(
        {
            "id": 7,
            "title": "Jazz night",
            "start_datetime": "2026-05-01T21:00:00Z",
            "category": "music",
            "tags": ["jazz"],
            "place_id": "P1",
            "place": {"lat": 45.47, "lon": 9.21, "verification_status": "approved"},
        }
    )

    assert isinstance(snapshot, EventSnapshot)
    assert snapshot.entity_id == "7"
    assert (snapshot.lat, snapshot.lon) == (45.47, 9.21)
    assert snapshot.start_at == datetime(2026, 5, 1, 21, 0, tzinfo=timezone.utc)
    assert snapshot.tags == ("music", "jazz")
    assert snapshot.verified


def test_event_without_start_is_rejected():
    with pytest.raises(ValueError):
        event_from_row({"id": "E", "place": {"lat": 1, "lon": 2}})


def test_place_from_row_defaults():
    snapshot = place_from_row({"id": "P", "lat": "45.4", "lon": "9.1"})
    assert snapshot.popularity == 0
    assert not snapshot.verified
    assert snapshot.tags == ()


async def test_close_releases_client():
    client = make_client(lambda request: httpx.Response(200, json=[]))
    await client.close()
    await client.close()


async def test_non_json_body_is_rejection():
    geo = SupabaseGeoQuery(make_client(lambda request: httpx.Response(200, text="<html>gateway</html>")))

    with pytest.raises(UpstreamError, match="unparseable") as excinfo:
        await geo.within_radius(EntityKind.EVENT, 45.46, 9.19, 5000.0)
    assert not isinstance(excinfo.value, TransientUpstreamFailure)
    assert excinfo.value.service == "geo:event"


async def test_non_list_payload_is_rejection():
    vectors = SupabaseVectorSearch(make_client(lambda request: httpx.Response(200, json={"message": "oops"})))

    with pytest.raises(UpstreamError, match="list of rows"):
        await vectors.similarity_search(EntityKind.PLACE, (0.1,), ["A"], 0.3, 8)


async def test_malformed_geo_rows_are_skipped():
    geo = SupabaseGeoQuery(
        make_client(lambda request: httpx.Response(200, json=[{"event_id": "E1"}, {"id": "E2"}, "E3"]))
    )

    assert await geo.within_radius(EntityKind.EVENT, 45.46, 9.19, 5000.0) == ["E2"]


async def test_malformed_match_rows_are_skipped():
    rows = [{"entity_id": "A"}, {"entity_id": "B", "similarity": "n/a"}, {"entity_id": "C", "similarity": 0.6}]
    vectors = SupabaseVectorSearch(make_client(lambda request: httpx.Response(200, json=rows)))

    matches = await vectors.similarity_search(EntityKind.PLACE, (0.1,), ["A", "B", "C"], 0.3, 8)

    assert matches == [SimilarityMatch("C", 0.6)]
