"""
Tests for the Redis vector search repository, with a mocked index.
"""

from unittest.mock import MagicMock

import numpy as np
import pytest
import redis

from venue_retrieval.entities import EntityKind
from venue_retrieval.errors import TransientUpstreamFailure, UpstreamError
from venue_retrieval.repositories import RedisVectorSearch


@pytest.fixture
def client():
    return MagicMock(spec=redis.Redis)


@pytest.fixture
def search(monkeypatch, client):
    monkeypatch.setattr(RedisVectorSearch, "_ensure_index", lambda self: None)
    repo = RedisVectorSearch(redis_client=client, index_name="test_embeddings", dimension=3)
    repo._index = MagicMock()
    return repo


async def test_converts_distance_to_similarity(search):
    search._index.query.return_value = [
        {"entity_id": "A", "kind": "place", "chunk": "0", "vector_distance": "0.1"},
        {"entity_id": "A", "kind": "place", "chunk": "1", "vector_distance": "0.3"},
        {"entity_id": "B", "kind": "place", "chunk": "0", "vector_distance": "0.9"},
    ]

    matches = await search.similarity_search(EntityKind.PLACE, [0.1, 0.2, 0.3], ["A", "B"], 0.3, 8)

    assert [m.entity_id for m in matches] == ["A", "A"]
    assert [m.similarity for m in matches] == pytest.approx([0.9, 0.7])
    search._index.query.assert_called_once()


async def test_empty_candidates(search):
    assert await search.similarity_search(EntityKind.EVENT, [0.1, 0.2, 0.3], [], 0.3, 8) == []
    search._index.query.assert_not_called()


async def test_connection_error_is_transient(search):
    search._index.query.side_effect = redis.ConnectionError("down")
    with pytest.raises(TransientUpstreamFailure):
        await search.similarity_search(EntityKind.PLACE, [0.1, 0.2, 0.3], ["A"], 0.3, 8)


async def test_search_error_is_rejection(search):
    search._index.query.side_effect = redis.ResponseError("Unknown index name")
    with pytest.raises(UpstreamError) as excinfo:
        await search.similarity_search(EntityKind.PLACE, [0.1, 0.2, 0.3], ["A"], 0.3, 8)
    assert not isinstance(excinfo.value, TransientUpstreamFailure)


def test_upsert_replaces_chunks(search, client):
    client.scan_iter.return_value = iter([b"test_embeddings:place:A:0"])

    keys = search.upsert_embeddings(EntityKind.PLACE, "A", [[0.1, 0.2, 0.3], [0.3, 0.2, 0.1]])

    assert keys == ["test_embeddings:place:A:0", "test_embeddings:place:A:1"]
    client.delete.assert_called_once_with(b"test_embeddings:place:A:0")
    records = search._index.load.call_args.args[0]
    assert records[1]["chunk"] == 1
    assert records[1]["embedding"] == np.asarray([0.3, 0.2, 0.1], dtype=np.float32).tobytes()


def test_upsert_rejects_wrong_dimension(search, client):
    client.scan_iter.return_value = iter([])
    with pytest.raises(ValueError, match="Expected 3 dims"):
        search.upsert_embeddings(EntityKind.PLACE, "A", [[0.1, 0.2]])


async def test_threshold_is_inclusive(search):
    search._index.query.return_value = [
        {"entity_id": "A", "kind": "place", "chunk": "0", "vector_distance": "0.75"},
        {"entity_id": "B", "kind": "place", "chunk": "0", "vector_distance": "0.8"},
    ]

    matches = await search.similarity_search(EntityKind.PLACE, [0.1, 0.2, 0.3], ["A", "B"], 0.25, 8)

    assert [m.entity_id for m in matches] == ["A"]


def test_uninitialized_index_raises(search, client):
    search._index = None

    with pytest.raises(RuntimeError, match="not initialized"):
        search.upsert_embeddings(EntityKind.PLACE, "A", [[0.1, 0.2, 0.3]])
    client.scan_iter.assert_not_called()
