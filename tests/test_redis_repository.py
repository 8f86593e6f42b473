"""
Tests for the Redis durable cache, with a mocked Redis client.
"""

import json
from unittest.mock import MagicMock

import pytest
import redis

from venue_retrieval.cache import CandidateIdsCodec
from venue_retrieval.errors import CacheBackendUnavailable
from venue_retrieval.repositories import RedisDurableCache
from venue_retrieval.repositories.redis_repository import escape_glob


@pytest.fixture
def client():
    mock = MagicMock(spec=redis.Redis)
    mock.time.return_value = (1000, 0)
    return mock


@pytest.fixture
def executor():
    return MagicMock()


@pytest.fixture
def store(client, executor):
    return RedisDurableCache("geo", CandidateIdsCodec(), redis_client=client, namespace="test", hit_executor=executor)


def test_key_layout(store):
    assert store.entry_key("place:45.46:9.19:5") == "test:geo:e:place:45.46:9.19:5"
    assert store.tag_key("places") == "test:geo:t:places"


def test_get_live_entry(store, client, executor):
    """A live entry is decoded and hit bookkeeping is submitted in the background."""
    pipe = client.pipeline.return_value
    pipe.execute.return_value = [
        (1000, 500000),
        {
            b"expires_at": b"1600",
            b"result_ids": b'["a", "b"]',
            b"tags": b'["geo", "places"]',
        },
    ]

    record = store.get("place:45.46:9.19:5")

    assert record is not None
    assert record.data == ("a", "b")
    assert record.remaining_ttl == pytest.approx(599.5)
    assert record.tags == frozenset({"geo", "places"})
    executor.submit.assert_called_once()


def test_get_expired_entry(store, client, executor):
    pipe = client.pipeline.return_value
    pipe.execute.return_value = [(1000, 0), {b"expires_at": b"999", b"result_ids": b'["a"]'}]

    assert store.get("k") is None
    executor.submit.assert_not_called()


def test_get_missing_entry(store, client):
    client.pipeline.return_value.execute.return_value = [(1000, 0), {}]
    assert store.get("k") is None


def test_get_undecodable_entry(store, client):
    client.pipeline.return_value.execute.return_value = [(1000, 0), {b"expires_at": b"1600", b"result_ids": b"{oops"}]
    assert store.get("k") is None


def test_get_connection_error(store, client):
    client.pipeline.side_effect = redis.ConnectionError("down")
    with pytest.raises(CacheBackendUnavailable):
        store.get("k")


def test_hit_bookkeeping_failure_is_swallowed(store, client):
    client.exists.side_effect = redis.ConnectionError("down")
    store._record_hit("test:geo:e:k", 1000.0)


def test_set_writes_hash_expiry_and_tags(store, client):
    pipe = client.pipeline.return_value

    store.set("k", ("a", "b"), ttl=600.5, tags=["places", "geo"], metadata={"source": "geo"})

    client.pipeline.assert_called_with(transaction=True)
    pipe.delete.assert_called_once_with("test:geo:e:k")
    mapping = pipe.hset.call_args.kwargs["mapping"]
    assert mapping["cache_key"] == "k"
    assert float(mapping["expires_at"]) == pytest.approx(1600.5)
    assert json.loads(mapping["result_ids"]) == ["a", "b"]
    assert json.loads(mapping["tags"]) == ["geo", "places"]
    assert json.loads(mapping["metadata"]) == {"source": "geo"}
    pipe.expire.assert_called_once_with("test:geo:e:k", 601)
    pipe.sadd.assert_any_call("test:geo:t:geo", "k")
    pipe.sadd.assert_any_call("test:geo:t:places", "k")
    pipe.execute.assert_called_once()


def test_set_connection_error(store, client):
    client.time.side_effect = redis.TimeoutError("slow")
    with pytest.raises(CacheBackendUnavailable):
        store.set("k", ("a",), ttl=60)


def test_invalidate_by_tag(store, client):
    client.smembers.return_value = {b"k1", b"k2"}
    client.pipeline.return_value.execute.return_value = [1, 1, 1]

    assert store.invalidate(tags=["places"]) == 2

    pipe = client.pipeline.return_value
    deleted = [call.args[0] for call in pipe.delete.call_args_list]
    assert deleted == ["test:geo:e:k1", "test:geo:e:k2", "test:geo:t:places"]


def test_invalidate_by_pattern_escapes_glob(store, client):
    client.scan_iter.return_value = iter([b"test:geo:e:place:45.46:9.19:5"])
    client.pipeline.return_value.execute.return_value = [1]

    assert store.invalidate(pattern="place:45.46") == 1

    assert client.scan_iter.call_args.kwargs["match"] == "test:geo:e:*place:45.46*"


def test_invalidate_nothing(store, client):
    assert store.invalidate() == 0
    client.pipeline.assert_not_called()


def test_cleanup_expired(store, client):
    client.scan_iter.side_effect = [
        iter([b"test:geo:e:old", b"test:geo:e:new"]),
        iter([b"test:geo:t:places"]),
    ]
    pipe = client.pipeline.return_value
    pipe.execute.side_effect = [[b"900", b"2000"], [False, True]]
    client.delete.return_value = 1
    client.smembers.return_value = {b"old", b"new"}

    assert store.cleanup_expired() == 1

    client.delete.assert_called_once_with("test:geo:e:old")
    client.srem.assert_called_once()


def test_stats(store, client):
    client.scan_iter.return_value = iter([b"test:geo:e:a", b"test:geo:e:b"])
    client.pipeline.return_value.execute.return_value = [[b"1600", b"3"], [b"900", b"1"]]

    stats = store.stats()

    assert stats["total_entries"] == 2
    assert stats["expired_entries"] == 1
    assert stats["total_hits"] == 4


def test_health_check(store, client):
    client.ping.return_value = True
    assert store.health_check() is True
    client.ping.side_effect = redis.ConnectionError("down")
    assert store.health_check() is False


def test_escape_glob():
    assert escape_glob("a*b?[c]") == "a\\*b\\?\\[c\\]"
