"""
Tests for the cache suite composition.
"""

import re

import pytest

from venue_retrieval.cache import CacheSuite, CandidateIdsCodec, PipelineResultCodec

from fakes import FakeDurableStore


@pytest.fixture
def durable_suite(settings, clock):
    stores = {}

    def factory(cache_type, codec):
        stores[cache_type] = (FakeDurableStore(clock), codec)
        return stores[cache_type][0]

    suite = CacheSuite.create(settings=settings, durable_factory=factory, clock=clock)
    yield suite, stores
    suite.dispose()


def test_factory_called_per_type_with_codec(durable_suite):
    suite, stores = durable_suite

    assert set(stores) == {"geo", "vector", "embedding", "pipeline"}
    assert isinstance(stores["geo"][1], CandidateIdsCodec)
    assert isinstance(stores["pipeline"][1], PipelineResultCodec)
    assert suite.geo.durable is stores["geo"][0]


def test_tiers_sized_from_settings(suite, settings):
    assert suite.geo.memory.default_ttl == settings.geo_cache_ttl
    assert suite.embedding.memory.default_ttl == settings.embedding_cache_ttl


async def test_invalidate_across_types(durable_suite):
    suite, stores = durable_suite
    suite.geo.set("place:45.46:9.19:5", ("a",), tags=["geo", "places"])
    suite.vector.set("place:abc:def:8", (), tags=["vector", "places"])
    suite.flush()

    removed = await suite.invalidate(tags=["places"])

    assert removed["geo"] == {"memory": 1, "durable": 1}
    assert removed["vector"] == {"memory": 1, "durable": 1}
    assert removed["pipeline"] == {"memory": 0, "durable": 0}
    assert stores["geo"][0].entries == {}


async def test_invalidate_rejects_unknown_type(suite):
    with pytest.raises(ValueError, match="Unknown cache types"):
        await suite.invalidate(tags=["places"], cache_types=["sessions"])


async def test_invalidate_rejects_bad_pattern(suite):
    with pytest.raises(re.error):
        await suite.invalidate(pattern="place:(")


async def test_dispose_closes_durable_stores(settings, clock):
    stores = []

    def factory(cache_type, codec):
        stores.append(FakeDurableStore(clock))
        return stores[-1]

    suite = CacheSuite.create(settings=settings, durable_factory=factory, clock=clock)
    suite.dispose()

    assert all(store.closed for store in stores)
