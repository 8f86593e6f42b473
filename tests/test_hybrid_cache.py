"""
Tests for the hybrid (memory + durable) cache facade.
"""

import time

import pytest

from venue_retrieval.cache import HybridCache, TieredCache
from venue_retrieval.metrics import MetricKind, MetricsCollector

from fakes import FakeClock, FakeDurableStore


@pytest.fixture
def durable():
    return FakeDurableStore(FakeClock(start=5000.0))


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def hybrid(clock, durable, metrics):
    cache = HybridCache(
        memory=TieredCache("geo", max_entries=10, default_ttl=600, metrics=metrics, clock=clock),
        durable=durable,
        metrics=metrics,
        durable_timeout=0.5,
    )
    yield cache
    cache.close()


async def test_durable_hit_populates_memory(hybrid, durable, clock):
    """A durable hit is served from memory on the next read, with no second round-trip."""
    durable.set("place:45.46:9.19:5", ("a", "b"), ttl=120, tags=["places"])
    durable.set_calls = 0

    assert await hybrid.get("place:45.46:9.19:5") == ("a", "b")
    assert await hybrid.get("place:45.46:9.19:5") == ("a", "b")

    assert durable.get_calls == 1
    entry = hybrid.memory.get_entry("place:45.46:9.19:5")
    assert entry is not None
    assert entry.ttl == pytest.approx(120)
    assert "places" in entry.tags


async def test_repopulated_entry_keeps_remaining_ttl(hybrid, durable, clock):
    durable.set("k", ("a",), ttl=120)
    durable.clock.advance(100)

    assert await hybrid.get("k") == ("a",)

    clock.advance(20)
    assert hybrid.memory.get("k") is None


async def test_miss_in_both_tiers(hybrid, durable, metrics):
    assert await hybrid.get("missing") is None
    assert durable.get_calls == 1
    misses = [e for e in metrics.events() if e.kind is MetricKind.MISS]
    assert [(e.cache_type, e.reason) for e in misses] == [("geo-memory", "not_found"), ("geo-durable", "not_found")]


async def test_durable_failure_is_a_miss(hybrid, durable, metrics):
    """An unreachable durable store never propagates; the read is a miss."""
    durable.unavailable = True

    assert await hybrid.get("k") is None

    reasons = [e.reason for e in metrics.events() if e.cache_type == "geo-durable"]
    assert reasons == ["durable_unavailable"]


async def test_slow_durable_read_times_out(clock, metrics):
    class SlowStore(FakeDurableStore):
        def get(self, key):
            time.sleep(0.3)
            return super().get(key)

    cache = HybridCache(
        memory=TieredCache("vector", max_entries=10, default_ttl=60, clock=clock),
        durable=SlowStore(),
        metrics=metrics,
        durable_timeout=0.05,
    )
    try:
        assert await cache.get("k") is None
    finally:
        cache.close()


async def test_set_writes_memory_now_and_durable_behind(hybrid, durable):
    hybrid.set("k", ("a",), ttl=30, tags=["geo", "places"])

    # Memory is visible immediately.
    assert await hybrid.get("k") == ("a",)

    hybrid.flush()
    data, expires_at, tags = durable.entries["k"]
    assert data == ("a",)
    assert expires_at == pytest.approx(durable.clock() + 30)
    assert tags == frozenset({"geo", "places"})


async def test_set_uses_memory_default_ttl_for_durable(hybrid, durable):
    hybrid.set("k", ("a",))
    hybrid.flush()
    assert durable.entries["k"][1] == pytest.approx(durable.clock() + 600)


async def test_durable_write_failure_is_not_surfaced(hybrid, durable):
    durable.unavailable = True
    hybrid.set("k", ("a",))
    hybrid.flush()
    assert await hybrid.get("k") == ("a",)
    stats = await hybrid.stats()
    assert stats["combined"]["write_behind"]["failed"] == 1


async def test_invalidate_both_tiers(hybrid, durable):
    hybrid.set("place:1", ("a",), tags=["places"])
    hybrid.set("event:1", ("b",), tags=["events"])
    hybrid.flush()

    removed = await hybrid.invalidate(tags=["places"])

    assert removed == {"memory": 1, "durable": 1}
    assert await hybrid.get("place:1") is None
    assert await hybrid.get("event:1") == ("b",)


async def test_invalidate_by_pattern(hybrid, durable):
    hybrid.set("place:1", ("a",))
    hybrid.set("event:1", ("b",))
    hybrid.flush()

    removed = await hybrid.invalidate(pattern="place:")

    assert removed == {"memory": 1, "durable": 1}
    assert "event:1" in durable.entries


async def test_memory_only_mode(clock):
    cache = HybridCache(memory=TieredCache("embedding", max_entries=10, default_ttl=60, clock=clock))
    cache.set("k", (0.1, 0.2))
    assert await cache.get("k") == (0.1, 0.2)
    assert await cache.invalidate(tags=["nothing"]) == {"memory": 0, "durable": 0}
    stats = await cache.stats()
    assert stats["durable"] is None
    cache.close()


async def test_close_closes_durable(clock, durable):
    cache = HybridCache(memory=TieredCache("geo", max_entries=10, default_ttl=60, clock=clock), durable=durable)
    cache.close()
    assert durable.closed
