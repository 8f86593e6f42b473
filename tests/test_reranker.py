"""
Tests for the re-ranking engine.
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from venue_retrieval.config import RerankWeights
from venue_retrieval.entities import EntityKind, SuggestionContext, TimeOfDay
from venue_retrieval.services import RerankingEngine, planar_distance_km, time_bucket

from fakes import MILAN, FakeMetadata, make_event, make_place

NOW = datetime(2026, 5, 1, 18, 0, tzinfo=timezone.utc)


def engine_for(*snapshots, weights=None):
    metadata = FakeMetadata(snapshots)
    return RerankingEngine(metadata, weights=weights, clock=lambda: NOW), metadata


@pytest.fixture
def context():
    return SuggestionContext(lat=MILAN[0], lon=MILAN[1])


def test_time_buckets():
    assert time_bucket(5) is TimeOfDay.MORNING
    assert time_bucket(12) is TimeOfDay.AFTERNOON
    assert time_bucket(17) is TimeOfDay.EVENING
    assert time_bucket(21) is TimeOfDay.NIGHT
    assert time_bucket(3) is TimeOfDay.NIGHT


def test_planar_distance():
    assert planar_distance_km(45.0, 9.0, 45.1, 9.0) == pytest.approx(11.1)


async def test_base_score(context):
    engine, _ = engine_for(make_place("A"))
    [result] = await engine.rerank(EntityKind.PLACE, ["A"], context)
    assert result.score == pytest.approx(1.0)
    assert result.distance_km == pytest.approx(0.0)
    assert result.similarity is None
    assert not result.is_past


async def test_verified_and_popularity(context):
    engine, _ = engine_for(make_place("A", verified=True, popularity=5), make_place("B", popularity=500))
    results = {r.entity_id: r.score for r in await engine.rerank("place", ["A", "B"], context)}
    assert results["A"] == pytest.approx(1.15)
    # Popularity boost is capped
    assert results["B"] == pytest.approx(1.1)


async def test_log_popularity(context):
    engine, _ = engine_for(make_place("A", popularity=9), weights=RerankWeights(popularity_mode="log"))
    [result] = await engine.rerank("place", ["A"], context)
    assert result.score == pytest.approx(1.0 + 0.02 * 2.302585, rel=1e-4)


async def test_distance_penalty(context):
    near = make_place("near", lat=MILAN[0] + 0.02)
    mid = make_place("mid", lat=MILAN[0] + 0.05)
    far = make_place("far", lat=MILAN[0] + 0.3)
    engine, _ = engine_for(near, mid, far)

    scores = {r.entity_id: r.score for r in await engine.rerank("place", ["near", "mid", "far"], context)}

    assert scores["near"] == pytest.approx(1.0)
    assert scores["mid"] == pytest.approx(1.0 - (5.55 - 3.0) * 0.05)
    assert scores["far"] == pytest.approx(0.7)


async def test_budget_match():
    context = SuggestionContext(lat=MILAN[0], lon=MILAN[1], budget="€€")
    engine, _ = engine_for(make_place("A", price_tier="€€"), make_place("B", price_tier="€"))

    results = await engine.rerank("place", ["A", "B"], context)

    assert [r.entity_id for r in results] == ["A", "B"]
    assert results[0].score == pytest.approx(1.15)
    assert results[1].score == pytest.approx(1.0)


async def test_imminent_event_in_matching_bucket():
    context = SuggestionContext(lat=MILAN[0], lon=MILAN[1], time_of_day="evening")
    engine, _ = engine_for(make_event("E", NOW + timedelta(hours=2)))

    [result] = await engine.rerank("event", ["E"], context)

    assert result.score == pytest.approx(1.3)


async def test_same_day_event(context):
    engine, _ = engine_for(make_event("E", NOW + timedelta(hours=10)))
    [result] = await engine.rerank("event", ["E"], context)
    assert result.score == pytest.approx(1.1)


async def test_naive_start_is_treated_as_utc(context):
    engine, _ = engine_for(make_event("E", (NOW + timedelta(hours=2)).replace(tzinfo=None)))
    [result] = await engine.rerank("event", ["E"], context)
    assert result.score == pytest.approx(1.2)


async def test_past_event_sinks_and_is_clamped(context):
    past = make_event("past", NOW - timedelta(hours=1), lat=MILAN[0] + 0.1, verified=True)
    future = make_event("future", NOW + timedelta(days=3), lat=MILAN[0] + 0.4)
    engine, _ = engine_for(past, future)

    results = await engine.rerank("event", ["past", "future"], context)

    assert [r.entity_id for r in results] == ["future", "past"]
    assert results[1].is_past
    assert results[1].score == 0.0
    assert results[0].score == pytest.approx(0.7)


async def test_missing_snapshots_are_dropped_in_one_batch(context):
    engine, metadata = engine_for(make_place("A"), make_place("C"))

    results = await engine.rerank("place", ["A", "B", "C", "A"], context, {"A": 0.8, "C": 0.5})

    assert [r.entity_id for r in results] == ["A", "C"]
    assert results[0].similarity == 0.8
    assert metadata.calls == [(EntityKind.PLACE, ["A", "B", "C"])]


async def test_ties_are_deterministic(context):
    engine, _ = engine_for(make_place("b"), make_place("a"), make_place("c"))

    first = await engine.rerank("place", ["c", "b", "a"], context)
    second = await engine.rerank("place", ["a", "c", "b"], context)

    assert [r.entity_id for r in first] == [r.entity_id for r in second] == ["a", "b", "c"]


async def test_empty_candidates_skip_metadata(context):
    engine, metadata = engine_for()
    assert await engine.rerank("place", [], context) == []
    assert metadata.calls == []


def test_invalid_popularity_mode():
    with pytest.raises(ValueError, match="popularity_mode"):
        RerankWeights(popularity_mode="square")


async def test_time_bucket_uses_local_zone():
    # 19:30 UTC is 21:30 in Rome during summer time
    start = datetime(2026, 5, 1, 19, 30, tzinfo=timezone.utc)
    context = SuggestionContext(lat=MILAN[0], lon=MILAN[1], time_of_day="night")
    metadata = FakeMetadata([make_event("E", start)])

    local = RerankingEngine(metadata, clock=lambda: NOW, local_timezone=ZoneInfo("Europe/Rome"))
    utc = RerankingEngine(metadata, clock=lambda: NOW)

    [in_rome] = await local.rerank("event", ["E"], context)
    [in_utc] = await utc.rerank("event", ["E"], context)

    assert in_rome.score == pytest.approx(in_utc.score + 0.1)
