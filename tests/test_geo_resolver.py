"""
Tests for the geo candidate resolver.
"""

import pytest

from venue_retrieval.entities import EntityKind
from venue_retrieval.errors import TransientUpstreamFailure, UpstreamError
from venue_retrieval.services import GeoCandidateResolver

from fakes import FakeGeo


async def test_queries_bucketed_center(suite):
    """The collaborator receives the rounded centre and the bucket radius in metres."""
    geo = FakeGeo({EntityKind.PLACE: ["a", "b"]})
    resolver = GeoCandidateResolver(geo, suite.geo)

    assert await resolver.resolve(EntityKind.PLACE, 45.46421, 9.19011, 4.2) == ("a", "b")
    assert geo.calls == [(EntityKind.PLACE, 45.46, 9.19, 5000.0)]


async def test_same_bucket_hits_cache(suite):
    geo = FakeGeo({EntityKind.PLACE: ["a", "b"]})
    resolver = GeoCandidateResolver(geo, suite.geo)

    await resolver.resolve("place", 45.46421, 9.19011, 4.2)
    assert await resolver.resolve("place", 45.4631, 9.1913, 3.0) == ("a", "b")
    assert len(geo.calls) == 1


async def test_kinds_do_not_share_entries(suite):
    geo = FakeGeo({EntityKind.PLACE: ["p"], EntityKind.EVENT: ["e"]})
    resolver = GeoCandidateResolver(geo, suite.geo)

    assert await resolver.resolve("place", 45.4642, 9.19, 5) == ("p",)
    assert await resolver.resolve("event", 45.4642, 9.19, 5) == ("e",)


async def test_dedupes_and_caps():
    geo = FakeGeo({EntityKind.PLACE: ["a", "b", "a", "c", "d"]})
    resolver = GeoCandidateResolver(geo, candidate_cap=3)

    assert await resolver.resolve("place", 45.4642, 9.19, 5) == ("a", "b", "c")


async def test_entries_are_tagged_with_ttl(suite):
    geo = FakeGeo({EntityKind.PLACE: ["a"]})
    resolver = GeoCandidateResolver(geo, suite.geo, ttl=600, negative_ttl=60)

    await resolver.resolve("place", 45.4642, 9.19, 5)

    entry = suite.geo.memory.get_entry(resolver.cache_key(EntityKind.PLACE, 45.4642, 9.19, 5))
    assert entry.ttl == 600
    assert entry.tags == frozenset({"geo", "places"})


async def test_empty_result_uses_negative_ttl(suite):
    geo = FakeGeo({})
    resolver = GeoCandidateResolver(geo, suite.geo, ttl=600, negative_ttl=60)

    assert await resolver.resolve("event", 45.4642, 9.19, 5) == ()
    assert await resolver.resolve("event", 45.4642, 9.19, 5) == ()

    assert len(geo.calls) == 1
    entry = suite.geo.memory.get_entry(resolver.cache_key(EntityKind.EVENT, 45.4642, 9.19, 5))
    assert entry.ttl == 60


async def test_transient_failure_is_retried():
    geo = FakeGeo({EntityKind.PLACE: ["a"]}, errors=[TransientUpstreamFailure("geo:place", "503")])
    resolver = GeoCandidateResolver(geo)

    assert await resolver.resolve("place", 45.4642, 9.19, 5) == ("a",)
    assert len(geo.calls) == 2


async def test_rejection_propagates():
    geo = FakeGeo(errors=[UpstreamError("geo:place", "400")])
    resolver = GeoCandidateResolver(geo)

    with pytest.raises(UpstreamError):
        await resolver.resolve("place", 45.4642, 9.19, 5)
    assert len(geo.calls) == 1
