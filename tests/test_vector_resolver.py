"""
Tests for the vector similarity resolver.
"""

from venue_retrieval.entities import EntityKind, SimilarityMatch
from venue_retrieval.services import VectorSimilarityResolver, rank_matches

from fakes import FakeVector

EMBEDDING = (0.1, 0.2, 0.3, 0.4)


def test_rank_matches_orders_and_dedupes():
    """Best similarity per entity, descending, ties broken by entity ID."""
    matches = [
        SimilarityMatch("b", 0.8),
        SimilarityMatch("a", 0.8),
        SimilarityMatch("c", 0.9),
        SimilarityMatch("b", 0.85),
        SimilarityMatch("d", 0.1),
    ]
    ranked = rank_matches(matches, threshold=0.3, top_k=10)
    assert [(m.entity_id, m.similarity) for m in ranked] == [("c", 0.9), ("b", 0.85), ("a", 0.8)]


def test_rank_matches_top_k():
    matches = [SimilarityMatch(str(index), index / 10) for index in range(10)]
    assert [m.entity_id for m in rank_matches(matches, threshold=0.0, top_k=3)] == ["9", "8", "7"]


async def test_empty_candidates_skip_the_collaborator():
    vectors = FakeVector()
    resolver = VectorSimilarityResolver(vectors)

    assert await resolver.search("place", EMBEDDING, []) == ()
    assert vectors.calls == []


async def test_filters_threshold_and_candidate_set():
    vectors = FakeVector(
        {
            EntityKind.PLACE: [
                SimilarityMatch("A", 0.7),
                SimilarityMatch("B", 0.9),
                SimilarityMatch("C", 0.1),
                SimilarityMatch("Z", 0.95),
            ]
        }
    )
    resolver = VectorSimilarityResolver(vectors, threshold=0.3, top_k=8)

    matches = await resolver.search("place", EMBEDDING, ["A", "B", "C"])

    assert matches == (SimilarityMatch("B", 0.9), SimilarityMatch("A", 0.7))
    kind, _, candidates, threshold, top_k = vectors.calls[0]
    assert (kind, candidates, threshold, top_k) == (EntityKind.PLACE, ["A", "B", "C"], 0.3, 8)


async def test_repeat_query_hits_cache(suite):
    vectors = FakeVector({EntityKind.EVENT: [SimilarityMatch("e1", 0.6)]})
    resolver = VectorSimilarityResolver(vectors, suite.vector)

    first = await resolver.search("event", EMBEDDING, ["e2", "e1"])
    second = await resolver.search("event", EMBEDDING, ["e1", "e2"])

    assert first == second == (SimilarityMatch("e1", 0.6),)
    assert len(vectors.calls) == 1


async def test_different_top_k_is_a_different_entry(suite):
    vectors = FakeVector({EntityKind.PLACE: [SimilarityMatch("a", 0.6)]})
    resolver = VectorSimilarityResolver(vectors, suite.vector, top_k=8)

    await resolver.search("place", EMBEDDING, ["a"])
    await resolver.search("place", EMBEDDING, ["a"], top_k=2)

    assert len(vectors.calls) == 2
    assert vectors.calls[1][4] == 2
