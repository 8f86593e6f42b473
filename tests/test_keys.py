"""
Tests for cache key construction.
"""

from venue_retrieval.entities import SuggestionContext
from venue_retrieval.keys import (
    bucket_radius,
    embedding_key,
    format_coord,
    geo_key,
    pipeline_key,
    precision_for_radius,
    rounded_center,
    vector_key,
)


def test_bucket_radius():
    """Radii snap up to the smallest covering bucket and clamp at the largest."""
    assert bucket_radius(0.5) == 1
    assert bucket_radius(1) == 1
    assert bucket_radius(4.2) == 5
    assert bucket_radius(30) == 50
    assert bucket_radius(80) == 50


def test_precision_for_unknown_bucket():
    """Buckets missing from the table use the nearest smaller bucket's precision."""
    assert precision_for_radius(5) == 2
    assert precision_for_radius(7) == 2
    assert precision_for_radius(0.5) == 3


def test_geo_key_rounds_by_bucket():
    """Nearby centres in the same bucket share a key."""
    assert geo_key("place", 45.46421, 9.19011, 4.2) == "place:45.46:9.19:5"
    assert geo_key("place", 45.4631, 9.1913, 3.0) == "place:45.46:9.19:5"
    assert geo_key("event", 45.4642, 9.19, 50) == "event:45.5:9.2:50"
    assert geo_key("place", 45.4642, 9.19, 1) != geo_key("place", 45.4652, 9.19, 1)


def test_rounded_center_matches_key():
    """The collaborator is queried with the values the key stands for."""
    assert rounded_center(45.46421, 9.19011, 4.2) == (45.46, 9.19, 5.0)


def test_format_coord_normalizes_negative_zero():
    """-0.0001 and 0.0001 round to the same text."""
    assert format_coord(-0.0001, 3) == format_coord(0.0001, 3) == "0.000"


def test_pipeline_key_ignores_preference_order_and_case():
    """Semantically equal contexts produce the same pipeline key."""
    first = SuggestionContext(lat=45.4642, lon=9.19, mood="romantic", preferences=("Jazz", "aperitivo"))
    second = SuggestionContext(lat=45.4642, lon=9.19, mood="romantic", preferences=("aperitivo", " jazz "))
    assert pipeline_key(first) == pipeline_key(second)


def test_pipeline_key_ignores_float_noise():
    """Coordinate noise below three decimals does not change the key."""
    first = SuggestionContext(lat=45.4642, lon=9.19, budget="€€")
    second = SuggestionContext(lat=45.46420001, lon=9.19000002, budget="€€")
    assert pipeline_key(first) == pipeline_key(second)


def test_pipeline_key_distinguishes_contexts():
    """Different budgets or radii produce different keys."""
    base = SuggestionContext(lat=45.4642, lon=9.19, budget="€€")
    assert pipeline_key(base) != pipeline_key(SuggestionContext(lat=45.4642, lon=9.19, budget="€€€"))
    assert pipeline_key(base) != pipeline_key(SuggestionContext(lat=45.4642, lon=9.19, budget="€€", radius_km=10))


def test_vector_key_ignores_candidate_order():
    """The candidate set is hashed in sorted order."""
    embedding = [0.1, 0.2, 0.3]
    assert vector_key("place", embedding, ["b", "a", "c"], 8) == vector_key("place", embedding, ["c", "b", "a"], 8)
    assert vector_key("place", embedding, ["a", "b"], 8) != vector_key("place", embedding, ["a", "b"], 5)


def test_vector_key_uses_leading_components():
    """Only the leading components contribute to the embedding hash."""
    head = [0.5] * 16
    assert vector_key("place", head + [0.1], ["a"], 8) == vector_key("place", head + [0.9], ["a"], 8)
    assert vector_key("place", [0.51] + head[1:], ["a"], 8) != vector_key("place", head, ["a"], 8)


def test_embedding_key_normalizes_whitespace_and_case():
    assert embedding_key("Atmosfera  Romantico", "m") == embedding_key("atmosfera romantico", "m")
    assert embedding_key("atmosfera romantico", "m1") != embedding_key("atmosfera romantico", "m2")
