"""Cache key construction.

Every key is a pure function of its inputs. Arrays are sorted and floats are
rounded to fixed precision before hashing, so logically equivalent queries
always produce the same key.
"""

import hashlib
import json
from collections.abc import Iterable, Sequence

from venue_retrieval.entities import SuggestionContext

DEFAULT_RADIUS_BUCKETS: tuple[float, ...] = (1, 2, 5, 10, 25, 50)

# Decimal places used to round the query centre, per radius bucket (km).
# Larger radii tolerate a coarser centre, which raises the hit rate.
GEO_PRECISION_BY_BUCKET: dict[float, int] = {
    1: 3,
    2: 3,
    5: 2,
    10: 2,
    25: 1,
    50: 1,
}

PIPELINE_COORD_DECIMALS = 3
VECTOR_COMPONENT_DECIMALS = 6
HASH_LENGTH = 16


def _digest(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def format_coord(value: float, decimals: int) -> str:
    """Format a coordinate with fixed decimals, normalizing negative zero."""
    text = f"{value:.{decimals}f}"
    if float(text) == 0.0:
        return f"{0.0:.{decimals}f}"
    return text


def bucket_radius(radius_km: float, buckets: Sequence[float] = DEFAULT_RADIUS_BUCKETS) -> float:
    """Return the smallest bucket that covers ``radius_km``.

    Radii above the largest bucket clamp to it.
    """
    for bucket in buckets:
        if radius_km <= bucket:
            return bucket
    return buckets[-1]


def precision_for_radius(
    bucket_km: float,
    precision_table: dict[float, int] | None = None,
) -> int:
    """Return the rounding precision (decimal places) for a radius bucket.

    Buckets missing from the table take the precision of the nearest smaller
    known bucket, or 3 decimals below the smallest one.
    """
    table = precision_table or GEO_PRECISION_BY_BUCKET
    if bucket_km in table:
        return table[bucket_km]
    smaller = [b for b in table if b <= bucket_km]
    return table[max(smaller)] if smaller else 3


def _format_bucket(bucket_km: float) -> str:
    return f"{bucket_km:g}"


def geo_key(
    entity_kind: str,
    lat: float,
    lon: float,
    radius_km: float,
    buckets: Sequence[float] = DEFAULT_RADIUS_BUCKETS,
    precision_table: dict[float, int] | None = None,
) -> str:
    """Build the geo candidate key ``{kind}:{lat}:{lon}:{radius bucket}``.

    Example:
        ```python
        geo_key("place", 45.46421, 9.19011, 4.2)  # "place:45.46:9.19:5"
        ```
    """
    bucket = bucket_radius(radius_km, buckets)
    decimals = precision_for_radius(bucket, precision_table)
    return ":".join(
        (
            str(entity_kind),
            format_coord(lat, decimals),
            format_coord(lon, decimals),
            _format_bucket(bucket),
        )
    )


def rounded_center(
    lat: float,
    lon: float,
    radius_km: float,
    buckets: Sequence[float] = DEFAULT_RADIUS_BUCKETS,
    precision_table: dict[float, int] | None = None,
) -> tuple[float, float, float]:
    """Return the (lat, lon, radius) a geo bucket stands for.

    The geo resolver queries with these values so every query that maps to
    the same key receives the same candidate set.
    """
    bucket = bucket_radius(radius_km, buckets)
    decimals = precision_for_radius(bucket, precision_table)
    return (
        float(format_coord(lat, decimals)),
        float(format_coord(lon, decimals)),
        float(bucket),
    )


def embedding_fingerprint(embedding: Sequence[float], components: int = 16) -> str:
    """Hash the leading components of an embedding."""
    head = embedding[:components]
    return _digest(",".join(f"{float(c):.{VECTOR_COMPONENT_DECIMALS}f}" for c in head))


def candidates_fingerprint(candidate_ids: Iterable[str]) -> str:
    """Hash a candidate set independently of its order."""
    return _digest(",".join(sorted(set(candidate_ids))))


def vector_key(
    entity_kind: str,
    query_embedding: Sequence[float],
    candidate_ids: Iterable[str],
    top_k: int,
    components: int = 16,
) -> str:
    """Build the vector search key ``{kind}:{embedding hash}:{candidates hash}:{top_k}``.

    Only exact repeats collide; two numerically close embeddings usually
    produce different keys.
    """
    return ":".join(
        (
            str(entity_kind),
            embedding_fingerprint(query_embedding, components),
            candidates_fingerprint(candidate_ids),
            str(int(top_k)),
        )
    )


def embedding_key(text: str, model_name: str) -> str:
    """Build the query embedding key from the normalized query text and model."""
    normalized = " ".join(text.lower().split())
    return f"{model_name}:{_digest(normalized)}"


def normalize_preferences(preferences: Iterable[str]) -> list[str]:
    return sorted({pref.strip().lower() for pref in preferences if pref.strip()})


def pipeline_key(context: SuggestionContext) -> str:
    """Hash the normalized suggestion context.

    Tag order, tag case and float noise below 3 decimals do not affect the key.
    """
    normalized = {
        "companionship": context.companionship.value if context.companionship else None,
        "mood": context.mood.value if context.mood else None,
        "budget": context.budget.value if context.budget else None,
        "time": context.time_of_day.value if context.time_of_day else None,
        "lat": format_coord(context.lat, PIPELINE_COORD_DECIMALS),
        "lon": format_coord(context.lon, PIPELINE_COORD_DECIMALS),
        "radius": f"{float(context.radius_km):g}",
        "preferences": normalize_preferences(context.preferences),
    }
    return _digest(json.dumps(normalized, sort_keys=True, ensure_ascii=False))
