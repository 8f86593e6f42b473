"""Business-rule re-ranking of similarity results.

Scores start at a base value and accumulate additive boosts and penalties:

1. Verification boost
2. Distance penalty beyond a free radius
3. Popularity boost (linear or logarithmic, capped)
4. Budget match
5. Event timing: imminence, time-of-day bucket, past-event penalty

The final score is clamped at zero. Results sort past events last, then by
score descending, then by entity ID.
"""

import logging
import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

from venue_retrieval.config import RerankWeights, Settings, get_settings
from venue_retrieval.entities import (
    EntityKind,
    EntitySnapshot,
    EventSnapshot,
    PlaceSnapshot,
    RankedResult,
    SuggestionContext,
    TimeOfDay,
)
from venue_retrieval.protocols import MetadataStore
from venue_retrieval.services.upstream import call_upstream

logger = logging.getLogger(__name__)

KM_PER_DEGREE = 111.0


def planar_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Fast planar distance approximation, good enough for relative ranking."""
    return math.sqrt((lat2 - lat1) ** 2 + (lon2 - lon1) ** 2) * KM_PER_DEGREE


def time_bucket(hour: int) -> TimeOfDay:
    if 5 <= hour < 12:
        return TimeOfDay.MORNING
    if 12 <= hour < 17:
        return TimeOfDay.AFTERNOON
    if 17 <= hour < 21:
        return TimeOfDay.EVENING
    return TimeOfDay.NIGHT


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


def ranking_key(result: RankedResult) -> tuple[bool, float, str]:
    return (result.is_past, -result.score, result.entity_id)


def sort_results(results: Iterable[RankedResult]) -> list[RankedResult]:
    return sorted(results, key=ranking_key)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RerankingEngine:
    """Deterministic scorer over batched metadata snapshots.

    Example:
        ```python
        engine = RerankingEngine(metadata_store)
        ranked = await engine.rerank(EntityKind.PLACE, ["B", "A"], context, {"B": 0.9, "A": 0.7})
        ```
    """

    def __init__(
        self,
        metadata_store: MetadataStore,
        weights: RerankWeights | None = None,
        clock: Callable[[], datetime] = _utc_now,
        upstream_timeout: float = 5.0,
        local_timezone: tzinfo = timezone.utc,
    ) -> None:
        """Initialize the engine.

        Args:
            metadata_store: Batched snapshot source (required).
            weights: Scoring constants. If None, uses the defaults.
            clock: Returns the current timezone-aware time.
            upstream_timeout: Seconds allowed per metadata attempt.
            local_timezone: Zone in which event start times are bucketed
                into morning, afternoon, evening and night.
        """
        self._metadata = metadata_store
        self._weights = weights or RerankWeights()
        self._clock = clock
        self._timeout = upstream_timeout
        self._local_tz = local_timezone

    @classmethod
    def create(
        cls,
        metadata_store: MetadataStore,
        weights: RerankWeights | None = None,
        settings: Settings | None = None,
    ) -> "RerankingEngine":
        settings = settings or get_settings()
        return cls(
            metadata_store=metadata_store,
            weights=weights,
            upstream_timeout=settings.upstream_timeout,
            local_timezone=ZoneInfo(settings.local_timezone),
        )

    @property
    def weights(self) -> RerankWeights:
        return self._weights

    async def rerank(
        self,
        kind: EntityKind | str,
        candidate_ids: Sequence[str],
        context: SuggestionContext,
        similarities: Mapping[str, float] | None = None,
    ) -> list[RankedResult]:
        """Fetch snapshots in one batch and return the scored, ordered results.

        Candidates missing from the metadata store are dropped.

        Raises:
            UpstreamError: If the metadata store fails after the retry policy
        """
        if not candidate_ids:
            return []
        kind = EntityKind(kind)
        ids = list(dict.fromkeys(candidate_ids))
        snapshots = await call_upstream(
            f"metadata:{kind.value}",
            lambda: self._metadata.fetch_by_ids(kind, ids),
            self._timeout,
        )
        by_id = {snapshot.entity_id: snapshot for snapshot in snapshots}
        missing = len(ids) - sum(1 for entity_id in ids if entity_id in by_id)
        if missing:
            logger.debug("%d %s candidates had no metadata", missing, kind.value)

        now = self._clock()
        similarities = similarities or {}
        return sort_results(
            self.score(by_id[entity_id], context, now, similarities.get(entity_id))
            for entity_id in ids
            if entity_id in by_id
        )

    def score(
        self,
        snapshot: EntitySnapshot,
        context: SuggestionContext,
        now: datetime,
        similarity: float | None = None,
    ) -> RankedResult:
        """Score one snapshot against the context."""
        w = self._weights
        score = w.base

        if snapshot.verified:
            score += w.verified_boost

        distance = planar_distance_km(context.lat, context.lon, snapshot.lat, snapshot.lon)
        if distance > w.distance_free_km:
            score -= min(w.distance_penalty_cap, (distance - w.distance_free_km) * w.distance_penalty_per_km)

        popularity = max(0, snapshot.popularity)
        if w.popularity_mode == "log":
            score += min(w.popularity_cap, math.log(popularity + 1) * w.popularity_log_factor)
        else:
            score += min(w.popularity_cap, popularity * w.popularity_per_unit)

        if context.budget is not None and snapshot.price_tier == context.budget.value:
            score += w.budget_match

        is_past = False
        match snapshot:
            case EventSnapshot(start_at=start_at):
                start = _aware(start_at)
                if start < _aware(now):
                    is_past = True
                    score -= w.past_event_penalty
                else:
                    hours_until = (start - _aware(now)).total_seconds() / 3600
                    if hours_until <= w.event_imminent_hours:
                        score += w.event_imminent_boost
                    elif hours_until <= w.event_same_day_hours:
                        score += w.event_same_day_boost
                    local_hour = start.astimezone(self._local_tz).hour
                    if context.time_of_day is not None and time_bucket(local_hour) == context.time_of_day:
                        score += w.event_time_bucket_boost
            case PlaceSnapshot():
                pass

        return RankedResult(
            entity_id=snapshot.entity_id,
            kind=snapshot.kind,
            score=max(0.0, score),
            metadata=snapshot,
            distance_km=distance,
            similarity=similarity,
            is_past=is_past,
        )
