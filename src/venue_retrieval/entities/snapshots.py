"""Entity snapshots fetched for re-ranking.

``EntitySnapshot`` is a tagged union: every variant carries a ``kind``
discriminant, and consumers dispatch on the variant with ``match``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class EntityKind(str, Enum):
    """Kinds of entity the pipeline retrieves."""

    PLACE = "place"
    EVENT = "event"


@dataclass(frozen=True)
class PlaceSnapshot:
    """Read-only denormalized view of a venue.

    Attributes:
        entity_id: Place identifier
        name: Display name
        lat: Latitude in degrees
        lon: Longitude in degrees
        tags: Ambience / music / category tags
        price_tier: Price band ("€" .. "€€€€"), if known
        verified: Whether the venue passed verification
        popularity: How many times it has been suggested
        place_type: Venue category (bar, club, restaurant, ...)
    """

    entity_id: str
    name: str
    lat: float
    lon: float
    tags: tuple[str, ...] = ()
    price_tier: str | None = None
    verified: bool = False
    popularity: int = 0
    place_type: str | None = None
    kind: EntityKind = field(default=EntityKind.PLACE, init=False)


@dataclass(frozen=True)
class EventSnapshot:
    """Read-only denormalized view of an event.

    Attributes:
        entity_id: Event identifier
        name: Event title
        lat: Latitude of the hosting venue
        lon: Longitude of the hosting venue
        start_at: Timezone-aware start time
        end_at: Timezone-aware end time, if known
        tags: Genre / category tags
        price_tier: Price band, if known
        verified: Whether the hosting venue is verified
        popularity: Interest counter
        place_id: Hosting venue
    """

    entity_id: str
    name: str
    lat: float
    lon: float
    start_at: datetime
    end_at: datetime | None = None
    tags: tuple[str, ...] = ()
    price_tier: str | None = None
    verified: bool = False
    popularity: int = 0
    place_id: str | None = None
    kind: EntityKind = field(default=EntityKind.EVENT, init=False)


EntitySnapshot = PlaceSnapshot | EventSnapshot
