"""Suggestion context, the immutable input of the pipeline."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from venue_retrieval.errors import InvalidContext

MIN_RADIUS_KM = 0.5
MAX_RADIUS_KM = 50.0
MAX_PREFERENCES = 20
MAX_PREFERENCE_LENGTH = 64


class Companionship(str, Enum):
    ALONE = "alone"
    PARTNER = "partner"
    FRIENDS = "friends"
    FAMILY = "family"


class Mood(str, Enum):
    RELAXED = "relaxed"
    ENERGETIC = "energetic"
    ROMANTIC = "romantic"
    ADVENTUROUS = "adventurous"
    CULTURAL = "cultural"


class Budget(str, Enum):
    LOW = "€"
    MEDIUM = "€€"
    HIGH = "€€€"
    LUXURY = "€€€€"


class TimeOfDay(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


@dataclass(frozen=True)
class SuggestionContext:
    """Situational context of one suggestion request.

    Created per request and never mutated. Construction validates every
    field and raises ``InvalidContext`` listing all problems at once.

    Attributes:
        lat: Latitude of the user
        lon: Longitude of the user
        radius_km: Search radius in kilometres
        companionship: Who the user is going out with
        mood: Desired atmosphere
        budget: Price band
        time_of_day: When the user wants to go out
        preferences: Free-text preference tags
    """

    lat: float
    lon: float
    radius_km: float = 5.0
    companionship: Companionship | None = None
    mood: Mood | None = None
    budget: Budget | None = None
    time_of_day: TimeOfDay | None = None
    preferences: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        errors: list[str] = []

        for name, low, high in (("lat", -90.0, 90.0), ("lon", -180.0, 180.0)):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or not math.isfinite(value):
                errors.append(f"{name} must be a finite number")
            elif not low <= value <= high:
                errors.append(f"{name} must be between {low} and {high}, got {value}")

        radius = self.radius_km
        if not isinstance(radius, (int, float)) or isinstance(radius, bool) or not math.isfinite(radius):
            errors.append("radius_km must be a finite number")
        elif not MIN_RADIUS_KM <= radius <= MAX_RADIUS_KM:
            errors.append(f"radius_km must be between {MIN_RADIUS_KM} and {MAX_RADIUS_KM}, got {radius}")

        for name, enum_type in (
            ("companionship", Companionship),
            ("mood", Mood),
            ("budget", Budget),
            ("time_of_day", TimeOfDay),
        ):
            value = getattr(self, name)
            if value is None or isinstance(value, enum_type):
                continue
            try:
                object.__setattr__(self, name, enum_type(value))
            except ValueError:
                allowed = ", ".join(member.value for member in enum_type)
                errors.append(f"{name} must be one of [{allowed}], got {value!r}")

        if isinstance(self.preferences, str):
            errors.append("preferences must be a sequence of strings, not a string")
        else:
            prefs = tuple(self.preferences)
            if len(prefs) > MAX_PREFERENCES:
                errors.append(f"at most {MAX_PREFERENCES} preferences are allowed, got {len(prefs)}")
            for pref in prefs:
                if not isinstance(pref, str) or not pref.strip():
                    errors.append(f"preferences must be non-empty strings, got {pref!r}")
                elif len(pref) > MAX_PREFERENCE_LENGTH:
                    errors.append(f"preference {pref[:20]!r}... exceeds {MAX_PREFERENCE_LENGTH} characters")
            object.__setattr__(self, "preferences", prefs)

        if errors:
            raise InvalidContext(errors)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SuggestionContext":
        """Build a context from a loosely-typed mapping (e.g. a decoded request body).

        Accepts either flat ``lat``/``lon`` or a nested ``location`` object.

        Raises:
            InvalidContext: If required fields are missing or invalid
        """
        location = data.get("location") or {}
        lat = data.get("lat", location.get("lat"))
        lon = data.get("lon", location.get("lon"))
        if lat is None or lon is None:
            raise InvalidContext(["location (lat, lon) is required"])
        return cls(
            lat=lat,
            lon=lon,
            radius_km=data.get("radius_km", 5.0),
            companionship=data.get("companionship"),
            mood=data.get("mood"),
            budget=data.get("budget"),
            time_of_day=data.get("time_of_day", data.get("time")),
            preferences=tuple(data.get("preferences") or ()),
        )
