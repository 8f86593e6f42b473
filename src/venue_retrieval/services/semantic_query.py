"""Semantic query text built from a suggestion context.

The venue and event embeddings are indexed from Italian descriptions, so the
query is phrased in Italian too. Preferences are normalized first, which keeps
the text (and therefore the embedding cache key) stable across equivalent
contexts.
"""

from venue_retrieval.entities import Companionship, Mood, SuggestionContext, TimeOfDay
from venue_retrieval.keys import normalize_preferences

COMPANIONSHIP_PHRASES = {
    Companionship.ALONE: "da solo",
    Companionship.PARTNER: "con il partner",
    Companionship.FRIENDS: "con gli amici",
    Companionship.FAMILY: "con la famiglia",
}

MOOD_PHRASES = {
    Mood.RELAXED: "rilassante",
    Mood.ENERGETIC: "energico",
    Mood.ROMANTIC: "romantico",
    Mood.ADVENTUROUS: "avventuroso",
    Mood.CULTURAL: "culturale",
}

TIME_PHRASES = {
    TimeOfDay.MORNING: "mattina",
    TimeOfDay.AFTERNOON: "pomeriggio",
    TimeOfDay.EVENING: "sera",
    TimeOfDay.NIGHT: "notte",
}

DEFAULT_QUERY = "Cerco un locale"


def build_semantic_query(context: SuggestionContext) -> str:
    """Describe the context as one sentence for the embedding model.

    Example:
        ```python
        ctx = SuggestionContext(lat=45.46, lon=9.19, mood="romantic", budget="€€")
        build_semantic_query(ctx)  # "atmosfera romantico, budget €€"
        ```
    """
    parts: list[str] = []
    if context.companionship:
        parts.append(f"Cerco un locale per andare {COMPANIONSHIP_PHRASES[context.companionship]}")
    if context.mood:
        parts.append(f"atmosfera {MOOD_PHRASES[context.mood]}")
    if context.budget:
        parts.append(f"budget {context.budget.value}")
    if context.time_of_day:
        parts.append(f"orario {TIME_PHRASES[context.time_of_day]}")
    preferences = normalize_preferences(context.preferences)
    if preferences:
        parts.append(f"preferenze: {', '.join(preferences)}")
    return ", ".join(parts) or DEFAULT_QUERY
