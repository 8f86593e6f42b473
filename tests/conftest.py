"""
Shared fixtures for the retrieval tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from venue_retrieval.cache import CacheSuite
from venue_retrieval.config import Settings

from fakes import FakeClock


@pytest.fixture
def clock():
    """Manual clock for cache TTL tests."""
    return FakeClock()


@pytest.fixture
def settings():
    """Default settings, independent of the process environment."""
    return Settings(
        embedding_provider="ollama",
        vector_backend="supabase",
        vector_threshold=0.3,
        vector_top_k=8,
        max_results_per_kind=6,
        entity_kinds=("place", "event"),
    )


@pytest.fixture
def suite(settings):
    """Memory-only cache suite, disposed after the test."""
    cache_suite = CacheSuite.create(settings=settings)
    yield cache_suite
    cache_suite.dispose()


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def tomorrow_evening(now):
    return (now + timedelta(days=1)).replace(hour=20, minute=0, second=0, microsecond=0)
