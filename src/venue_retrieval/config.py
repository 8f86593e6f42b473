import os
from dataclasses import dataclass, field
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import redis
from dotenv import load_dotenv

load_dotenv()

_MB = 1024 * 1024


def _env_floats(name: str, default: str) -> tuple[float, ...]:
    raw = os.getenv(name, default)
    return tuple(float(part) for part in raw.split(",") if part.strip())


def _env_strings(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class CacheTierConfig:
    """Sizing and lifetime of one cache type (geo, vector, embedding, pipeline)."""

    ttl: float
    max_entries: int
    max_memory_bytes: int | None = None
    negative_ttl: float | None = None


@dataclass(frozen=True)
class RerankWeights:
    """Scoring constants for the re-ranking engine.

    The values were tuned empirically; override them per deployment rather
    than editing the defaults.
    """

    base: float = 1.0
    verified_boost: float = 0.1
    distance_free_km: float = 3.0
    distance_penalty_per_km: float = 0.05
    distance_penalty_cap: float = 0.3
    popularity_per_unit: float = 0.01
    popularity_cap: float = 0.1
    popularity_mode: str = "linear"  # or "log"
    popularity_log_factor: float = 0.02
    budget_match: float = 0.15
    event_imminent_hours: float = 6.0
    event_imminent_boost: float = 0.2
    event_same_day_hours: float = 24.0
    event_same_day_boost: float = 0.1
    event_time_bucket_boost: float = 0.1
    past_event_penalty: float = 1.0

    def __post_init__(self) -> None:
        if self.popularity_mode not in ("linear", "log"):
            raise ValueError(f"popularity_mode must be 'linear' or 'log', got {self.popularity_mode!r}")


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    # Redis (durable tier)
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    redis_password: str | None = os.getenv("REDIS_PASSWORD")
    redis_socket_timeout: float = float(os.getenv("REDIS_SOCKET_TIMEOUT", "0.5"))
    cache_namespace: str = os.getenv("CACHE_NAMESPACE", "venue_retrieval")

    # Per cache type
    geo_cache_ttl: float = float(os.getenv("GEO_CACHE_TTL", "600"))  # 10 minutes
    geo_negative_ttl: float = float(os.getenv("GEO_NEGATIVE_TTL", "60"))
    geo_cache_max_entries: int = int(os.getenv("GEO_CACHE_MAX_ENTRIES", "1000"))
    geo_cache_max_memory_mb: float = float(os.getenv("GEO_CACHE_MAX_MEMORY_MB", "50"))

    vector_cache_ttl: float = float(os.getenv("VECTOR_CACHE_TTL", "300"))  # 5 minutes
    vector_cache_max_entries: int = int(os.getenv("VECTOR_CACHE_MAX_ENTRIES", "500"))
    vector_cache_max_memory_mb: float = float(os.getenv("VECTOR_CACHE_MAX_MEMORY_MB", "50"))

    embedding_cache_ttl: float = float(os.getenv("EMBEDDING_CACHE_TTL", "3600"))  # 1 hour
    embedding_cache_max_entries: int = int(os.getenv("EMBEDDING_CACHE_MAX_ENTRIES", "200"))
    embedding_cache_max_memory_mb: float = float(os.getenv("EMBEDDING_CACHE_MAX_MEMORY_MB", "100"))

    pipeline_cache_ttl: float = float(os.getenv("PIPELINE_CACHE_TTL", "300"))  # 5 minutes
    pipeline_negative_ttl: float = float(os.getenv("PIPELINE_NEGATIVE_TTL", "60"))
    pipeline_cache_max_entries: int = int(os.getenv("PIPELINE_CACHE_MAX_ENTRIES", "2000"))
    pipeline_cache_max_memory_mb: float = float(os.getenv("PIPELINE_CACHE_MAX_MEMORY_MB", "30"))

    # Geo bucketing
    geo_radius_buckets: tuple[float, ...] = field(
        default_factory=lambda: _env_floats("GEO_RADIUS_BUCKETS", "1,2,5,10,25,50")
    )
    candidate_cap: int = int(os.getenv("CANDIDATE_CAP", "100"))

    # Background maintenance
    cache_cleanup_interval: float = float(os.getenv("CACHE_CLEANUP_INTERVAL", "300"))
    cache_cleanup_batch_size: int = int(os.getenv("CACHE_CLEANUP_BATCH_SIZE", "200"))
    metrics_snapshot_interval: float = float(os.getenv("METRICS_SNAPSHOT_INTERVAL", "60"))
    metrics_retention: float = float(os.getenv("METRICS_RETENTION", "900"))  # 15 minutes

    # Timeouts and write-behind
    upstream_timeout: float = float(os.getenv("UPSTREAM_TIMEOUT", "5.0"))
    durable_timeout: float = float(os.getenv("DURABLE_TIMEOUT", "0.5"))
    write_queue_size: int = int(os.getenv("WRITE_QUEUE_SIZE", "1000"))

    # Vector search
    vector_top_k: int = int(os.getenv("VECTOR_TOP_K", "8"))
    vector_threshold: float = float(os.getenv("VECTOR_THRESHOLD", "0.3"))
    vector_key_components: int = int(os.getenv("VECTOR_KEY_COMPONENTS", "16"))
    vector_backend: str = os.getenv("VECTOR_BACKEND", "supabase")  # or "redis"

    # Pipeline
    max_results_per_kind: int = int(os.getenv("MAX_RESULTS_PER_KIND", "6"))
    local_timezone: str = os.getenv("LOCAL_TIMEZONE", "Europe/Rome")  # event time-of-day buckets
    entity_kinds: tuple[str, ...] = field(
        default_factory=lambda: _env_strings("ENTITY_KINDS", "place,event")
    )

    # Collaborators
    supabase_url: str = os.getenv("SUPABASE_URL", "http://localhost:54321")
    supabase_key: str | None = os.getenv("SUPABASE_KEY")
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "ollama")  # or "local"
    embedding_model: str = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")

    # API
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_reload: bool = os.getenv("API_RELOAD", "false").lower() == "true"

    def tier(self, cache_type: str) -> CacheTierConfig:
        """Return the sizing of one cache type.

        Args:
            cache_type: One of "geo", "vector", "embedding", "pipeline"

        Returns:
            CacheTierConfig for that type

        Raises:
            KeyError: If the cache type is unknown
        """
        tiers = {
            "geo": CacheTierConfig(
                ttl=self.geo_cache_ttl,
                max_entries=self.geo_cache_max_entries,
                max_memory_bytes=int(self.geo_cache_max_memory_mb * _MB),
                negative_ttl=self.geo_negative_ttl,
            ),
            "vector": CacheTierConfig(
                ttl=self.vector_cache_ttl,
                max_entries=self.vector_cache_max_entries,
                max_memory_bytes=int(self.vector_cache_max_memory_mb * _MB),
            ),
            "embedding": CacheTierConfig(
                ttl=self.embedding_cache_ttl,
                max_entries=self.embedding_cache_max_entries,
                max_memory_bytes=int(self.embedding_cache_max_memory_mb * _MB),
            ),
            "pipeline": CacheTierConfig(
                ttl=self.pipeline_cache_ttl,
                max_entries=self.pipeline_cache_max_entries,
                max_memory_bytes=int(self.pipeline_cache_max_memory_mb * _MB),
                negative_ttl=self.pipeline_negative_ttl,
            ),
        }
        return tiers[cache_type]

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        for name in ("geo_cache_ttl", "vector_cache_ttl", "embedding_cache_ttl", "pipeline_cache_ttl",
                     "geo_negative_ttl", "pipeline_negative_ttl"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name.upper()} must be positive")

        if not self.geo_radius_buckets:
            raise ValueError("GEO_RADIUS_BUCKETS must list at least one radius")
        if list(self.geo_radius_buckets) != sorted(self.geo_radius_buckets) or self.geo_radius_buckets[0] <= 0:
            raise ValueError(f"GEO_RADIUS_BUCKETS must be positive and ascending, got {self.geo_radius_buckets}")

        if not 0 <= self.vector_threshold <= 1:
            raise ValueError("VECTOR_THRESHOLD must be between 0 and 1 for cosine similarity")

        if self.embedding_provider not in ("ollama", "local"):
            raise ValueError(f"EMBEDDING_PROVIDER must be 'ollama' or 'local', got {self.embedding_provider!r}")

        if self.vector_backend not in ("supabase", "redis"):
            raise ValueError(f"VECTOR_BACKEND must be 'supabase' or 'redis', got {self.vector_backend!r}")

        try:
            ZoneInfo(self.local_timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"LOCAL_TIMEZONE must be an IANA zone name, got {self.local_timezone!r}") from e

        if self.candidate_cap <= 0 or self.vector_top_k <= 0:
            raise ValueError("CANDIDATE_CAP and VECTOR_TOP_K must be positive")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


def get_redis_client() -> redis.Redis:
    """Create a Redis client instance for the durable cache tier."""
    return redis.from_url(
        settings.redis_url,
        password=settings.redis_password,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
        decode_responses=False,
    )
