"""Redis implementation of DurableCacheStore.

Each cache type lives in its own key namespace. Entries are Redis hashes
with bookkeeping fields and one typed payload field; tags are Redis sets of
cache keys. TTL comparisons use the Redis server clock (``TIME``) so every
process sharing the store agrees on expiry.
"""

import json
import logging
import math
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Generic, TypeVar

import redis

from venue_retrieval.cache.codecs import PayloadCodec
from venue_retrieval.config import get_redis_client, settings
from venue_retrieval.entities import DurableRecord
from venue_retrieval.errors import CacheBackendUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCAN_COUNT = 500
_GLOB_SPECIAL = "\\*?[]"


def escape_glob(text: str) -> str:
    """Escape Redis glob metacharacters so ``text`` matches literally."""
    return "".join(f"\\{char}" if char in _GLOB_SPECIAL else char for char in text)


def _text(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisDurableCache(Generic[T]):
    """Redis-backed durable tier for one cache type.

    This class satisfies the DurableCacheStore protocol through structural
    typing - no explicit inheritance needed.

    Layout:
    - ``{namespace}:{cache_type}:e:{cache_key}`` hash with ``created_at``,
      ``expires_at``, ``hit_count``, ``last_accessed``, ``tags``,
      ``metadata`` and the codec's payload field
    - ``{namespace}:{cache_type}:t:{tag}`` set of cache keys
    """

    def __init__(
        self,
        cache_type: str,
        codec: PayloadCodec[T],
        redis_client: redis.Redis | None = None,
        namespace: str | None = None,
        hit_executor: ThreadPoolExecutor | None = None,
    ) -> None:
        """Initialize the Redis durable cache.

        Args:
            cache_type: Cache type, used in the key namespace (geo, vector, ...)
            codec: Payload codec for this cache type
            redis_client: Redis client instance. If None, creates default.
            namespace: Key prefix. If None, uses settings.
            hit_executor: Executor for fire-and-forget hit bookkeeping.
        """
        self._client = redis_client or get_redis_client()
        self._cache_type = cache_type
        self._codec = codec
        self._namespace = namespace or settings.cache_namespace
        self._prefix = f"{self._namespace}:{cache_type}"
        self._entry_prefix = f"{self._prefix}:e:"
        self._tag_prefix = f"{self._prefix}:t:"
        self._owns_executor = hit_executor is None
        self._executor = hit_executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix=f"{cache_type}-durable-hits"
        )

    @classmethod
    def create(
        cls,
        cache_type: str,
        codec: PayloadCodec[T],
        redis_client: redis.Redis | None = None,
        namespace: str | None = None,
    ) -> "RedisDurableCache[T]":
        """Factory method to create RedisDurableCache with defaults.

        Args:
            cache_type: Cache type (geo, vector, embedding, pipeline)
            codec: Payload codec for the cache type
            redis_client: Shared client. If None, creates default.
            namespace: Key prefix. If None, uses settings.

        Returns:
            Configured RedisDurableCache
        """
        return cls(cache_type=cache_type, codec=codec, redis_client=redis_client, namespace=namespace)

    def entry_key(self, key: str) -> str:
        return f"{self._entry_prefix}{key}"

    def tag_key(self, tag: str) -> str:
        return f"{self._tag_prefix}{tag}"

    def _server_now(self) -> float:
        seconds, micros = self._client.time()  # type: ignore[misc]
        return int(seconds) + int(micros) / 1_000_000

    def get(self, key: str) -> DurableRecord[T] | None:
        """Return the live record for ``key``, or None.

        Raises:
            CacheBackendUnavailable: If Redis cannot be reached
        """
        entry_key = self.entry_key(key)
        try:
            pipe = self._client.pipeline(transaction=False)
            pipe.time()
            pipe.hgetall(entry_key)
            (seconds, micros), raw = pipe.execute()
        except redis.RedisError as exc:
            raise CacheBackendUnavailable(f"redis get failed: {exc}") from exc

        if not raw:
            return None
        now = int(seconds) + int(micros) / 1_000_000
        fields = {_text(name): _text(value) for name, value in raw.items()}
        if "expires_at" not in fields or self._codec.field not in fields:
            return None

        try:
            expires_at = float(fields["expires_at"])
            if expires_at <= now:
                return None
            data = self._codec.decode(fields[self._codec.field])
            tags = frozenset(json.loads(fields.get("tags") or "[]"))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Undecodable %s entry %s: %s", self._cache_type, key, exc)
            return None

        try:
            self._executor.submit(self._record_hit, entry_key, now)
        except RuntimeError:
            logger.debug("Hit bookkeeping skipped for %s, executor closed", entry_key)
        return DurableRecord(data=data, expires_at=expires_at, server_now=now, tags=tags)

    def _record_hit(self, entry_key: str, now: float) -> None:
        try:
            if not self._client.exists(entry_key):
                return
            pipe = self._client.pipeline(transaction=False)
            pipe.hincrby(entry_key, "hit_count", 1)
            pipe.hset(entry_key, "last_accessed", str(now))
            pipe.execute()
        except redis.RedisError as exc:
            logger.debug("Failed to record durable hit for %s: %s", entry_key, exc)

    def set(
        self,
        key: str,
        data: T,
        ttl: float,
        tags: Iterable[str] = (),
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Upsert an entry with a native Redis expiry.

        Raises:
            CacheBackendUnavailable: If Redis cannot be reached
        """
        tag_list = sorted(set(tags))
        entry_key = self.entry_key(key)
        try:
            now = self._server_now()
            pipe = self._client.pipeline(transaction=True)
            pipe.delete(entry_key)
            pipe.hset(
                entry_key,
                mapping={
                    "cache_key": key,
                    "created_at": str(now),
                    "expires_at": str(now + ttl),
                    "hit_count": 0,
                    "last_accessed": str(now),
                    "tags": json.dumps(tag_list),
                    "metadata": json.dumps(metadata or {}, default=str),
                    self._codec.field: self._codec.encode(data),
                },
            )
            pipe.expire(entry_key, max(1, math.ceil(ttl)))
            for tag in tag_list:
                pipe.sadd(self.tag_key(tag), key)
            pipe.execute()
        except redis.RedisError as exc:
            raise CacheBackendUnavailable(f"redis set failed: {exc}") from exc

    def invalidate(self, pattern: str | None = None, tags: Iterable[str] | None = None) -> int:
        """Delete entries whose key contains ``pattern`` or that carry any of ``tags``.

        Args:
            pattern: Substring of the cache key (matched literally)
            tags: Tags whose entries are deleted; the tag sets go too

        Returns:
            Number of entries deleted
        """
        tag_list = list(tags or [])
        keys: set[str] = set()
        try:
            for tag in tag_list:
                keys.update(_text(member) for member in self._client.smembers(self.tag_key(tag)))
            if pattern:
                match = f"{self._entry_prefix}*{escape_glob(pattern)}*"
                for entry_key in self._client.scan_iter(match=match, count=SCAN_COUNT):
                    keys.add(_text(entry_key)[len(self._entry_prefix) :])

            if not keys and not tag_list:
                return 0
            ordered = sorted(keys)
            pipe = self._client.pipeline(transaction=False)
            for key in ordered:
                pipe.delete(self.entry_key(key))
            for tag in tag_list:
                pipe.delete(self.tag_key(tag))
            results = pipe.execute()
        except redis.RedisError as exc:
            raise CacheBackendUnavailable(f"redis invalidate failed: {exc}") from exc

        deleted = sum(int(result) for result in results[: len(ordered)])
        logger.info("Invalidated %d durable %s entries", deleted, self._cache_type)
        return deleted

    def _scan_entries(self) -> list[str]:
        return [_text(key) for key in self._client.scan_iter(match=f"{self._entry_prefix}*", count=SCAN_COUNT)]

    def cleanup_expired(self) -> int:
        """Delete entries whose ``expires_at`` has passed and prune stale tag members.

        Redis expiry removes most entries on its own; this catches the rest.

        Returns:
            Number of entries deleted
        """
        try:
            now = self._server_now()
            entry_keys = self._scan_entries()
            pipe = self._client.pipeline(transaction=False)
            for entry_key in entry_keys:
                pipe.hget(entry_key, "expires_at")
            expiries = pipe.execute() if entry_keys else []

            stale = [
                entry_key
                for entry_key, expires_at in zip(entry_keys, expiries)
                if expires_at is None or float(_text(expires_at)) <= now
            ]
            deleted = 0
            if stale:
                deleted = int(self._client.delete(*stale))  # type: ignore[arg-type]

            for tag_key in self._client.scan_iter(match=f"{self._tag_prefix}*", count=SCAN_COUNT):
                members = [_text(member) for member in self._client.smembers(tag_key)]
                if not members:
                    continue
                pipe = self._client.pipeline(transaction=False)
                for member in members:
                    pipe.exists(self.entry_key(member))
                missing = [member for member, exists in zip(members, pipe.execute()) if not exists]
                if missing:
                    self._client.srem(tag_key, *missing)
        except redis.RedisError as exc:
            raise CacheBackendUnavailable(f"redis cleanup failed: {exc}") from exc

        if deleted:
            logger.info("Cleaned up %d expired durable %s entries", deleted, self._cache_type)
        return deleted

    def stats(self) -> dict[str, Any]:
        """Get durable tier statistics.

        Returns:
            Dictionary with total_entries, expired_entries and total_hits
        """
        try:
            now = self._server_now()
            entry_keys = self._scan_entries()
            pipe = self._client.pipeline(transaction=False)
            for entry_key in entry_keys:
                pipe.hmget(entry_key, ["expires_at", "hit_count"])
            rows = pipe.execute() if entry_keys else []
        except redis.RedisError as exc:
            raise CacheBackendUnavailable(f"redis stats failed: {exc}") from exc

        expired = 0
        hits = 0
        for expires_at, hit_count in rows:
            if expires_at is None or float(_text(expires_at)) <= now:
                expired += 1
            hits += int(_text(hit_count)) if hit_count is not None else 0
        return {
            "cache_type": self._cache_type,
            "namespace": self._namespace,
            "total_entries": len(entry_keys),
            "expired_entries": expired,
            "total_hits": hits,
        }

    def health_check(self) -> bool:
        """Check if Redis is accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    def close(self) -> None:
        """Stop the hit bookkeeping executor."""
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client."""
        return self._client
