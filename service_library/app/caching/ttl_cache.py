"""
TTL cache used in front of the upstream client.
"""

import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import redis.asyncio as redis

from shared.errors import CacheFailure
from shared.logging import get_logger
from shared.metrics import MetricsCollector

_MISS = object()


@dataclass
class CacheEntry:
    key: str
    value: Any
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now >= self.stored_at + self.ttl


class MemoryCacheStore:
    """In-process store with lazy expiry.

    Reads drop the expired entry they hit. Every ``sweep_interval`` writes the
    whole map is swept, so keys that are never read again still go away.
    The lock is only held for dictionary operations, never across an await.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, *, sweep_interval: int = 128):
        if sweep_interval < 1:
            raise ValueError("sweep_interval must be at least 1")
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweep_interval = sweep_interval
        self._writes_since_sweep = 0

    async def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return _MISS
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return _MISS
            return entry.value

    async def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            now = self._clock()
            self._writes_since_sweep += 1
            if self._writes_since_sweep >= self._sweep_interval:
                self._purge_expired(now)
            self._entries[key] = CacheEntry(key=key, value=value, stored_at=now, ttl=ttl)

    async def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            return self._purge_expired(self._clock())

    def _purge_expired(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        self._writes_since_sweep = 0
        return len(expired)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    async def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    async def close(self) -> None:
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisCacheStore:
    """Redis-backed store; values must be JSON serializable."""

    def __init__(self, redis_url: str, *, namespace: str = "library", client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.namespace = namespace
        self._redis: Optional[redis.Redis] = client

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, encoding="utf-8", decode_responses=True)
        return self._redis

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Any:
        try:
            client = await self._get_redis()
            raw = await client.get(self._key(key))
        except redis.RedisError as exc:
            raise CacheFailure(f"Redis get failed: {exc}", {"key": key}) from exc
        if raw is None:
            return _MISS
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise CacheFailure("Cached value is not valid JSON", {"key": key}) from exc

    async def set(self, key: str, value: Any, ttl: float) -> None:
        try:
            client = await self._get_redis()
            await client.setex(self._key(key), max(1, int(round(ttl))), json.dumps(value, ensure_ascii=False))
        except (redis.RedisError, TypeError) as exc:
            raise CacheFailure(f"Redis set failed: {exc}", {"key": key}) from exc

    async def delete(self, key: str) -> None:
        try:
            client = await self._get_redis()
            await client.delete(self._key(key))
        except redis.RedisError as exc:
            raise CacheFailure(f"Redis delete failed: {exc}", {"key": key}) from exc

    async def clear(self) -> None:
        try:
            client = await self._get_redis()
            keys = [key async for key in client.scan_iter(match=f"{self.namespace}:*")]
            if keys:
                await client.delete(*keys)
        except redis.RedisError as exc:
            raise CacheFailure(f"Redis clear failed: {exc}") from exc

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class TTLCache:
    """Memoizes fetches per cache key for a caller-chosen TTL.

    Failures from ``fetch_fn`` are never stored. Store failures are logged
    and the call falls through to a direct fetch.
    """

    def __init__(self, store=None, *, metrics: Optional[MetricsCollector] = None):
        self.store = store if store is not None else MemoryCacheStore()
        self.metrics = metrics
        self.logger = get_logger("library.cache")

    async def get_or_fetch(
        self,
        cache_key: str,
        ttl: float,
        fetch_fn: Callable[[], Awaitable[Any]],
        *,
        refresh: bool = False,
        cache_if: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        if not refresh:
            cached = await self._safe_get(cache_key)
            if cached is not _MISS:
                self._count("cache_hits_total", cache_key)
                self.logger.debug("Cache hit", key=cache_key)
                return cached
            self._count("cache_misses_total", cache_key)

        value = await fetch_fn()

        if cache_if is None or cache_if(value):
            await self._safe_set(cache_key, value, ttl)
        return value

    async def invalidate(self, cache_key: str) -> None:
        try:
            await self.store.delete(cache_key)
        except CacheFailure as exc:
            self._record_store_error("delete", cache_key, exc)

    async def clear(self) -> None:
        try:
            await self.store.clear()
        except CacheFailure as exc:
            self._record_store_error("clear", "*", exc)

    async def close(self) -> None:
        await self.store.close()

    async def _safe_get(self, cache_key: str) -> Any:
        try:
            return await self.store.get(cache_key)
        except CacheFailure as exc:
            self._record_store_error("get", cache_key, exc)
            return _MISS

    async def _safe_set(self, cache_key: str, value: Any, ttl: float) -> None:
        try:
            await self.store.set(cache_key, value, ttl)
            self.logger.debug("Cached value", key=cache_key, ttl=ttl)
        except CacheFailure as exc:
            self._record_store_error("set", cache_key, exc)

    def _record_store_error(self, operation: str, cache_key: str, exc: CacheFailure) -> None:
        self.logger.warning("Cache store failure, falling through", operation=operation, key=cache_key, error=str(exc))
        if self.metrics is not None:
            self.metrics.increment_counter("cache_errors_total", operation=operation)

    def _count(self, metric: str, cache_key: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter(metric, cache_type=cache_key.split(":", 1)[0])
