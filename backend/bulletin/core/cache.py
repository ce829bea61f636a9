"""
TTL cache services.

Caches are injected into the components that need them instead of living
in module globals, so tests can pass a cache with a fake clock.
Values must be JSON-serialisable so both backends behave the same.
"""

import json
import time
from typing import Any, Callable, Protocol

import redis.asyncio as redis
from loguru import logger

from bulletin.core.config import settings


class TTLCache(Protocol):
    """Time-bounded key/value cache."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: float) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_prefix(self, prefix: str) -> None: ...


class MemoryTTLCache:
    """
    Process-local cache.

    Usage:
        cache = MemoryTTLCache()
        await cache.set("moderation:settings", data, ttl=300)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        expires_at, value = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: Any, ttl: float) -> None:
        self._entries[key] = (self._clock() + ttl, value)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_prefix(self, prefix: str) -> None:
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


class RedisTTLCache:
    """
    Redis-backed cache shared between application instances.

    Entries are stored as JSON strings with SETEX so Redis expires them.
    """

    def __init__(
        self,
        url: str | None = None,
        namespace: str = "bulletin:",
        client: Any = None,
    ) -> None:
        self._url = url or str(settings.redis_url)
        self._namespace = namespace
        self._redis: redis.Redis | None = client

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.from_url(
            self._url,
            encoding="utf-8",
            decode_responses=True,
        )

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def get(self, key: str) -> Any | None:
        if not self._redis:
            await self.connect()

        raw = await self._redis.get(self._key(key))
        if raw is None:
            return None

        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Invalid cache entry for {key}")
            return None

    async def set(self, key: str, value: Any, ttl: float) -> None:
        if not self._redis:
            await self.connect()
        await self._redis.setex(self._key(key), max(1, int(ttl)), json.dumps(value))

    async def delete(self, key: str) -> None:
        if not self._redis:
            await self.connect()
        await self._redis.delete(self._key(key))

    async def delete_prefix(self, prefix: str) -> None:
        if not self._redis:
            await self.connect()
        keys = [key async for key in self._redis.scan_iter(match=f"{self._key(prefix)}*")]
        if keys:
            await self._redis.delete(*keys)


# Singleton instance
_cache: TTLCache | None = None


def get_cache() -> TTLCache:
    """Get or create the configured cache backend."""
    global _cache
    if _cache is None:
        if settings.cache_backend == "redis":
            _cache = RedisTTLCache()
        else:
            _cache = MemoryTTLCache()
        logger.info(f"Using {settings.cache_backend} cache backend")
    return _cache


async def close_cache() -> None:
    """Release the cache backend."""
    global _cache
    if isinstance(_cache, RedisTTLCache):
        await _cache.disconnect()
    _cache = None
