"""
Caching Service.

Explicit cache with a pluggable backing store: an in-process TTL dict for
single-worker deployments and tests, or Redis when several workers must see
the same invalidations. Values are JSON-serializable data, never ORM objects.
"""

import json
import logging
import time
from typing import Any, Dict, Optional, Protocol, Tuple

from buyback.app.core.config import settings
from buyback.app.core.redis_client import redis_client

logger = logging.getLogger(__name__)

KEY_PREFIX = "buyback:"


def route_cache_key(route_id: int) -> str:
    return f"route:{route_id}"


class CacheBackend(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...
    async def delete(self, key: str) -> None: ...
    async def clear(self) -> None: ...


class InMemoryCacheBackend:

    def __init__(self, clock=time.monotonic):
        self._store: Dict[str, Tuple[float, Any]] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._store[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._store[key] = (self._clock() + ttl_seconds, value)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


class RedisCacheBackend:
    """Stores JSON under a common prefix so clear() leaves other keys alone."""

    def __init__(self, client, prefix: str = KEY_PREFIX):
        self.client = client
        self.prefix = prefix

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.client.get(self.prefix + key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self.client.set(self.prefix + key, json.dumps(value), ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.client.delete(self.prefix + key)

    async def clear(self) -> None:
        async for key in self.client.scan_iter(match=f"{self.prefix}*"):
            await self.client.delete(key)


class CacheService:

    def __init__(self, backend: CacheBackend, default_ttl: Optional[int] = None):
        self.backend = backend
        self.default_ttl = default_ttl if default_ttl is not None else settings.route_cache_ttl_seconds

    async def get(self, key: str) -> Optional[Any]:
        return await self.backend.get(key)

    async def set(self, key: str, data: Any, ttl_seconds: Optional[int] = None):
        await self.backend.set(key, data, ttl_seconds or self.default_ttl)

    async def invalidate(self, *keys: str):
        for key in keys:
            await self.backend.delete(key)

    async def clear(self):
        await self.backend.clear()
        logger.info("Cache cleared")


def build_cache_backend() -> CacheBackend:
    if settings.cache_backend == "redis":
        return RedisCacheBackend(redis_client)
    return InMemoryCacheBackend()


# Process-wide cache
cache_service = CacheService(build_cache_backend())
