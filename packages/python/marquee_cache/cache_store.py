from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Dict, Protocol, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from marquee_core.config import (
    CACHE_DISCOVER_NS,
    CACHE_PROFILE_NS,
    CACHE_RECOMMENDATIONS_NS,
)

from .redis_infra import make_redis_client

log = logging.getLogger(__name__)


class CacheStore(Protocol):
    """JSON-value cache with per-key TTL."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_sec: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_prefix(self, prefix: str) -> int: ...


def profile_key(user_id: str) -> str:
    return f"{CACHE_PROFILE_NS}:{user_id}"


def user_prefixes(user_id: str) -> list[str]:
    """Every key family that holds data derived from a user's profile."""
    return [
        f"{CACHE_RECOMMENDATIONS_NS}:{user_id}:",
        f"{CACHE_DISCOVER_NS}:{user_id}:",
    ]


async def invalidate_user(cache: CacheStore, user_id: str) -> None:
    await cache.delete(profile_key(user_id))
    for prefix in user_prefixes(user_id):
        await cache.delete_prefix(prefix)


class InMemoryCacheStore:
    """Process-local TTL dict. Values are round-tripped through JSON like Redis."""

    def __init__(self, *, clock=time.monotonic) -> None:
        self._lock = threading.Lock()
        self._data: Dict[str, Tuple[float, str]] = {}
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, raw = entry
            if expires_at <= self._clock():
                del self._data[key]
                return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_sec: int) -> None:
        raw = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        with self._lock:
            self._data[key] = (self._clock() + int(ttl_sec), raw)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._data if k.startswith(prefix)]
            for k in doomed:
                del self._data[k]
        return len(doomed)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data.keys())


class RedisCacheStore:
    """
    Redis-backed cache.
    Key:   {namespace}{key}
    Value: JSON string.

    Read and write failures degrade to a miss; deletes propagate so a failed
    invalidation is never silent.
    """

    def __init__(self, *, client: Redis, namespace: str = "marquee:") -> None:
        # client must be created with decode_responses=True
        self._r = client
        self._ns = namespace

    def _k(self, key: str) -> str:
        return f"{self._ns}{key}"

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._r.get(self._k(key))
        except RedisError as e:
            log.warning("cache get %s failed: %s", key, e)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            log.warning("cache entry %s is not valid JSON, dropping", key)
            await self.delete(key)
            return None

    async def set(self, key: str, value: Any, ttl_sec: int) -> None:
        raw = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        try:
            await self._r.set(self._k(key), raw, ex=int(ttl_sec))
        except RedisError as e:
            log.warning("cache set %s failed: %s", key, e)

    async def delete(self, key: str) -> None:
        await self._r.delete(self._k(key))

    async def delete_prefix(self, prefix: str) -> int:
        n = 0
        batch: list[str] = []
        async for k in self._r.scan_iter(match=f"{self._k(prefix)}*", count=500):
            batch.append(k)
            if len(batch) >= 500:
                n += await self._r.delete(*batch)
                batch = []
        if batch:
            n += await self._r.delete(*batch)
        return n

    async def aclose(self) -> None:
        await self._r.aclose()


def make_cache_store(
    *,
    use_redis: bool,
    redis_url: str | None,
    namespace: str = "marquee:",
) -> CacheStore:
    if use_redis:
        if not redis_url:
            raise RuntimeError("REDIS_URL is required when USE_REDIS_CACHE is enabled")
        return RedisCacheStore(client=make_redis_client(redis_url), namespace=namespace)
    log.info("Using in-memory cache store")
    return InMemoryCacheStore()
