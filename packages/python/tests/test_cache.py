import fnmatch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from marquee_cache.cache_store import (
    InMemoryCacheStore,
    RedisCacheStore,
    invalidate_user,
    make_cache_store,
    profile_key,
)
from marquee_cache.redis_infra import make_redis_client


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FakeRedis:
    """Just enough of redis.asyncio.Redis (decode_responses=True) for the cache store."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.ttls[key] = ex

    async def delete(self, *keys):
        return sum(1 for k in keys if self.data.pop(k, None) is not None)

    async def scan_iter(self, match, count=None):
        for k in list(self.data):
            if fnmatch.fnmatchcase(k, match):
                yield k

    async def aclose(self):
        pass


class DownRedis(FakeRedis):
    async def get(self, key):
        raise RedisConnectionError("connection refused")

    async def set(self, key, value, ex=None):
        raise RedisConnectionError("connection refused")

    async def delete(self, *keys):
        raise RedisConnectionError("connection refused")


@pytest.mark.anyio
async def test_memory_cache_expires_entries():
    clock = FakeClock()
    cache = InMemoryCacheStore(clock=clock)
    await cache.set("k", {"a": [1, 2]}, 10)
    assert await cache.get("k") == {"a": [1, 2]}

    clock.now += 10
    assert await cache.get("k") is None
    assert cache.keys() == []


@pytest.mark.anyio
async def test_memory_cache_returns_copies():
    cache = InMemoryCacheStore()
    value = {"ids": ["a"]}
    await cache.set("k", value, 60)
    value["ids"].append("b")
    got = await cache.get("k")
    got["ids"].append("c")
    assert await cache.get("k") == {"ids": ["a"]}


@pytest.mark.anyio
async def test_delete_prefix_and_invalidate_user():
    cache = InMemoryCacheStore()
    for key in [profile_key("u"), "recommendations:u:1", "discover:u:2", "recommendations:u2:1"]:
        await cache.set(key, 1, 60)

    await invalidate_user(cache, "u")
    assert cache.keys() == ["recommendations:u2:1"]
    assert await cache.delete_prefix("recommendations:") == 1


@pytest.mark.anyio
async def test_redis_store_namespaces_and_serializes():
    client = FakeRedis()
    cache = RedisCacheStore(client=client, namespace="t:")
    await cache.set("recommendations:u:1", [{"id": "a"}], 30)
    await cache.set("recommendations:u:2", [], 30)
    await cache.set("user_profile:u", {"n": 1}, 30)

    assert client.ttls["t:recommendations:u:1"] == 30
    assert await cache.get("recommendations:u:1") == [{"id": "a"}]
    assert await cache.get("missing") is None

    await invalidate_user(cache, "u")
    assert client.data == {}


@pytest.mark.anyio
async def test_redis_store_drops_corrupt_entries():
    client = FakeRedis()
    client.data["t:k"] = "{not json"
    cache = RedisCacheStore(client=client, namespace="t:")
    assert await cache.get("k") is None
    assert "t:k" not in client.data


@pytest.mark.anyio
async def test_redis_outage_reads_as_miss_but_deletes_raise():
    cache = RedisCacheStore(client=DownRedis())
    assert await cache.get("k") is None
    await cache.set("k", 1, 10)
    with pytest.raises(RedisConnectionError):
        await cache.delete("k")


def test_make_cache_store_requires_url_for_redis():
    assert isinstance(make_cache_store(use_redis=False, redis_url=None), InMemoryCacheStore)
    with pytest.raises(RuntimeError):
        make_cache_store(use_redis=True, redis_url=None)


def test_redis_client_retries_dropped_connections():
    client = make_redis_client("redis://localhost:6379/0")
    retry_on = client.connection_pool.connection_kwargs["retry_on_error"]
    for err in (RedisConnectionError, ConnectionResetError, OSError, RuntimeError):
        assert err in retry_on
    assert client.connection_pool.connection_kwargs["decode_responses"] is True
