"""
Read-through кеш: попадания, промахи, сброс и чтение напрямую,
когда Redis недоступен.
"""
import fnmatch
import json
from unittest.mock import AsyncMock

import redis

from app.utils.cache import Cache


class FakeRedis:
    """Замена в памяти для вызовов redis.asyncio, которые делает кеш."""

    def __init__(self):
        self.store = {}
        self.ttl = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttl[key] = ttl

    async def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)

    async def scan_iter(self, match="*"):
        for key in list(self.store):
            if fnmatch.fnmatch(key, match):
                yield key

    async def ping(self):
        return True

    async def aclose(self):
        pass


async def test_miss_calls_fetcher_and_stores():
    client = FakeRedis()
    cache = Cache(client=client)
    fetcher = AsyncMock(return_value={"products": [1, 2]})

    assert await cache.get_cached("products:all", fetcher, ttl=60) == {"products": [1, 2]}
    assert json.loads(client.store["products:all"]) == {"products": [1, 2]}
    assert client.ttl["products:all"] == 60


async def test_hit_skips_fetcher():
    client = FakeRedis()
    client.store["product:1"] = json.dumps({"id": 1})
    cache = Cache(client=client)
    fetcher = AsyncMock()

    assert await cache.get_cached("product:1", fetcher) == {"id": 1}
    fetcher.assert_not_awaited()


async def test_redis_error_falls_back_to_fetcher():
    client = AsyncMock()
    client.get.side_effect = redis.ConnectionError("connection refused")
    log = AsyncMock()
    cache = Cache(client=client, log=log)
    fetcher = AsyncMock(return_value=[{"id": 1}])

    assert await cache.get_cached("products:all", fetcher) == [{"id": 1}]
    fetcher.assert_awaited_once()
    log.log_warning.assert_awaited()


async def test_write_error_still_returns_data():
    client = AsyncMock()
    client.get.return_value = None
    client.setex.side_effect = redis.TimeoutError("timeout")
    cache = Cache(client=client)

    assert await cache.get_cached("search:oud", AsyncMock(return_value=["oud"])) == ["oud"]


async def test_disabled_cache_calls_fetcher():
    cache = Cache(url="")
    fetcher = AsyncMock(return_value=42)

    assert cache.enabled is False
    assert await cache.get_cached("anything", fetcher) == 42
    assert await cache.is_available() is False
    assert await cache.invalidate_cache("*") == 0


async def test_invalidate_product_clears_lists_and_searches():
    client = FakeRedis()
    for key in ("product:1", "product:2", "products:all", "products:Niche", "search:oud", "categories:all",
                "admin:products:list"):
        client.store[key] = "[]"
    cache = Cache(client=client)

    await cache.invalidate_product(1)

    assert sorted(client.store) == ["categories:all", "product:2"]


async def test_invalidate_orders_clears_stats():
    client = FakeRedis()
    for key in ("admin:stats:month", "admin:stats:day", "analytics:week", "product:1"):
        client.store[key] = "{}"
    cache = Cache(client=client)

    await cache.invalidate_orders()

    assert list(client.store) == ["product:1"]


async def test_ping_failure_means_unavailable():
    client = AsyncMock()
    client.ping.side_effect = redis.ConnectionError("down")

    assert await Cache(client=client).is_available() is False
