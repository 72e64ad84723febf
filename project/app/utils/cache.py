# app/utils/cache.py
# Read-through кеш на Redis. При любой ошибке хранилища данные читаются напрямую.

import json
from typing import Any, Awaitable, Callable

import redis.asyncio as redis

from app.config import settings

CACHE_TTL = {
    "product": 3600,        # 1 ч
    "products": 1800,       # 30 мин
    "categories": 3600,
    "search": 300,
    "admin_stats": 300,     # 5 мин
    "admin_products": 600,
    "analytics": 300,
    "recommendations": 600,
    "related": 1800,        # похожие и покупаемые вместе
}


class Cache:
    def __init__(self, url: str | None = None, log=None, client=None):
        """
        url    - redis://... ; пустая строка выключает кеш
        log    - Log приложения, необязательно
        client - готовый redis клиент (тесты)
        """
        self.log = log
        if client is not None:
            self.client = client
        else:
            url = settings.REDIS_URL if url is None else url
            self.client = redis.from_url(url, decode_responses=True) if url else None

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def _warn(self, message: str, data: dict | None = None):
        if self.log:
            await self.log.log_warning("cache", message, data)

    async def get_cached(self, key: str, fetcher: Callable[[], Awaitable[Any]], ttl: int = 3600) -> Any:
        """
        Возвращает JSON из кеша по key, иначе вызывает fetcher, сохраняет
        результат на ttl секунд и возвращает его.
        """
        if not self.enabled:
            return await fetcher()

        try:
            cached = await self.client.get(key)
            if cached is not None:
                return json.loads(cached)

            data = await fetcher()
            await self.client.setex(key, ttl, json.dumps(data, default=str))
            return data
        except (redis.RedisError, OSError, ValueError, TypeError) as e:
            await self._warn(f"cache error, direct fetch: {e}", {"key": key})
            return await fetcher()

    async def delete_cache(self, key: str):
        if not self.enabled:
            return
        try:
            await self.client.delete(key)
        except (redis.RedisError, OSError) as e:
            await self._warn(f"delete failed: {e}", {"key": key})

    async def invalidate_cache(self, pattern: str) -> int:
        """Удаляет все ключи по glob-шаблону, возвращает их число."""
        if not self.enabled:
            return 0
        try:
            keys = [key async for key in self.client.scan_iter(match=pattern)]
            if keys:
                await self.client.delete(*keys)
            return len(keys)
        except (redis.RedisError, OSError) as e:
            await self._warn(f"invalidate failed: {e}", {"pattern": pattern})
            return 0

    async def is_available(self) -> bool:
        if not self.enabled:
            return False
        try:
            return bool(await self.client.ping())
        except (redis.RedisError, OSError):
            return False

    # ────────────── Сброс кеша ──────────────
    async def invalidate_product(self, product_id: int):
        await self.delete_cache(f"product:{product_id}")
        await self.invalidate_cache("products:*")
        await self.invalidate_cache("search:*")
        await self.delete_cache("admin:products:list")

    async def invalidate_all_products(self):
        await self.invalidate_cache("product:*")
        await self.invalidate_cache("products:*")
        await self.invalidate_cache("search:*")
        await self.delete_cache("admin:products:list")
        await self.invalidate_recommendations()

    async def invalidate_orders(self):
        await self.invalidate_cache("admin:stats*")
        await self.invalidate_cache("analytics:*")

    async def invalidate_recommendations(self):
        await self.invalidate_cache("recommendations:*")
        await self.invalidate_cache("similar:*")
        await self.invalidate_cache("fbt:*")

    async def invalidate_categories(self):
        await self.delete_cache("categories:all")

    async def invalidate_all(self):
        await self.invalidate_all_products()
        await self.invalidate_orders()
        await self.invalidate_categories()

    async def close(self):
        if self.enabled:
            await self.client.aclose()
