# app/utils/rate_limit.py
# Rate limiting с фиксированным окном в памяти процесса.

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request

from app.config import settings


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_seconds: int
    prefix: str


RATE_LIMITS = {
    "checkout": RateLimitConfig(5, 60, "checkout"),
    "webhook": RateLimitConfig(100, 60, "webhook"),
    "api": RateLimitConfig(30, 60, "api"),
    "auth": RateLimitConfig(5, 15 * 60, "auth"),
    "search": RateLimitConfig(20, 60, "search"),
    "admin": RateLimitConfig(60, 60, "admin"),
}


class RateLimiter:
    """
    Считает запросы по (prefix, identifier) внутри фиксированного окна.
    Записи хранятся в LRU-словаре не больше max_entries.
    """

    def __init__(self, max_entries: int = 10000, clock=time.time):
        self.max_entries = max_entries
        self.clock = clock
        self.entries: "OrderedDict[str, dict]" = OrderedDict()

    def check(self, identifier: str, config: RateLimitConfig) -> dict:
        now = self.clock()
        key = f"{config.prefix}:{identifier}"
        entry = self.entries.get(key)

        if entry is None or now >= entry["reset_time"]:
            entry = {"count": 1, "reset_time": now + config.window_seconds}
            self._store(key, entry)
            return {
                "allowed": True,
                "remaining": config.max_requests - 1,
                "reset_time": entry["reset_time"],
                "retry_after": None,
            }

        self.entries.move_to_end(key)

        if entry["count"] >= config.max_requests:
            return {
                "allowed": False,
                "remaining": 0,
                "reset_time": entry["reset_time"],
                "retry_after": max(1, int(entry["reset_time"] - now + 0.999)),
            }

        entry["count"] += 1
        return {
            "allowed": True,
            "remaining": config.max_requests - entry["count"],
            "reset_time": entry["reset_time"],
            "retry_after": None,
        }

    def reset(self, identifier: Optional[str] = None, config: Optional[RateLimitConfig] = None):
        if identifier is None or config is None:
            self.entries.clear()
        else:
            self.entries.pop(f"{config.prefix}:{identifier}", None)

    def _store(self, key: str, entry: dict):
        self.entries[key] = entry
        self.entries.move_to_end(key)
        while len(self.entries) > self.max_entries:
            self.entries.popitem(last=False)


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def enforce_rate_limit(request: Request, identifier: str, name: str):
    """При превышении лимита 429 с заголовками Retry-After / X-RateLimit-*."""
    if not settings.rate_limit_enabled:
        return
    config = RATE_LIMITS[name]
    result = request.app.state.rate_limiter.check(identifier, config)
    if result["allowed"]:
        return

    await request.app.state.log.log_warning(
        "rate_limit", "Rate limit exceeded", {"limit": name, "identifier": identifier}
    )
    raise HTTPException(
        status_code=429,
        detail={
            "error": "Too many requests. Please try again later.",
            "retry_after": result["retry_after"],
        },
        headers={
            "Retry-After": str(result["retry_after"]),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(result["reset_time"])),
        },
    )


def rate_limited(name: str):
    """Зависимость роута с лимитом по IP клиента."""
    async def dependency(request: Request):
        await enforce_rate_limit(request, get_client_ip(request), name)
    return dependency
