"""Fixed-window request counters keyed by (action name, identity)."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol

import redis.asyncio as redis_asyncio
from redis.exceptions import RedisError

from app.config import get_settings
from app.monitoring.metrics import rate_limit_rejections_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    count: int
    retry_after_ms: int


class WindowStore(Protocol):
    async def incr(self, key: str, window_ms: int) -> tuple[int, int]:
        """Increment ``key`` and return ``(count, remaining_window_ms)``.

        The window starts with the first increment and is not extended by later ones.
        """


class _InMemoryWindowStore:
    def __init__(self) -> None:
        self._windows: dict[str, tuple[int, float]] = {}

    async def incr(self, key: str, window_ms: int) -> tuple[int, int]:
        now = time.monotonic()
        count, expires_at = self._windows.get(key, (0, 0.0))
        if expires_at <= now:
            count, expires_at = 0, now + window_ms / 1000
        count += 1
        self._windows[key] = (count, expires_at)
        if len(self._windows) > 10_000:
            self._windows = {k: v for k, v in self._windows.items() if v[1] > now}
        return count, max(int((expires_at - now) * 1000), 0)

    def clear(self) -> None:
        self._windows.clear()


class _RedisWindowStore:
    def __init__(self, url: str) -> None:
        self._client = redis_asyncio.from_url(url, encoding="utf-8", decode_responses=True)

    async def incr(self, key: str, window_ms: int) -> tuple[int, int]:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.pttl(key)
            count, ttl = await pipe.execute()
        if int(ttl) < 0:
            await self._client.pexpire(key, window_ms)
            ttl = window_ms
        return int(count), int(ttl)


class RateLimiter:
    """Rejects an identity once it exceeds ``limit`` hits within a window."""

    def __init__(self, store: WindowStore, *, prefix: str = "rl") -> None:
        self._store = store
        self._prefix = prefix

    @property
    def store(self) -> WindowStore:
        return self._store

    async def hit(self, name: str, identity: str, *, window_ms: int, limit: int) -> RateLimitDecision:
        if limit <= 0:
            return RateLimitDecision(allowed=False, count=0, retry_after_ms=window_ms)
        key = f"{self._prefix}:{name}:{identity}"
        try:
            count, remaining_ms = await self._store.incr(key, window_ms)
        except (RedisError, ConnectionError, OSError):
            # Fail open: a broken limiter must not take the API down.
            logger.warning("Rate limit store unavailable", exc_info=True, extra={"limit_name": name})
            return RateLimitDecision(allowed=True, count=0, retry_after_ms=0)

        if count > limit:
            rate_limit_rejections_total.labels(name).inc()
            return RateLimitDecision(allowed=False, count=count, retry_after_ms=remaining_ms)
        return RateLimitDecision(allowed=True, count=count, retry_after_ms=0)


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    settings = get_settings()
    url = settings.rate_limit_redis_url or settings.realtime_redis_url
    if url:
        return RateLimiter(_RedisWindowStore(url))
    return RateLimiter(_InMemoryWindowStore())
