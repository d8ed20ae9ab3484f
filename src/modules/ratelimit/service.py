"""Fixed-window rate limiting behind a small injectable interface."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    async def check(self, key: str) -> bool:
        """Count one hit against ``key``; False once the window's limit is exceeded."""
        ...


class RedisRateLimiter:
    """``INCR`` + ``EXPIRE`` per window, shared by every API instance."""

    def __init__(self, client: redis.Redis, limit: int, window_seconds: int, prefix: str = "ratelimit"):
        self.client = client
        self.limit = limit
        self.window_seconds = window_seconds
        self.prefix = prefix

    async def check(self, key: str) -> bool:
        window = int(time.time()) // self.window_seconds
        redis_key = f"{self.prefix}:{key}:{window}"
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.incr(redis_key)
                pipe.expire(redis_key, self.window_seconds)
                count, _ = await pipe.execute()
        except RedisError:
            # Fails open while Redis is unreachable.
            logger.exception("Rate limiter unavailable, allowing request for %s", key)
            return True
        allowed = int(count) <= self.limit
        if not allowed:
            logger.warning("Rate limit exceeded for %s (%s/%s in %ss)", key, count, self.limit, self.window_seconds)
        return allowed


class InMemoryRateLimiter:
    """Single-process limiter, used in tests and when Redis is not configured."""

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits: dict[str, tuple[float, int]] = {}
        self._lock = asyncio.Lock()

    async def check(self, key: str) -> bool:
        async with self._lock:
            now = self.clock()
            started, count = self._hits.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            count += 1
            self._hits[key] = (started, count)
            # Drop expired windows so the map stays bounded.
            for stale in [k for k, (begin, _) in self._hits.items() if now - begin >= self.window_seconds]:
                del self._hits[stale]
            return count <= self.limit
