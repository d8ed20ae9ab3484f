"""Per-date admission locks.

Bookings for the same calendar day are serialized across the
"revalidate capacity -> persist -> commit" step only. The lock is never held
while notifications are delivered.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import date
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import LockError

from src.core.config import settings
from src.core.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)


class AdmissionLock(Protocol):
    def hold(self, day: date) -> AbstractAsyncContextManager[None]: ...


class InProcessAdmissionLock:
    """One ``asyncio.Lock`` per date; correct for a single worker process."""

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._locks: dict[date, asyncio.Lock] = {}

    def _lock_for(self, day: date) -> asyncio.Lock:
        lock = self._locks.get(day)
        if lock is None:
            lock = self._locks[day] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, day: date) -> AsyncIterator[None]:
        lock = self._lock_for(day)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.warning("Admission lock for %s not acquired within %.1fs", day, self.timeout_seconds)
            raise ConcurrencyConflictError() from exc
        try:
            yield
        finally:
            lock.release()


class RedisAdmissionLock:
    """Redis-backed lock so several API instances serialize admissions together."""

    def __init__(
        self,
        client: redis.Redis,
        timeout_seconds: float = 5.0,
        lease_seconds: float = 30.0,
        prefix: str = "booking:admission",
    ):
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.lease_seconds = lease_seconds
        self.prefix = prefix

    @asynccontextmanager
    async def hold(self, day: date) -> AsyncIterator[None]:
        lock = self.client.lock(
            f"{self.prefix}:{day.isoformat()}",
            timeout=self.lease_seconds,
            blocking_timeout=self.timeout_seconds,
        )
        if not await lock.acquire():
            logger.warning("Redis admission lock for %s not acquired within %.1fs", day, self.timeout_seconds)
            raise ConcurrencyConflictError()
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Lease expired while held; another worker may already own it.
                logger.error("Admission lock for %s expired before release", day)


_shared_lock: AdmissionLock | None = None


def get_admission_lock() -> AdmissionLock:
    """Process-wide lock used by the API; Redis-backed when REDIS_URL is set."""
    global _shared_lock
    if _shared_lock is None:
        if settings.redis_url:
            _shared_lock = RedisAdmissionLock(
                redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True),
                timeout_seconds=settings.admission_lock_timeout_seconds,
            )
        else:
            _shared_lock = InProcessAdmissionLock(settings.admission_lock_timeout_seconds)
    return _shared_lock
