import asyncio
from datetime import date

import pytest
from redis.exceptions import LockNotOwnedError

from src.core.exceptions import ConcurrencyConflictError
from src.modules.schedule.locks import InProcessAdmissionLock, RedisAdmissionLock

DAY = date(2025, 10, 22)


class FakeRedisLock:
    def __init__(self, acquired=True, expired=False):
        self.acquired = acquired
        self.expired = expired
        self.released = False

    async def acquire(self):
        return self.acquired

    async def release(self):
        if self.expired:
            raise LockNotOwnedError("Cannot release a lock that's no longer owned")
        self.released = True


class FakeRedis:
    def __init__(self, lock):
        self._lock = lock
        self.calls = []

    def lock(self, name, timeout=None, blocking_timeout=None):
        self.calls.append((name, timeout, blocking_timeout))
        return self._lock


@pytest.mark.asyncio
async def test_same_day_admissions_are_serialized():
    lock = InProcessAdmissionLock(timeout_seconds=1)
    order = []

    async def admit(name):
        async with lock.hold(DAY):
            order.append(f"{name}:in")
            await asyncio.sleep(0.01)
            order.append(f"{name}:out")

    await asyncio.gather(admit("a"), admit("b"))
    assert order in (["a:in", "a:out", "b:in", "b:out"], ["b:in", "b:out", "a:in", "a:out"])


@pytest.mark.asyncio
async def test_different_days_do_not_block_each_other():
    lock = InProcessAdmissionLock(timeout_seconds=0.05)
    async with lock.hold(DAY):
        async with lock.hold(date(2025, 10, 23)):
            pass


@pytest.mark.asyncio
async def test_lock_timeout_raises_conflict():
    lock = InProcessAdmissionLock(timeout_seconds=0.05)
    async with lock.hold(DAY):
        with pytest.raises(ConcurrencyConflictError):
            async with lock.hold(DAY):
                pass
    async with lock.hold(DAY):
        pass


@pytest.mark.asyncio
async def test_redis_lock_uses_one_key_per_day():
    redis_lock = FakeRedisLock()
    client = FakeRedis(redis_lock)
    lock = RedisAdmissionLock(client, timeout_seconds=2, lease_seconds=10)

    async with lock.hold(DAY):
        pass

    assert client.calls == [("booking:admission:2025-10-22", 10, 2)]
    assert redis_lock.released


@pytest.mark.asyncio
async def test_redis_lock_not_acquired_raises_conflict():
    lock = RedisAdmissionLock(FakeRedis(FakeRedisLock(acquired=False)))
    with pytest.raises(ConcurrencyConflictError):
        async with lock.hold(DAY):
            pass


@pytest.mark.asyncio
async def test_redis_lock_expiry_on_release_is_logged(caplog):
    lock = RedisAdmissionLock(FakeRedis(FakeRedisLock(expired=True)))
    async with lock.hold(DAY):
        pass
    assert "expired before release" in caplog.text
