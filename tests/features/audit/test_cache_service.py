from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from app.features.audit.models.audit import AuditCache
from app.features.audit.schemas.audit import AuditMode
from app.features.audit.services.cache import CacheService


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(session_factory, clock):
    return CacheService(session_factory, clock=clock)


async def count_rows(session_factory) -> int:
    async with session_factory() as db:
        return await db.scalar(select(func.count()).select_from(AuditCache))


@pytest.mark.asyncio
async def test_round_trip_before_ttl(cache, clock, sample_result):
    await cache.set("example.com", AuditMode.fast, sample_result, ttl=timedelta(hours=1))
    clock.advance(minutes=59)

    cached = await cache.get("example.com", AuditMode.fast)

    assert cached == sample_result


@pytest.mark.asyncio
async def test_miss_for_other_mode(cache, sample_result):
    await cache.set("example.com", AuditMode.fast, sample_result)
    assert await cache.get("example.com", AuditMode.complete) is None


@pytest.mark.asyncio
async def test_key_is_normalized(cache, sample_result):
    await cache.set("https://Example.com/", "fast", sample_result)
    assert await cache.get("example.com", AuditMode.fast) == sample_result


@pytest.mark.asyncio
async def test_expired_entry_is_never_returned(cache, clock, session_factory, sample_result):
    await cache.set("example.com", AuditMode.fast, sample_result, ttl=timedelta(hours=1))
    clock.advance(hours=1)

    assert await cache.get("example.com", AuditMode.fast) is None
    assert await count_rows(session_factory) == 0


@pytest.mark.asyncio
async def test_set_overwrites_and_refreshes_expiry(cache, clock, result_factory):
    await cache.set("example.com", AuditMode.fast, result_factory(performance=10), ttl=timedelta(hours=1))
    clock.advance(minutes=50)
    await cache.set("example.com", AuditMode.fast, result_factory(performance=99), ttl=timedelta(hours=1))
    clock.advance(minutes=50)

    cached = await cache.get("example.com", AuditMode.fast)
    assert cached.lighthouse.performance == 99


@pytest.mark.asyncio
async def test_set_rejects_non_positive_ttl(cache, sample_result):
    with pytest.raises(ValueError):
        await cache.set("example.com", AuditMode.fast, sample_result, ttl=timedelta(0))


@pytest.mark.asyncio
async def test_invalidate(cache, sample_result, result_factory):
    await cache.set("example.com", AuditMode.fast, sample_result)
    await cache.set("example.com", AuditMode.complete, result_factory(mode=AuditMode.complete))
    await cache.set("other.org", AuditMode.fast, sample_result)

    assert await cache.invalidate("example.com", AuditMode.fast) == 1
    assert await cache.get("example.com", AuditMode.complete) is not None
    assert await cache.invalidate("example.com") == 1
    assert await cache.get("other.org", AuditMode.fast) is not None


@pytest.mark.asyncio
async def test_clean_expired_and_statistics(cache, clock, sample_result):
    await cache.set("old.com", AuditMode.fast, sample_result, ttl=timedelta(minutes=5))
    await cache.set("new.com", AuditMode.fast, sample_result, ttl=timedelta(hours=2))
    await cache.set("new.com", AuditMode.complete, sample_result, ttl=timedelta(hours=2))
    clock.advance(minutes=10)

    stats = await cache.get_statistics()
    assert stats == {"total": 3, "active": 2, "expired": 1, "byMode": {"fast": 2, "complete": 1}}

    assert await cache.clean_expired() == 1
    assert (await cache.get_statistics())["total"] == 2

    assert await cache.most_cached_domains(5) == [{"domain": "new.com", "count": 2}]


@pytest.mark.asyncio
async def test_clear_all(cache, sample_result):
    await cache.set("a.com", AuditMode.fast, sample_result)
    await cache.set("b.com", AuditMode.fast, sample_result)
    assert await cache.clear_all() == 2
    assert await cache.get("a.com", AuditMode.fast) is None


@pytest.mark.asyncio
async def test_storage_errors_degrade_to_miss(clock, sample_result):
    def broken_factory():
        raise RuntimeError("database is down")

    cache = CacheService(broken_factory, clock=clock)

    assert await cache.get("example.com", AuditMode.fast) is None
    await cache.set("example.com", AuditMode.fast, sample_result)
    assert await cache.get_statistics() == {"total": 0, "active": 0, "expired": 0, "byMode": {}}
