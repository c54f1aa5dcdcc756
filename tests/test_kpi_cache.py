"""
tests/test_kpi_cache.py

Pytest unit tests for KpiCache.

Coverage
--------
- TTL tiers per period tag and overrides
- Key rendering; keys differing in any component never collide
- Hit / miss / TTL expiry with an injected clock
- LRU eviction at the size ceiling
- Concurrent misses share one computation
- Failed computations are not stored and reach every waiter
- Invalidation by key, pattern, tenant, service; clear
- Per-service metrics and stats
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import date, timedelta

import pytest

from app.services.kpi_cache import CacheKey, KpiCache, ttl_for


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _key(**overrides) -> CacheKey:
    base = CacheKey(
        service_prefix="bk",
        tenant_id=7,
        kpi="bookings_ticket_average",
        period="LAST_7_D",
        start_date=date(2024, 3, 8),
        end_date=date(2024, 3, 14),
    )
    return replace(base, **overrides)


def _compute(value, calls: list):
    async def compute():
        calls.append(value)
        return value

    return compute


# ---------------------------------------------------------------------------
# TTL and keys
# ---------------------------------------------------------------------------


class TestTtlAndKeys:
    @pytest.mark.parametrize(
        ("period", "expected"),
        [
            ("LAST_7_D", timedelta(minutes=30)),
            ("THIS_MONTH", timedelta(minutes=30)),
            ("LAST_MONTH", timedelta(hours=1)),
            ("YEAR_TO_DATE", timedelta(hours=2)),
            ("CUSTOM", timedelta(minutes=10)),
            ("SOMETHING_ELSE", timedelta(minutes=10)),
        ],
    )
    def test_ttl_tiers(self, period: str, expected: timedelta) -> None:
        assert ttl_for(period) == expected

    def test_ttl_override(self) -> None:
        assert ttl_for("last_7_d", {"LAST_7_D": 60}) == timedelta(seconds=60)

    def test_render(self) -> None:
        assert _key().render() == "bk:7:bookings_ticket_average:LAST_7_D:2024-03-08:2024-03-14:total"
        assert _key(dimension="channel_type").render().endswith(":channel_type")

    def test_keys_are_isolated(self) -> None:
        cache = KpiCache(clock=FakeClock())
        calls: list = []

        async def scenario() -> None:
            await cache.get_or_compute(_key(), _compute("a", calls))
            await cache.get_or_compute(_key(tenant_id=8), _compute("b", calls))
            await cache.get_or_compute(_key(dimension="day"), _compute("c", calls))
            await cache.get_or_compute(_key(end_date=date(2024, 3, 15)), _compute("d", calls))

        asyncio.run(scenario())
        assert calls == ["a", "b", "c", "d"]
        assert len(cache) == 4


# ---------------------------------------------------------------------------
# Read-through behaviour
# ---------------------------------------------------------------------------


class TestReadThrough:
    def test_hit_skips_compute(self) -> None:
        cache = KpiCache(clock=FakeClock())
        calls: list = []

        async def scenario():
            first = await cache.get_or_compute(_key(), _compute(1, calls))
            second = await cache.get_or_compute(_key(), _compute(2, calls))
            return first, second

        first, second = asyncio.run(scenario())
        assert (first.value, first.from_cache) == (1, False)
        assert first.calculation_ms is not None
        assert (second.value, second.from_cache) == (1, True)
        assert calls == [1]

    def test_entry_expires_after_ttl(self) -> None:
        clock = FakeClock()
        cache = KpiCache(clock=clock)
        calls: list = []

        asyncio.run(cache.get_or_compute(_key(), _compute(1, calls)))
        clock.advance(30 * 60 - 1)
        assert asyncio.run(cache.get(_key())) == 1
        clock.advance(1)
        assert asyncio.run(cache.get(_key())) is None

        result = asyncio.run(cache.get_or_compute(_key(), _compute(2, calls)))
        assert result.value == 2
        assert calls == [1, 2]

    def test_lru_eviction(self) -> None:
        cache = KpiCache(max_entries=2, clock=FakeClock())

        async def scenario() -> None:
            await cache.set(_key(tenant_id=1), "one")
            await cache.set(_key(tenant_id=2), "two")
            await cache.get(_key(tenant_id=1))
            await cache.set(_key(tenant_id=3), "three")

        asyncio.run(scenario())
        assert asyncio.run(cache.get(_key(tenant_id=2))) is None
        assert asyncio.run(cache.get(_key(tenant_id=1))) == "one"
        assert cache.stats()["evictions"] == 1

    def test_concurrent_misses_compute_once(self) -> None:
        cache = KpiCache(clock=FakeClock())
        calls: list = []

        async def slow():
            calls.append("x")
            await asyncio.sleep(0.02)
            return "value"

        async def scenario():
            return await asyncio.gather(*(cache.get_or_compute(_key(), slow) for _ in range(5)))

        results = asyncio.run(scenario())
        assert calls == ["x"]
        assert [r.value for r in results] == ["value"] * 5
        assert sum(not r.from_cache for r in results) == 1

    def test_failure_is_not_cached_and_reaches_waiters(self) -> None:
        cache = KpiCache(clock=FakeClock())

        async def failing():
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        async def scenario():
            return await asyncio.gather(
                cache.get_or_compute(_key(), failing),
                cache.get_or_compute(_key(), failing),
                return_exceptions=True,
            )

        results = asyncio.run(scenario())
        assert all(isinstance(r, RuntimeError) for r in results)
        assert len(cache) == 0

        calls: list = []
        retry = asyncio.run(cache.get_or_compute(_key(), _compute("ok", calls)))
        assert retry.value == "ok"
        assert calls == ["ok"]

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            KpiCache(max_entries=0)


# ---------------------------------------------------------------------------
# Invalidation
# ---------------------------------------------------------------------------


class TestInvalidation:
    def _filled(self) -> KpiCache:
        cache = KpiCache(clock=FakeClock())

        async def fill() -> None:
            await cache.set(_key(), 1)
            await cache.set(_key(tenant_id=8), 2)
            await cache.set(_key(service_prefix="rt", kpi="revenue"), 3)
            await cache.set(_key(service_prefix="gv", kpi="cleanings", tenant_id=8), 4)

        asyncio.run(fill())
        return cache

    def test_invalidate_key(self) -> None:
        cache = self._filled()
        assert asyncio.run(cache.invalidate(_key())) is True
        assert asyncio.run(cache.invalidate(_key())) is False
        assert len(cache) == 3

    def test_invalidate_pattern(self) -> None:
        cache = self._filled()
        assert asyncio.run(cache.invalidate_pattern("bk:*")) == 2
        assert len(cache) == 2

    def test_invalidate_tenant(self) -> None:
        cache = self._filled()
        assert asyncio.run(cache.invalidate_tenant(8)) == 2
        assert asyncio.run(cache.get(_key())) == 1

    def test_invalidate_tenant_for_one_service(self) -> None:
        cache = self._filled()
        assert asyncio.run(cache.invalidate_tenant(7, "rt")) == 1
        assert asyncio.run(cache.get(_key())) == 1

    def test_invalidate_service(self) -> None:
        cache = self._filled()
        assert asyncio.run(cache.invalidate_service("gv")) == 1
        assert len(cache) == 3

    def test_sweep_and_clear(self) -> None:
        clock = FakeClock()
        cache = KpiCache(clock=clock)

        async def fill() -> None:
            await cache.set(_key(), 1)
            await cache.set(_key(period="YEAR_TO_DATE"), 2)

        asyncio.run(fill())
        clock.advance(60 * 60)
        assert asyncio.run(cache.sweep()) == 1
        assert asyncio.run(cache.clear()) == 1
        assert len(cache) == 0


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class TestMetrics:
    def test_per_service_hit_ratio(self) -> None:
        cache = KpiCache(clock=FakeClock())
        calls: list = []

        async def scenario() -> None:
            await cache.get_or_compute(_key(), _compute(1, calls))
            await cache.get_or_compute(_key(), _compute(1, calls))
            await cache.get_or_compute(_key(), _compute(1, calls))
            await cache.get_or_compute(_key(service_prefix="rt", kpi="revenue"), _compute(2, calls))

        asyncio.run(scenario())
        metrics = cache.metrics()
        assert metrics["hits"] == 2
        assert metrics["misses"] == 2
        assert metrics["hit_ratio"] == 0.5
        assert metrics["services"]["bk"]["hit_ratio"] == round(2 / 3, 4)
        assert metrics["services"]["rt"]["hits"] == 0

    def test_stats_lists_entries(self) -> None:
        clock = FakeClock()
        cache = KpiCache(clock=clock)
        asyncio.run(cache.set(_key(), 1))
        clock.advance(60)

        stats = cache.stats()
        assert stats["size"] == 1
        assert stats["entries"][0]["key"] == _key().render()
        assert stats["entries"][0]["age_seconds"] == 60.0
        assert stats["entries"][0]["expires_in_seconds"] == 30 * 60 - 60.0
