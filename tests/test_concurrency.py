"""
tests/test_concurrency.py

Pytest unit tests for the bounded-concurrency helpers.

Coverage
--------
- run_limited: bound respected, input order kept
- A failing task does not cancel its siblings
- return_exceptions=True returns every outcome in place
- Named pools shared across call sites
- active/pending counters, clear_pool / clear_all
- run_batch over items
"""

from __future__ import annotations

import asyncio

import pytest

from app.services.concurrency import ConcurrencyLimiter, LimiterPool, run_limited


class _TaskTracker:
    def __init__(self) -> None:
        self.in_flight = 0
        self.peak = 0
        self.finished: list[int] = []

    def task(self, value: int, delay: float = 0.01, fail: bool = False):
        async def run() -> int:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
            try:
                await asyncio.sleep(delay)
                if fail:
                    raise RuntimeError(f"task {value} failed")
                self.finished.append(value)
                return value
            finally:
                self.in_flight -= 1

        return run


class TestRunLimited:
    def test_bound_and_order(self) -> None:
        tracker = _TaskTracker()
        # Later tasks finish first; results still follow input order.
        tasks = [tracker.task(i, delay=0.05 - i * 0.005) for i in range(8)]
        results = asyncio.run(run_limited(tasks, 3))
        assert results == list(range(8))
        assert tracker.peak <= 3

    def test_empty_input(self) -> None:
        assert asyncio.run(run_limited([], 2)) == []

    def test_failure_does_not_cancel_siblings(self) -> None:
        tracker = _TaskTracker()
        tasks = [tracker.task(0, delay=0.0, fail=True), tracker.task(1, delay=0.02)]

        async def scenario() -> None:
            with pytest.raises(RuntimeError, match="task 0 failed"):
                await run_limited(tasks, 2)
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert tracker.finished == [1]

    def test_return_exceptions(self) -> None:
        tracker = _TaskTracker()
        tasks = [tracker.task(0), tracker.task(1, fail=True), tracker.task(2)]
        results = asyncio.run(run_limited(tasks, 2, return_exceptions=True))
        assert results[0] == 0
        assert isinstance(results[1], RuntimeError)
        assert results[2] == 2

    def test_invalid_limit(self) -> None:
        with pytest.raises(ValueError):
            LimiterPool("broken", 0)


class TestNamedPools:
    def test_call_sites_share_one_limit(self) -> None:
        limiter = ConcurrencyLimiter(default_limit=5)
        tracker = _TaskTracker()

        async def scenario() -> None:
            first = limiter.run_in_pool("tenant:a", [tracker.task(i) for i in range(4)], limit=2)
            second = limiter.run_in_pool("tenant:a", [tracker.task(i) for i in range(4, 8)])
            await asyncio.gather(first, second)

        asyncio.run(scenario())
        assert tracker.peak <= 2
        assert sorted(tracker.finished) == list(range(8))

    def test_limit_only_applies_at_creation(self) -> None:
        limiter = ConcurrencyLimiter(default_limit=4)
        pool = limiter.pool("tenant:a")
        assert pool.limit == 4
        assert limiter.pool("tenant:a", 10) is pool
        assert pool.limit == 4

    def test_active_and_pending_counts(self) -> None:
        limiter = ConcurrencyLimiter(default_limit=1)

        async def scenario() -> tuple[int, int]:
            gate = asyncio.Event()

            async def blocked() -> None:
                await gate.wait()

            run = asyncio.ensure_future(limiter.run_in_pool("tenant:a", [blocked, blocked, blocked]))
            await asyncio.sleep(0.01)
            counts = (limiter.active_count("tenant:a"), limiter.pending_count("tenant:a"))
            gate.set()
            await run
            return counts

        assert asyncio.run(scenario()) == (1, 2)
        assert limiter.active_count("tenant:a") == 0
        assert limiter.pending_count("tenant:a") == 0

    def test_unknown_pool_counts_are_zero(self) -> None:
        limiter = ConcurrencyLimiter()
        assert limiter.active_count("missing") == 0
        assert limiter.pending_count("missing") == 0

    def test_clear_pool_and_clear_all(self) -> None:
        limiter = ConcurrencyLimiter()
        limiter.pool("a")
        limiter.pool("b")
        assert limiter.pool_names() == ["a", "b"]
        assert limiter.clear_pool("a") is True
        assert limiter.clear_pool("a") is False
        assert limiter.clear_all() == 1
        assert limiter.pool_names() == []

    def test_run_batch(self) -> None:
        limiter = ConcurrencyLimiter(default_limit=2)

        async def double(value: int) -> int:
            await asyncio.sleep(0)
            return value * 2

        assert asyncio.run(limiter.run_batch([1, 2, 3], double)) == [2, 4, 6]

    def test_invalid_default_limit(self) -> None:
        with pytest.raises(ValueError):
            ConcurrencyLimiter(default_limit=0)
