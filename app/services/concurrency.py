"""
app/services/concurrency.py

Bounded-concurrency execution for async tasks.

Tasks are zero-argument callables returning an awaitable, so nothing
starts before a slot is free.  Results always come back in input order.

Named pools
-----------
Call sites that share a pool name share one limit: the in-flight total
across all of them never exceeds that pool's limit.  Pools are created on
first use and live until :meth:`ConcurrencyLimiter.clear_pool` or
:meth:`ConcurrencyLimiter.clear_all`.

Failure semantics
-----------------
A failing task never cancels its siblings.  By default the first failure
propagates once raised (the other tasks keep running to completion);
with ``return_exceptions=True`` every outcome is returned in place.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any, TypeVar

T = TypeVar("T")
R = TypeVar("R")

Task = Callable[[], Awaitable[T]]

logger = logging.getLogger(__name__)


class LimiterPool:
    """
    A semaphore with in-flight bookkeeping.
    """

    def __init__(self, name: str, limit: int) -> None:
        if limit < 1:
            raise ValueError(f"Pool limit must be >= 1, got {limit}")
        self.name = name
        self.limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._active = 0
        self._pending = 0

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def pending_count(self) -> int:
        return self._pending

    async def run(self, task: Task[T]) -> T:
        """Run one task once a slot is free."""
        self._pending += 1
        acquired = False
        try:
            async with self._semaphore:
                self._pending -= 1
                acquired = True
                self._active += 1
                try:
                    return await task()
                finally:
                    self._active -= 1
        finally:
            if not acquired:
                self._pending -= 1

    async def run_all(
        self,
        tasks: Sequence[Task[T]],
        *,
        return_exceptions: bool = False,
    ) -> list[Any]:
        results = await asyncio.gather(
            *(self.run(task) for task in tasks),
            return_exceptions=return_exceptions,
        )
        return list(results)


async def run_limited(
    tasks: Sequence[Task[T]],
    limit: int,
    *,
    return_exceptions: bool = False,
) -> list[Any]:
    """
    Run *tasks* with at most *limit* unresolved at any moment.

    Parameters
    ----------
    tasks:
        Zero-argument callables returning awaitables.
    limit:
        Maximum number of concurrently running tasks (>= 1).
    return_exceptions:
        Return exceptions in place instead of propagating the first one.

    Returns
    -------
    list
        One result per task, in input order.
    """
    if not tasks:
        return []
    pool = LimiterPool("ad-hoc", limit)
    return await pool.run_all(tasks, return_exceptions=return_exceptions)


class ConcurrencyLimiter:
    """
    Registry of named pools with a default limit.

    Constructed once per process and handed to the components that query
    operational stores.
    """

    def __init__(self, *, default_limit: int = 5) -> None:
        if default_limit < 1:
            raise ValueError(f"default_limit must be >= 1, got {default_limit}")
        self._default_limit = default_limit
        self._pools: dict[str, LimiterPool] = {}

    @property
    def default_limit(self) -> int:
        return self._default_limit

    def pool(self, name: str, limit: int | None = None) -> LimiterPool:
        """
        Return the pool registered under *name*, creating it on first use.

        *limit* only applies at creation; later calls share the existing pool.
        """
        existing = self._pools.get(name)
        if existing is not None:
            if limit is not None and limit != existing.limit:
                logger.debug(
                    "Pool %r already exists with limit=%d; ignoring limit=%d",
                    name,
                    existing.limit,
                    limit,
                )
            return existing

        created = LimiterPool(name, limit or self._default_limit)
        self._pools[name] = created
        logger.debug("Created limiter pool %r limit=%d", name, created.limit)
        return created

    async def run_in_pool(
        self,
        name: str,
        tasks: Sequence[Task[T]],
        *,
        limit: int | None = None,
        return_exceptions: bool = False,
    ) -> list[Any]:
        """Run *tasks* through the named pool, preserving input order."""
        if not tasks:
            return []
        return await self.pool(name, limit).run_all(tasks, return_exceptions=return_exceptions)

    async def run_batch(
        self,
        items: Iterable[T],
        processor: Callable[[T], Awaitable[R]],
        *,
        limit: int | None = None,
        return_exceptions: bool = False,
    ) -> list[Any]:
        """Apply *processor* to every item with bounded concurrency."""
        tasks = [_bind(processor, item) for item in items]
        return await run_limited(
            tasks,
            limit or self._default_limit,
            return_exceptions=return_exceptions,
        )

    def active_count(self, name: str) -> int:
        pool = self._pools.get(name)
        return pool.active_count if pool else 0

    def pending_count(self, name: str) -> int:
        pool = self._pools.get(name)
        return pool.pending_count if pool else 0

    def pool_names(self) -> list[str]:
        return sorted(self._pools)

    def clear_pool(self, name: str) -> bool:
        """Forget the named pool; in-flight tasks on it finish normally."""
        return self._pools.pop(name, None) is not None

    def clear_all(self) -> int:
        count = len(self._pools)
        self._pools.clear()
        return count


def _bind(processor: Callable[[T], Awaitable[R]], item: T) -> Task[R]:
    def task() -> Awaitable[R]:
        return processor(item)

    return task
