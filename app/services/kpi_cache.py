"""
app/services/kpi_cache.py

In-process KPI result cache with period-aware TTLs.

Keys fully encode service, tenant, KPI, period, business-day range and
dimension, so requests differing in any of them never share an entry.

Lifecycle
---------
- miss      → ``compute()`` runs once per key even under concurrent
              requests; its result is stored with ``ttl_for(period)``
- hit       → stored value returned, ``compute()`` not called
- expiry    → checked lazily on read and by :meth:`KpiCache.sweep`
- ceiling   → least-recently-used entry evicted once ``max_entries`` is hit
- failure   → nothing is stored; the error reaches every waiter

The cache is an explicitly constructed instance; every map mutation runs
under one ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import time
from collections import OrderedDict, deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Generic, TypeVar

from app.logging_utils import log_event

T = TypeVar("T")

logger = logging.getLogger(__name__)

_DEFAULT_TTLS: dict[str, timedelta] = {
    "LAST_7_D": timedelta(minutes=30),
    "LAST_30_D": timedelta(minutes=30),
    "LAST_6_M": timedelta(minutes=30),
    "THIS_MONTH": timedelta(minutes=30),
    "LAST_MONTH": timedelta(hours=1),
    "YEAR_TO_DATE": timedelta(hours=2),
    "CUSTOM": timedelta(minutes=10),
}
_FALLBACK_TTL = timedelta(minutes=10)
_CALC_SAMPLES = 100


def ttl_for(period: Any, overrides: Mapping[str, int] | None = None) -> timedelta:
    """
    TTL for a period tag; unknown tags and CUSTOM get the shortest tier.

    *overrides* maps tag names to seconds and wins over the defaults.
    """
    name = str(getattr(period, "value", period) or "").strip().upper()
    if overrides and name in overrides:
        return timedelta(seconds=max(1, overrides[name]))
    return _DEFAULT_TTLS.get(name, _FALLBACK_TTL)


@dataclass(frozen=True)
class CacheKey:
    service_prefix: str
    tenant_id: int
    kpi: str
    period: str
    start_date: date
    end_date: date
    dimension: str = ""

    def render(self) -> str:
        return ":".join(
            (
                self.service_prefix,
                str(self.tenant_id),
                self.kpi,
                self.period,
                self.start_date.isoformat(),
                self.end_date.isoformat(),
                self.dimension or "total",
            )
        )


@dataclass
class CacheEntry(Generic[T]):
    key: CacheKey
    value: T
    cached_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class ServiceMetrics:
    hits: int = 0
    misses: int = 0
    calculation_ms: deque[float] = field(default_factory=lambda: deque(maxlen=_CALC_SAMPLES))

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        return round(self.hits / total, 4) if total else 0.0

    @property
    def average_calculation_ms(self) -> float:
        if not self.calculation_ms:
            return 0.0
        return round(sum(self.calculation_ms) / len(self.calculation_ms), 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_ratio": self.hit_ratio,
            "average_calculation_ms": self.average_calculation_ms,
        }


@dataclass(frozen=True)
class CacheResult(Generic[T]):
    value: T
    from_cache: bool
    cache_key: str
    calculation_ms: float | None = None


class KpiCache:
    """
    LRU + TTL cache for computed KPI rows.

    Parameters
    ----------
    max_entries:
        Size ceiling; reaching it evicts the least recently used entry.
    ttl_overrides:
        Optional ``{period tag: seconds}`` replacing default tiers.
    clock:
        Monotonic seconds source; injectable for tests.
    """

    def __init__(
        self,
        *,
        max_entries: int = 100,
        ttl_overrides: Mapping[str, int] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self._max_entries = max_entries
        self._ttl_overrides = dict(ttl_overrides or {})
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._inflight: dict[str, asyncio.Future[Any]] = {}
        self._metrics: dict[str, ServiceMetrics] = {}
        self._evictions = 0
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def ttl_for(self, period: Any) -> timedelta:
        return ttl_for(period, self._ttl_overrides)

    # ------------------------------------------------------------------
    # Read-through
    # ------------------------------------------------------------------

    async def get_or_compute(
        self,
        key: CacheKey,
        compute: Callable[[], Awaitable[T]],
    ) -> CacheResult[T]:
        """
        Return the cached value for *key* or compute, store and return it.

        Concurrent misses on one key share a single ``compute()`` call.
        Exceptions from ``compute()`` propagate and nothing is stored.
        """
        rendered = key.render()
        async with self._lock:
            entry = self._lookup(rendered)
            if entry is not None:
                self._service_metrics(key.service_prefix).hits += 1
                log_event(logger, logging.DEBUG, "kpi_cache_hit", key=rendered)
                return CacheResult(value=entry.value, from_cache=True, cache_key=rendered)

            future = self._inflight.get(rendered)
            owner = future is None
            if future is None:
                future = asyncio.get_running_loop().create_future()
                self._inflight[rendered] = future
                self._service_metrics(key.service_prefix).misses += 1

        if not owner:
            value = await asyncio.shield(future)
            self._service_metrics(key.service_prefix).hits += 1
            log_event(logger, logging.DEBUG, "kpi_cache_shared", key=rendered)
            return CacheResult(value=value, from_cache=True, cache_key=rendered)

        started = time.monotonic()
        try:
            value = await compute()
        except Exception as exc:
            async with self._lock:
                self._inflight.pop(rendered, None)
            future.set_exception(exc)
            # waiters re-raise it themselves; this marks it retrieved
            future.exception()
            log_event(logger, logging.DEBUG, "kpi_cache_compute_failed", key=rendered, error=str(exc))
            raise
        except BaseException:
            async with self._lock:
                self._inflight.pop(rendered, None)
            future.cancel()
            raise

        calculation_ms = round((time.monotonic() - started) * 1000.0, 1)
        async with self._lock:
            self._store(key, rendered, value)
            self._inflight.pop(rendered, None)
            self._service_metrics(key.service_prefix).calculation_ms.append(calculation_ms)
        future.set_result(value)

        log_event(
            logger,
            logging.DEBUG,
            "kpi_cache_miss",
            key=rendered,
            calculation_ms=calculation_ms,
            ttl_seconds=self.ttl_for(key.period).total_seconds(),
        )
        return CacheResult(
            value=value,
            from_cache=False,
            cache_key=rendered,
            calculation_ms=calculation_ms,
        )

    async def get(self, key: CacheKey) -> Any | None:
        async with self._lock:
            entry = self._lookup(key.render())
            return entry.value if entry is not None else None

    async def set(self, key: CacheKey, value: Any) -> None:
        async with self._lock:
            self._store(key, key.render(), value)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def invalidate(self, key: CacheKey | str) -> bool:
        rendered = key.render() if isinstance(key, CacheKey) else key
        async with self._lock:
            return self._entries.pop(rendered, None) is not None

    async def invalidate_pattern(self, pattern: str) -> int:
        """Drop every key matching a glob pattern (``*`` wildcards)."""
        async with self._lock:
            return self._drop(lambda rendered, _: fnmatch.fnmatchcase(rendered, pattern))

    async def invalidate_tenant(self, tenant_id: int, service_prefix: str | None = None) -> int:
        """Drop a tenant's entries, optionally only those of one service."""
        async with self._lock:
            return self._drop(
                lambda _, entry: entry.key.tenant_id == tenant_id
                and (service_prefix is None or entry.key.service_prefix == service_prefix)
            )

    async def invalidate_service(self, service_prefix: str) -> int:
        async with self._lock:
            return self._drop(lambda _, entry: entry.key.service_prefix == service_prefix)

    async def sweep(self) -> int:
        """Remove every expired entry."""
        async with self._lock:
            return self._sweep_locked()

    async def clear(self) -> int:
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._metrics.clear()
            self._evictions = 0
            return count

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def metrics(self) -> dict[str, Any]:
        services = {name: m.to_dict() for name, m in sorted(self._metrics.items())}
        hits = sum(m.hits for m in self._metrics.values())
        misses = sum(m.misses for m in self._metrics.values())
        return {
            "services": services,
            "hits": hits,
            "misses": misses,
            "hit_ratio": round(hits / (hits + misses), 4) if hits + misses else 0.0,
        }

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        return {
            "size": len(self._entries),
            "max_entries": self._max_entries,
            "in_flight": len(self._inflight),
            "evictions": self._evictions,
            "entries": [
                {
                    "key": rendered,
                    "service": entry.key.service_prefix,
                    "age_seconds": round(now - entry.cached_at, 1),
                    "expires_in_seconds": round(entry.expires_at - now, 1),
                }
                for rendered, entry in self._entries.items()
            ],
        }

    # ------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # ------------------------------------------------------------------

    def _lookup(self, rendered: str) -> CacheEntry[Any] | None:
        entry = self._entries.get(rendered)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[rendered]
            return None
        self._entries.move_to_end(rendered)
        return entry

    def _store(self, key: CacheKey, rendered: str, value: Any) -> None:
        now = self._clock()
        if rendered not in self._entries and len(self._entries) >= self._max_entries:
            self._sweep_locked()
            while len(self._entries) >= self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("kpi cache evicted %s", evicted)

        self._entries[rendered] = CacheEntry(
            key=key,
            value=value,
            cached_at=now,
            expires_at=now + self.ttl_for(key.period).total_seconds(),
        )
        self._entries.move_to_end(rendered)

    def _sweep_locked(self) -> int:
        now = self._clock()
        return self._drop(lambda _, entry: entry.is_expired(now))

    def _drop(self, predicate: Callable[[str, CacheEntry[Any]], bool]) -> int:
        doomed = [rendered for rendered, entry in self._entries.items() if predicate(rendered, entry)]
        for rendered in doomed:
            del self._entries[rendered]
        return len(doomed)

    def _service_metrics(self, service_prefix: str) -> ServiceMetrics:
        metrics = self._metrics.get(service_prefix)
        if metrics is None:
            metrics = ServiceMetrics()
            self._metrics[service_prefix] = metrics
        return metrics
