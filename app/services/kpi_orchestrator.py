"""
app/services/kpi_orchestrator.py

KPI request pipeline.

Wires PeriodResolver → KpiCache → AggregationService → KpiSnapshotRepository
into a single run.  No business logic lives here; every layer retains its
own responsibility:

    PeriodResolver         – request parameters → canonical range
    KpiCache               – read-through cache keyed by tenant/KPI/range
    AggregationService     – reads and formula calculation
    KpiSnapshotRepository  – upsert into kpi_snapshots

Failure contract
----------------
- Unknown tenant / KPI, bad dates   → input errors, raised before any I/O
- Empty range                       → NoDataError (nothing cached or stored)
- Aggregation failure               → ComputeError
- Persistence failure               → PersistenceError after rollback;
                                      the computed rows are not cached
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.aggregates import AggregateRow
from app.domain.errors import NoDataError, PersistenceError
from app.domain.periods import Period, PeriodResolver, ResolvedPeriod
from app.services.aggregation_service import AggregationService
from app.services.kpi_cache import CacheKey, KpiCache
from app.tenancy.loader import TenantDirectory
from app.tenancy.models import TenantConfig
from db.repositories.kpi_snapshot_repository import KpiSnapshotRepository
from kpi.base import BaseKPIFormula
from kpi.registry import get_formula

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KpiRunResult:
    """
    Structured output of a single pipeline run.

    Attributes
    ----------
    tenant:
        Configured tenant the KPI was computed for.
    kpi:
        Formula name.
    resolved:
        Canonical period and range.
    dimension:
        Grouping axis, or ``None`` for the roll-up only.
    rows:
        Computed (or cached) rows in output order.
    from_cache:
        ``True`` when no recomputation happened.
    cache_key:
        Rendered cache key.
    calculation_ms:
        Compute time on a miss, ``None`` on a hit.
    previous_rows:
        Rows for the preceding window when requested.
    """

    tenant: TenantConfig
    kpi: str
    resolved: ResolvedPeriod
    dimension: str | None
    rows: list[AggregateRow]
    from_cache: bool
    cache_key: str
    calculation_ms: float | None
    computed_at: datetime
    previous_rows: list[AggregateRow] | None = None


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class KpiOrchestrator:
    """
    Coordinates resolve → cache → aggregate → upsert for one request.
    """

    def __init__(
        self,
        *,
        tenants: TenantDirectory,
        aggregation: AggregationService,
        cache: KpiCache,
        session_factory: SessionFactory,
        clock: Callable[[], datetime] | None = None,
        max_range_days: int = 0,
    ) -> None:
        self._tenants = tenants
        self._aggregation = aggregation
        self._cache = cache
        self._session_factory = session_factory
        self._clock = clock
        self._max_range_days = max_range_days

    @property
    def tenants(self) -> TenantDirectory:
        return self._tenants

    def resolver_for(self, tenant: TenantConfig) -> PeriodResolver:
        if self._clock is None:
            return PeriodResolver(boundary=tenant.boundary, max_range_days=self._max_range_days)
        return PeriodResolver(
            boundary=tenant.boundary,
            clock=self._clock,
            max_range_days=self._max_range_days,
        )

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def run(
        self,
        *,
        tenant: str | int,
        kpi: str,
        start_date: str | None = None,
        end_date: str | None = None,
        period: Period | str | None = None,
        dimension: str | None = None,
        require_period: bool = True,
        include_previous: bool = False,
        refresh: bool = False,
    ) -> KpiRunResult:
        """
        Execute the pipeline for one tenant and KPI.

        Parameters
        ----------
        tenant:
            Tenant name or company id (already authenticated upstream).
        kpi:
            Registered formula name.
        start_date, end_date:
            Optional ``DD/MM/YYYY`` bounds; override the period tag.
        period:
            Period tag; required unless ``require_period`` is false.
        dimension:
            Optional grouping axis.
        include_previous:
            Also compute the equal-length window immediately before; an
            empty previous window yields an empty list.
        refresh:
            Drop any cached entry first (scheduled recomputation).

        Raises
        ------
        InputError
            Unknown tenant/KPI/dimension or invalid dates.
        NoDataError
            No primary records in range.
        ComputeError
            Aggregation failure.
        PersistenceError
            Upsert or commit failure.
        """
        config = self._tenants.get(tenant)
        formula = get_formula(kpi)
        resolver = self.resolver_for(config)
        resolved = resolver.resolve(start_date, end_date, period, require_period=require_period)
        dimension_label = dimension.strip().lower() if dimension and dimension.strip() else None

        run_start = time.monotonic()
        logger.info(
            "KpiOrchestrator.run started tenant=%r kpi=%r period=%s range=[%s, %s] dimension=%s",
            config.name,
            formula.name,
            resolved.period.value,
            resolved.first_day.isoformat(),
            resolved.last_day.isoformat(),
            dimension_label,
        )

        key = _cache_key(config, formula, resolved, dimension_label)
        if refresh:
            await self._cache.invalidate(key)

        result = await self._cache.get_or_compute(
            key,
            lambda: self._compute(config, formula, resolved, dimension_label),
        )

        previous_rows: list[AggregateRow] | None = None
        if include_previous:
            previous = resolver.previous(resolved)
            try:
                previous_result = await self._cache.get_or_compute(
                    _cache_key(config, formula, previous, dimension_label),
                    lambda: self._compute(config, formula, previous, dimension_label),
                )
                previous_rows = list(previous_result.value)
            except NoDataError:
                previous_rows = []

        logger.info(
            "KpiOrchestrator.run completed tenant=%r kpi=%r rows=%d from_cache=%s elapsed=%.3fs",
            config.name,
            formula.name,
            len(result.value),
            result.from_cache,
            time.monotonic() - run_start,
        )

        return KpiRunResult(
            tenant=config,
            kpi=formula.name,
            resolved=resolved,
            dimension=dimension_label,
            rows=list(result.value),
            from_cache=result.from_cache,
            cache_key=result.cache_key,
            calculation_ms=result.calculation_ms,
            computed_at=datetime.now(tz=timezone.utc),
            previous_rows=previous_rows,
        )

    async def snapshots(
        self,
        *,
        tenant: str | int,
        kpi: str,
        start_date: str | None = None,
        end_date: str | None = None,
        period: Period | str | None = None,
    ) -> list[AggregateRow]:
        """
        Read persisted rows for a tenant/KPI whose ``created_date`` falls in
        the resolved range.  A symbolic tag also filters by period.
        """
        config = self._tenants.get(tenant)
        formula = get_formula(kpi)
        resolved = self.resolver_for(config).resolve(
            start_date,
            end_date,
            period,
            require_period=False,
        )
        async with self._session_factory() as session:
            return await KpiSnapshotRepository(session).find(
                tenant_id=config.company_id,
                kpi=formula.name,
                start=resolved.range.start,
                end=resolved.range.end,
                period=resolved.period.value if start_date is None else None,
            )

    # ------------------------------------------------------------------
    # Internal: compute + persist (cache miss path)
    # ------------------------------------------------------------------

    async def _compute(
        self,
        tenant: TenantConfig,
        formula: BaseKPIFormula,
        resolved: ResolvedPeriod,
        dimension: str | None,
    ) -> list[AggregateRow]:
        rows = await self._aggregation.aggregate(
            tenant,
            formula,
            resolved.range,
            period=resolved.period,
            dimension=dimension,
        )
        await self._persist(tenant, formula, rows)
        return rows

    async def _persist(
        self,
        tenant: TenantConfig,
        formula: BaseKPIFormula,
        rows: list[AggregateRow],
    ) -> None:
        """
        Upsert the rows and commit the session.

        Raises
        ------
        PersistenceError
            If the upsert or commit fails.  The session is rolled back before
            the exception propagates.
        """
        async with self._session_factory() as session:
            repository = KpiSnapshotRepository(session)
            try:
                written = await repository.upsert_many(rows)
                await session.commit()
            except PersistenceError:
                await session.rollback()
                raise
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error(
                    "_persist failed tenant=%r kpi=%r: %s",
                    tenant.name,
                    formula.name,
                    exc,
                    exc_info=True,
                )
                raise PersistenceError(
                    f"Failed to persist {formula.name} for tenant={tenant.name!r}: {exc}",
                    context={"tenant": tenant.name, "kpi": formula.name},
                ) from exc

        logger.debug("_persist upserted tenant=%r kpi=%r rows=%d", tenant.name, formula.name, written)


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def _cache_key(
    tenant: TenantConfig,
    formula: BaseKPIFormula,
    resolved: ResolvedPeriod,
    dimension: str | None,
) -> CacheKey:
    return CacheKey(
        service_prefix=formula.service_prefix,
        tenant_id=tenant.company_id,
        kpi=formula.name,
        period=resolved.period.value,
        start_date=resolved.first_day,
        end_date=resolved.last_day,
        dimension=dimension or "",
    )
