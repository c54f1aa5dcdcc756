"""
app/services/aggregation_service.py

Aggregation engine: raw operational records → KPI snapshot rows.

One parametrised engine serves every tenant; tenant differences (data
source, boundary convention, exclusion rules, suite categories) arrive as
configuration through :class:`~app.tenancy.models.TenantConfig`.

Output shape
------------
- no dimension         → ``[rollup]``
- category dimension   → one row per declared key, then the roll-up row;
                         every row carries the tenant-wide ``total_all_value``
- temporal dimension   → one row per chronological bucket, then the
                         roll-up row over the full range

Failure contract
----------------
- primary record set empty for the range → ``NoDataError``
- fetch timeout or any unexpected error  → ``ComputeError`` with tenant,
                                           KPI and range in its context
- unknown KPI / unsupported dimension    → input errors, raised unwrapped

The engine performs reads only; persistence belongs to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from decimal import Decimal
from typing import Any

from app.domain.aggregates import ROLLUP_KEY, AggregateRow, Dimension
from app.domain.errors import ComputeError, KpiError, NoDataError, UnsupportedDimensionError
from app.domain.periods import DateRange, Period
from app.domain.records import RecordKind, RecordSource
from app.services.concurrency import ConcurrencyLimiter
from app.tenancy.models import TenantConfig
from kpi.base import BaseKPIFormula, FormulaInputs, Unit
from kpi.money import to_decimal
from kpi.registry import get_formula

logger = logging.getLogger(__name__)

SourceFactory = Callable[[TenantConfig], RecordSource]
RecordSet = dict[RecordKind, list[Any]]
_WHOLE_UNITS = frozenset({Unit.COUNT, Unit.DURATION})


class AggregationService:
    """
    Computes KPI rows for one tenant and range.

    Every fetch runs through the tenant's named limiter pool and under
    ``fetch_timeout_seconds``.
    """

    def __init__(
        self,
        *,
        sources: SourceFactory,
        limiter: ConcurrencyLimiter,
        fetch_timeout_seconds: float = 30.0,
        pool_limit: int | None = None,
    ) -> None:
        self._sources = sources
        self._limiter = limiter
        self._fetch_timeout_seconds = fetch_timeout_seconds
        self._pool_limit = pool_limit

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    async def aggregate(
        self,
        tenant: TenantConfig,
        kpi: str | BaseKPIFormula,
        date_range: DateRange,
        *,
        period: Period | str = Period.CUSTOM,
        dimension: Dimension | str | None = None,
    ) -> list[AggregateRow]:
        """
        Aggregate *kpi* for *tenant* over *date_range*.

        Parameters
        ----------
        tenant:
            Tenant whose operational store is read.
        kpi:
            Registered KPI name or formula instance.
        date_range:
            Canonical range produced by the period resolver.
        period:
            Tag stored on every produced row.
        dimension:
            Optional grouping axis; must be supported by the formula.

        Raises
        ------
        UnknownKpiError, UnsupportedDimensionError
            Bad request parameters.
        NoDataError
            No primary records in range after exclusions.
        ComputeError
            Fetch timeout or unexpected failure.
        """
        formula = get_formula(kpi) if isinstance(kpi, str) else kpi
        dim = _parse_dimension(dimension, formula)
        period_label = period.value if isinstance(period, Period) else str(period)

        run_start = time.monotonic()
        try:
            if dim is not None and dim.is_temporal:
                rows = await self._aggregate_buckets(tenant, formula, date_range, period_label, dim)
            else:
                rows = await self._aggregate_range(tenant, formula, date_range, period_label, dim)
        except KpiError:
            raise
        except Exception as exc:
            logger.error(
                "aggregate failed tenant=%r kpi=%r range=[%s, %s]: %s",
                tenant.name,
                formula.name,
                date_range.start.isoformat(),
                date_range.end.isoformat(),
                exc,
                exc_info=True,
            )
            raise ComputeError(
                f"Failed to aggregate {formula.name} for tenant={tenant.name!r}: {exc}",
                context=_context(tenant, formula, date_range),
            ) from exc

        logger.info(
            "aggregate completed tenant=%r kpi=%r period=%s dimension=%s rows=%d elapsed=%.3fs",
            tenant.name,
            formula.name,
            period_label,
            dim.value if dim else None,
            len(rows),
            time.monotonic() - run_start,
        )
        return rows

    # ------------------------------------------------------------------
    # Internal: whole-range and category aggregation
    # ------------------------------------------------------------------

    async def _aggregate_range(
        self,
        tenant: TenantConfig,
        formula: BaseKPIFormula,
        date_range: DateRange,
        period: str,
        dimension: Dimension | None,
    ) -> list[AggregateRow]:
        records = await self._fetch(tenant, formula, formula.sources, [date_range])
        record_set = records[0]
        _require_data(record_set, tenant, formula, date_range)

        rollup_values = formula.rollup(
            formula.calculate(FormulaInputs(record_set, date_range, tenant.boundary))
        )
        total = _total_all(formula, rollup_values)

        rows: list[AggregateRow] = []
        if dimension is not None:
            for key, partition in _partition(formula, dimension, tenant, record_set):
                rows.append(
                    AggregateRow(
                        tenant_id=tenant.company_id,
                        kpi=formula.name,
                        period=period,
                        created_date=date_range.end,
                        dimension_key=key,
                        values=formula.calculate(
                            FormulaInputs(partition, date_range, tenant.boundary)
                        ),
                        total_all_value=total,
                    )
                )

        rows.append(
            AggregateRow(
                tenant_id=tenant.company_id,
                kpi=formula.name,
                period=period,
                created_date=date_range.end,
                dimension_key=ROLLUP_KEY,
                values=rollup_values,
                total_all_value=total,
            )
        )
        return rows

    # ------------------------------------------------------------------
    # Internal: temporal aggregation
    # ------------------------------------------------------------------

    async def _aggregate_buckets(
        self,
        tenant: TenantConfig,
        formula: BaseKPIFormula,
        date_range: DateRange,
        period: str,
        dimension: Dimension,
    ) -> list[AggregateRow]:
        buckets = date_range.split(dimension.granularity, tenant.boundary)
        ranged_kinds = tuple(k for k in formula.sources if not k.is_inventory)
        inventory_kinds = tuple(k for k in formula.sources if k.is_inventory)

        inventory: RecordSet = {}
        if inventory_kinds:
            inventory = (await self._fetch(tenant, formula, inventory_kinds, [date_range]))[0]

        per_bucket = await self._fetch(
            tenant,
            formula,
            ranged_kinds,
            [bucket.range for bucket in buckets],
        )

        # a stay overlapping several buckets is fetched once per bucket
        combined: RecordSet = {kind: list(records) for kind, records in inventory.items()}
        for bucket_records in per_bucket:
            for kind, records in bucket_records.items():
                combined.setdefault(kind, []).extend(records)
        combined = {kind: list(dict.fromkeys(records)) for kind, records in combined.items()}
        _require_data(combined, tenant, formula, date_range)

        rollup_values = formula.rollup(
            formula.calculate(FormulaInputs(combined, date_range, tenant.boundary))
        )
        total = _total_all(formula, rollup_values)

        rows: list[AggregateRow] = []
        for bucket, bucket_records in zip(buckets, per_bucket):
            bucket_set: RecordSet = {**inventory, **bucket_records}
            rows.append(
                AggregateRow(
                    tenant_id=tenant.company_id,
                    kpi=formula.name,
                    period=period,
                    created_date=bucket.range.end,
                    dimension_key=bucket.label,
                    values=formula.calculate(
                        FormulaInputs(bucket_set, bucket.range, tenant.boundary)
                    ),
                    total_all_value=total,
                )
            )

        rows.append(
            AggregateRow(
                tenant_id=tenant.company_id,
                kpi=formula.name,
                period=period,
                created_date=date_range.end,
                dimension_key=ROLLUP_KEY,
                values=rollup_values,
                total_all_value=total,
            )
        )
        return rows

    # ------------------------------------------------------------------
    # Internal: fetching
    # ------------------------------------------------------------------

    async def _fetch(
        self,
        tenant: TenantConfig,
        formula: BaseKPIFormula,
        kinds: Sequence[RecordKind],
        ranges: Sequence[DateRange],
    ) -> list[RecordSet]:
        """
        Fetch every kind for every range through the tenant pool.

        Returns one filtered record set per range, in range order.
        """
        if not kinds:
            return [{} for _ in ranges]

        source = self._sources(tenant)
        jobs = [(index, kind, window) for index, window in enumerate(ranges) for kind in kinds]
        tasks = [self._fetch_task(source, tenant, formula, kind, window) for _, kind, window in jobs]
        results = await self._limiter.run_in_pool(
            tenant.pool_name,
            tasks,
            limit=self._pool_limit,
        )

        record_sets: list[RecordSet] = [{} for _ in ranges]
        for (index, kind, _), records in zip(jobs, results):
            record_sets[index][kind] = [
                record for record in records if tenant.exclusions.admits(kind, record)
            ]
        return record_sets

    def _fetch_task(
        self,
        source: RecordSource,
        tenant: TenantConfig,
        formula: BaseKPIFormula,
        kind: RecordKind,
        window: DateRange,
    ) -> Callable[[], Any]:
        timeout = self._fetch_timeout_seconds

        async def task() -> list[Any]:
            try:
                return list(await asyncio.wait_for(source.fetch(kind, window), timeout=timeout))
            except asyncio.TimeoutError as exc:
                logger.warning(
                    "fetch timed out tenant=%r kind=%s after %.1fs",
                    tenant.name,
                    kind.value,
                    timeout,
                )
                raise ComputeError(
                    f"Timed out after {timeout:.1f}s fetching {kind.value} "
                    f"for tenant={tenant.name!r}",
                    context=_context(tenant, formula, window),
                ) from exc

        return task


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def _parse_dimension(
    dimension: Dimension | str | None,
    formula: BaseKPIFormula,
) -> Dimension | None:
    if dimension is None:
        return None
    if isinstance(dimension, str):
        candidate = dimension.strip().lower()
        if not candidate:
            return None
        try:
            dimension = Dimension(candidate)
        except ValueError as exc:
            raise UnsupportedDimensionError(
                f"Unknown dimension {candidate!r}.",
                context={"dimension": candidate},
            ) from exc

    if dimension not in formula.dimensions:
        raise UnsupportedDimensionError(
            f"KPI {formula.name!r} cannot be grouped by {dimension.value!r}. "
            f"Supported: {sorted(d.value for d in formula.dimensions)}",
            context={"kpi": formula.name, "dimension": dimension.value},
        )
    return dimension


def _partition(
    formula: BaseKPIFormula,
    dimension: Dimension,
    tenant: TenantConfig,
    records: Mapping[RecordKind, list[Any]],
) -> list[tuple[str, RecordSet]]:
    """
    Split dimension-bearing kinds by key; other kinds are shared by every
    partition.  Declared keys come first, then unexpected keys sorted.
    """
    grouped: dict[str, RecordSet] = {}
    for kind, kind_records in records.items():
        if not dimension.partitions(kind):
            continue
        for record in kind_records:
            key = formula.dimension_value(dimension, record)
            if key is None:
                continue
            grouped.setdefault(key, {}).setdefault(kind, []).append(record)

    declared = list(formula.declared_keys(dimension, tenant.suite_categories))
    extra = sorted(key for key in grouped if key not in declared)

    partitions: list[tuple[str, RecordSet]] = []
    for key in declared + extra:
        partition: RecordSet = {}
        for kind, kind_records in records.items():
            if dimension.partitions(kind):
                partition[kind] = grouped.get(key, {}).get(kind, [])
            else:
                partition[kind] = kind_records
        partitions.append((key, partition))
    return partitions


def _require_data(
    records: Mapping[RecordKind, list[Any]],
    tenant: TenantConfig,
    formula: BaseKPIFormula,
    date_range: DateRange,
) -> None:
    if not records.get(formula.primary_source):
        raise NoDataError(
            f"No {formula.primary_source.value} found.",
            context=_context(tenant, formula, date_range),
        )


def _total_all(
    formula: BaseKPIFormula,
    rollup_values: Mapping[str, Decimal | int],
) -> Decimal | int | None:
    value = rollup_values.get(formula.total_field)
    if value is None:
        return None
    if isinstance(value, int) and formula.unit_of(formula.total_field) in _WHOLE_UNITS:
        return value
    return to_decimal(value)


def _context(tenant: TenantConfig, formula: BaseKPIFormula, date_range: DateRange) -> dict[str, Any]:
    return {
        "tenant": tenant.name,
        "tenant_id": tenant.company_id,
        "kpi": formula.name,
        "start": date_range.start.isoformat(),
        "end": date_range.end.isoformat(),
    }
