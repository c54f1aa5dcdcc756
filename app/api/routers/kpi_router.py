"""
app/api/routers/kpi_router.py

KPI endpoints.

Serves a KPI for one tenant through the full pipeline:
    PeriodResolver → KpiCache → AggregationService → KpiSnapshotRepository

The tenant path segment is trusted; authentication happens upstream.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_services, to_http_exception
from app.domain.errors import KpiError
from app.schemas.kpi import KpiResponse, KpiRowResponse, SnapshotListResponse
from app.services.presentation import format_row, parse_output_format
from app.services.registry import KpiServices
from kpi.registry import get_formula

logger = logging.getLogger(__name__)

router = APIRouter(tags=["kpi"])


@router.get("/tenants/{tenant}/kpis/{kpi}", response_model=KpiResponse)
async def get_kpi(
    tenant: str,
    kpi: str,
    start_date: str | None = Query(default=None, alias="startDate", description="DD/MM/YYYY"),
    end_date: str | None = Query(default=None, alias="endDate", description="DD/MM/YYYY"),
    period: str | None = Query(default=None, description="LAST_7_D, LAST_30_D, ... or CUSTOM"),
    dimension: str | None = Query(default=None, description="Optional grouping axis"),
    output_format: str | None = Query(default=None, alias="format", description="numeric or currency"),
    compare_previous: bool = Query(default=False, alias="comparePrevious"),
    services: KpiServices = Depends(get_services),
) -> KpiResponse:
    """
    Compute (or serve from cache) one KPI for one tenant.

    Raises HTTP 400 for invalid parameters, 404 for an unknown tenant or an
    empty range, 500 for compute or persistence failures.
    """
    operation = f"Failed to create all {kpi}"
    try:
        fmt = parse_output_format(output_format, services.tenants.get(tenant).output_format)
        result = await services.orchestrator.run(
            tenant=tenant,
            kpi=kpi,
            start_date=start_date,
            end_date=end_date,
            period=period,
            dimension=dimension,
            include_previous=compare_previous,
        )
    except KpiError as exc:
        logger.info("%s tenant=%r: %s", operation, tenant, exc)
        raise to_http_exception(operation, exc) from exc

    formula = get_formula(result.kpi)
    return KpiResponse(
        tenant=result.tenant.name,
        company_id=result.tenant.company_id,
        kpi=result.kpi,
        period=result.resolved.period.value,
        start_date=result.resolved.range.start.isoformat(),
        end_date=result.resolved.range.end.isoformat(),
        dimension=result.dimension,
        format=fmt.value,
        from_cache=result.from_cache,
        cache_key=result.cache_key,
        calculation_ms=result.calculation_ms,
        computed_at=result.computed_at.isoformat(),
        rows=[KpiRowResponse(**format_row(formula, row, fmt)) for row in result.rows],
        previous_rows=(
            [KpiRowResponse(**format_row(formula, row, fmt)) for row in result.previous_rows]
            if result.previous_rows is not None
            else None
        ),
    )


@router.get("/tenants/{tenant}/kpis/{kpi}/snapshots", response_model=SnapshotListResponse)
async def get_kpi_snapshots(
    tenant: str,
    kpi: str,
    start_date: str | None = Query(default=None, alias="startDate", description="DD/MM/YYYY"),
    end_date: str | None = Query(default=None, alias="endDate", description="DD/MM/YYYY"),
    period: str | None = Query(default=None),
    output_format: str | None = Query(default=None, alias="format"),
    services: KpiServices = Depends(get_services),
) -> SnapshotListResponse:
    """
    Return persisted rows whose created date falls in the resolved range.
    """
    operation = f"Failed to read {kpi} snapshots"
    try:
        config = services.tenants.get(tenant)
        formula = get_formula(kpi)
        fmt = parse_output_format(output_format, config.output_format)
        rows = await services.orchestrator.snapshots(
            tenant=tenant,
            kpi=kpi,
            start_date=start_date,
            end_date=end_date,
            period=period,
        )
    except KpiError as exc:
        raise to_http_exception(operation, exc) from exc

    return SnapshotListResponse(
        tenant=config.name,
        company_id=config.company_id,
        kpi=formula.name,
        format=fmt.value,
        rows=[KpiRowResponse(**format_row(formula, row, fmt)) for row in rows],
    )
