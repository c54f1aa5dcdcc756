"""
app/api/routers/cron_router.py

Manual trigger for the KPI recomputation batch.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.dependencies import get_services, to_http_exception
from app.domain.errors import KpiError
from app.scheduler.batch import BatchSummary
from app.scheduler.jobs import build_triggers
from app.schemas.kpi import BatchSummaryResponse
from app.services.registry import KpiServices
from kpi.registry import get_formula

router = APIRouter(prefix="/cron", tags=["cron"])


@router.post("/run", response_model=BatchSummaryResponse)
async def run_cron(
    tenant: str | None = Query(default=None, description="Restrict to one tenant"),
    kpi: str | None = Query(default=None, description="Restrict to one KPI"),
    services: KpiServices = Depends(get_services),
) -> BatchSummaryResponse:
    """
    Run the recomputation batch now and return its summary.

    Raises HTTP 409 when a batch is already running.
    """
    try:
        tenants = [services.tenants.get(tenant)] if tenant is not None else None
        kpis = [get_formula(kpi).name] if kpi is not None else None
    except KpiError as exc:
        raise to_http_exception("Failed to run cron batch", exc) from exc

    summary = await services.batch_runner.run_batch(
        build_triggers(services, tenants=tenants, kpis=kpis),
    )
    if summary.skipped:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Failed to run cron batch: a batch is already running.",
        )
    return _to_response(summary)


@router.get("/last", response_model=BatchSummaryResponse)
async def last_cron_run(services: KpiServices = Depends(get_services)) -> BatchSummaryResponse:
    summary = services.batch_runner.last_summary
    if summary is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No cron batch has completed yet.",
        )
    return _to_response(summary)


def _to_response(summary: BatchSummary) -> BatchSummaryResponse:
    return BatchSummaryResponse(**summary.to_dict())
