"""
app/scheduler/jobs.py

APScheduler-based batch scheduler for periodic KPI recomputation.

Triggers (no hardcoded tenants)
-------------------------------
One trigger per (enabled tenant, registered KPI).  Each trigger drops the
cached entry and recomputes every symbolic period, so the reporting store
and the cache both hold fresh rows after a run.  A period with no records
is logged and skipped; any other failure fails the trigger.

Schedule
--------
``KPI_SCHEDULER_HOURS`` (default 00:00, 06:00 and 16:00) at
``KPI_SCHEDULER_MINUTE`` in ``KPI_SCHEDULER_TIMEZONE``.

Lifecycle
---------
Call ``build_scheduler(services)`` once to get a configured
``AsyncIOScheduler``.  Start it inside the running event loop on app boot;
shut it down on app shutdown.  Wired into FastAPI via the ``lifespan``
context in main.py.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.config import SchedulerSettings, get_scheduler_settings
from app.domain.errors import NoDataError
from app.domain.periods import SYMBOLIC_PERIODS
from app.scheduler.batch import BatchSummary, BatchTrigger
from app.services.registry import KpiServices
from app.tenancy.models import TenantConfig
from kpi.registry import FORMULA_REGISTRY

logger = logging.getLogger(__name__)

BATCH_JOB_ID = "kpi_batch"


# ---------------------------------------------------------------------------
# Trigger construction
# ---------------------------------------------------------------------------


def build_triggers(
    services: KpiServices,
    *,
    tenants: Iterable[TenantConfig] | None = None,
    kpis: Iterable[str] | None = None,
) -> list[BatchTrigger]:
    """
    Build one trigger per tenant and KPI, tenants outermost.
    """
    selected_tenants = list(tenants) if tenants is not None else services.tenants.all()
    selected_kpis = list(kpis) if kpis is not None else list(FORMULA_REGISTRY)
    return [
        BatchTrigger(
            name=f"{tenant.name}:{kpi}",
            run=_recompute(services, tenant, kpi),
        )
        for tenant in selected_tenants
        for kpi in selected_kpis
    ]


def _recompute(services: KpiServices, tenant: TenantConfig, kpi: str):
    async def run() -> None:
        for period in SYMBOLIC_PERIODS:
            try:
                await services.orchestrator.run(
                    tenant=tenant.name,
                    kpi=kpi,
                    period=period,
                    require_period=False,
                    refresh=True,
                )
            except NoDataError as exc:
                logger.info(
                    "Scheduler: no data tenant=%r kpi=%r period=%s: %s",
                    tenant.name,
                    kpi,
                    period.value,
                    exc,
                )

    return run


# ---------------------------------------------------------------------------
# Job: scheduled KPI batch
# ---------------------------------------------------------------------------


async def run_kpi_batch(services: KpiServices) -> BatchSummary:
    """
    Recompute every KPI for every enabled tenant.
    """
    logger.info("Scheduler: kpi_batch starting")
    summary = await services.batch_runner.run_batch(
        build_triggers(services),
        started_at=datetime.now(tz=timezone.utc),
    )
    if summary.skipped:
        logger.warning("Scheduler: kpi_batch skipped, previous run still active")
    else:
        logger.info(
            "Scheduler: kpi_batch complete services=%d success=%d failed=%d",
            summary.total_services,
            summary.success_count,
            summary.failed_count,
        )
    return summary


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler(
    services: KpiServices,
    settings: SchedulerSettings | None = None,
) -> AsyncIOScheduler:
    """
    Build the scheduler and register the KPI batch job.

    Returns a configured but *not yet started* ``AsyncIOScheduler``.
    The caller must call ``.start()`` from inside the running event loop
    and ``.shutdown()`` at the appropriate lifecycle points.
    """
    settings = settings or get_scheduler_settings()
    scheduler = AsyncIOScheduler(timezone=settings.timezone)

    scheduler.add_job(
        run_kpi_batch,
        trigger="cron",
        hour=",".join(str(hour) for hour in settings.hours),
        minute=settings.minute,
        args=[services],
        id=BATCH_JOB_ID,
        name="KPI recomputation batch",
        replace_existing=True,
        misfire_grace_time=settings.misfire_grace_seconds,
        coalesce=True,
        max_instances=1,
    )

    return scheduler
