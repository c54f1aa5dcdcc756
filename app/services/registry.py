"""
app/services/registry.py

Explicit composition of the KPI services for one process.

``build_services`` wires settings, tenant definitions, engines, the
limiter, the cache and the pipeline together.  Every collaborator can be
passed in, which is how tests swap in fakes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import (
    get_aggregation_settings,
    get_cache_settings,
    get_period_settings,
    get_tenancy_settings,
)
from app.domain.periods import BoundaryConvention
from app.domain.records import RecordSource
from app.scheduler.batch import CronBatchRunner
from app.services.aggregation_service import AggregationService
from app.services.concurrency import ConcurrencyLimiter
from app.services.kpi_cache import KpiCache
from app.services.kpi_orchestrator import KpiOrchestrator
from app.tenancy.loader import TenantDirectory, load_tenant_configs
from app.tenancy.models import TenantConfig
from db.repositories.record_source import SqlRecordSource
from db.session import EngineRegistry

logger = logging.getLogger(__name__)


@dataclass
class KpiServices:
    tenants: TenantDirectory
    limiter: ConcurrencyLimiter
    cache: KpiCache
    aggregation: AggregationService
    orchestrator: KpiOrchestrator
    batch_runner: CronBatchRunner
    engines: EngineRegistry | None = None

    async def aclose(self) -> None:
        self.limiter.clear_all()
        if self.engines is not None:
            await self.engines.dispose()


def build_services(
    *,
    tenants: TenantDirectory | None = None,
    engines: EngineRegistry | None = None,
    sources: Callable[[TenantConfig], RecordSource] | None = None,
    session_factory: Callable[[], AsyncSession] | None = None,
    cache: KpiCache | None = None,
    clock: Callable[[], datetime] | None = None,
) -> KpiServices:
    """
    Build the service graph from settings.

    ``engines`` is only created when either ``sources`` or
    ``session_factory`` is left to its default.
    """
    period_settings = get_period_settings()
    aggregation_settings = get_aggregation_settings()
    cache_settings = get_cache_settings()

    if tenants is None:
        default_boundary = BoundaryConvention(
            start_hour=period_settings.start_hour,
            timezone=period_settings.timezone,
        )
        tenants = TenantDirectory(
            load_tenant_configs(
                config_path=get_tenancy_settings().config_path,
                default_boundary=default_boundary,
            )
        )

    if engines is None and (sources is None or session_factory is None):
        engines = EngineRegistry()

    if sources is None:
        sources = _sql_sources(engines)
    if session_factory is None:
        session_factory = engines.reporting_session

    limiter = ConcurrencyLimiter(default_limit=aggregation_settings.concurrency_limit)
    cache = cache or KpiCache(
        max_entries=cache_settings.max_entries,
        ttl_overrides=cache_settings.ttl_overrides,
    )
    aggregation = AggregationService(
        sources=sources,
        limiter=limiter,
        fetch_timeout_seconds=aggregation_settings.fetch_timeout_seconds,
    )
    orchestrator = KpiOrchestrator(
        tenants=tenants,
        aggregation=aggregation,
        cache=cache,
        session_factory=session_factory,
        clock=clock,
        max_range_days=period_settings.max_range_days,
    )

    logger.info(
        "KPI services built tenants=%d concurrency_limit=%d cache_max_entries=%d",
        len(tenants),
        aggregation_settings.concurrency_limit,
        cache_settings.max_entries,
    )
    return KpiServices(
        tenants=tenants,
        limiter=limiter,
        cache=cache,
        aggregation=aggregation,
        orchestrator=orchestrator,
        batch_runner=CronBatchRunner(),
        engines=engines,
    )


def _sql_sources(engines: EngineRegistry) -> Callable[[TenantConfig], RecordSource]:
    built: dict[str, SqlRecordSource] = {}

    def source_for(tenant: TenantConfig) -> RecordSource:
        source = built.get(tenant.name)
        if source is None:
            source = SqlRecordSource(engines.tenant_engine(tenant.database_url_env))
            built[tenant.name] = source
        return source

    return source_for
