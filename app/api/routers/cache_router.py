"""
app/api/routers/cache_router.py

Cache administration endpoints.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_services, to_http_exception
from app.domain.errors import KpiError
from app.schemas.kpi import CacheInvalidationResponse
from app.services.registry import KpiServices

router = APIRouter(prefix="/cache", tags=["cache"])


@router.get("/stats")
async def cache_stats(services: KpiServices = Depends(get_services)) -> dict[str, Any]:
    return services.cache.stats()


@router.get("/metrics")
async def cache_metrics(services: KpiServices = Depends(get_services)) -> dict[str, Any]:
    return services.cache.metrics()


@router.delete("", response_model=CacheInvalidationResponse)
async def invalidate_cache(
    pattern: str | None = Query(default=None, description="Glob over rendered keys"),
    tenant: str | None = Query(default=None, description="Tenant name or company id"),
    service: str | None = Query(default=None, description="Service prefix, e.g. bk"),
    services: KpiServices = Depends(get_services),
) -> CacheInvalidationResponse:
    """
    Drop cache entries.

    ``tenant`` (optionally narrowed by ``service``) wins over ``pattern``;
    with neither, only ``service`` is applied; with no filter at all the
    whole cache is cleared.
    """
    try:
        if tenant is not None:
            company_id = services.tenants.get(tenant).company_id
            removed = await services.cache.invalidate_tenant(company_id, service)
        elif pattern is not None:
            removed = await services.cache.invalidate_pattern(pattern)
        elif service is not None:
            removed = await services.cache.invalidate_service(service)
        else:
            removed = await services.cache.clear()
    except KpiError as exc:
        raise to_http_exception("Failed to invalidate cache", exc) from exc
    return CacheInvalidationResponse(removed=removed)
