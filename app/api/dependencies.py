"""
app/api/dependencies.py

Shared FastAPI dependencies and error translation.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from app.domain.errors import KpiError
from app.services.registry import KpiServices


def get_services(request: Request) -> KpiServices:
    """
    Return the service graph built during application startup.
    """

    services: KpiServices | None = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="KPI services are not initialised.",
        )
    return services


def to_http_exception(operation: str, exc: KpiError) -> HTTPException:
    """
    Map a pipeline error to an HTTP error whose detail names the operation,
    e.g. ``Failed to create all revenue: <detail>``.
    """

    return HTTPException(
        status_code=exc.status_code,
        detail=f"{operation}: {exc.message}",
    )
