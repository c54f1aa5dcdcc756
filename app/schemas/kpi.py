"""
app/schemas/kpi.py

Response schemas for KPI, snapshot, cache and cron endpoints.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class KpiRowResponse(BaseModel):
    """
    One computed or persisted KPI row.

    ``dimension_key`` is ``None`` on the roll-up row.
    """

    created_date: str
    period: str
    dimension_key: str | None = None
    values: dict[str, Any] = Field(default_factory=dict)
    total_all_value: Any = None


class KpiResponse(BaseModel):
    tenant: str
    company_id: int
    kpi: str
    period: str
    start_date: str
    end_date: str
    dimension: str | None = None
    format: str
    from_cache: bool
    cache_key: str
    calculation_ms: float | None = None
    computed_at: str
    rows: list[KpiRowResponse] = Field(default_factory=list)
    previous_rows: list[KpiRowResponse] | None = None


class SnapshotListResponse(BaseModel):
    tenant: str
    company_id: int
    kpi: str
    format: str
    rows: list[KpiRowResponse] = Field(default_factory=list)


class ServiceResultResponse(BaseModel):
    service: str
    status: str
    error: str | None = None


class BatchSummaryResponse(BaseModel):
    """
    API response model for one cron batch run.
    """

    job_id: str
    started_at: str
    completed_at: str
    duration_ms: float = Field(..., ge=0)
    results: list[ServiceResultResponse] = Field(default_factory=list)
    total_services: int = Field(..., ge=0)
    success_count: int = Field(..., ge=0)
    failed_count: int = Field(..., ge=0)
    skipped: bool = False


class CacheInvalidationResponse(BaseModel):
    removed: int = Field(..., ge=0)
