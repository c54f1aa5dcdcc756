"""
app/schemas package marker.
"""

from app.schemas.kpi import (
    BatchSummaryResponse,
    CacheInvalidationResponse,
    KpiResponse,
    KpiRowResponse,
    ServiceResultResponse,
    SnapshotListResponse,
)

__all__ = [
    "BatchSummaryResponse",
    "CacheInvalidationResponse",
    "KpiResponse",
    "KpiRowResponse",
    "ServiceResultResponse",
    "SnapshotListResponse",
]
