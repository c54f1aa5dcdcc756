"""
app/services package marker.

The service graph itself is assembled in ``app.services.registry``.
"""

from app.services.concurrency import ConcurrencyLimiter, run_limited
from app.services.kpi_cache import CacheKey, KpiCache, ttl_for

__all__ = [
    "CacheKey",
    "ConcurrencyLimiter",
    "KpiCache",
    "run_limited",
    "ttl_for",
]
