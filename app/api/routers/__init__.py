"""
app/api/routers package marker.
"""

from app.api.routers.cache_router import router as cache_router
from app.api.routers.cron_router import router as cron_router
from app.api.routers.kpi_router import router as kpi_router

__all__ = [
    "cache_router",
    "cron_router",
    "kpi_router",
]
