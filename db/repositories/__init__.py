"""
Repository layer exports.
"""

from db.repositories.kpi_snapshot_repository import KpiSnapshotRepository
from db.repositories.record_source import SqlRecordSource

__all__ = [
    "KpiSnapshotRepository",
    "SqlRecordSource",
]
