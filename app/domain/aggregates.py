"""
app/domain/aggregates.py

Computed KPI snapshots and the dimensions they can be grouped by.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from app.domain.periods import Granularity
from app.domain.records import RecordKind

ROLLUP_KEY = ""


class Dimension(str, Enum):
    SUITE_CATEGORY = "suite_category"
    CHANNEL_TYPE = "channel_type"
    SHIFT = "shift"
    DAY = "day"
    MONTH = "month"

    @property
    def is_temporal(self) -> bool:
        return self in (Dimension.DAY, Dimension.MONTH)

    @property
    def granularity(self) -> Granularity:
        if self is Dimension.DAY:
            return Granularity.DAY
        if self is Dimension.MONTH:
            return Granularity.MONTH
        raise ValueError(f"{self.value} is not a temporal dimension")

    def partitions(self, kind: RecordKind) -> bool:
        """Whether records of *kind* carry a key for this category dimension."""
        return kind in _PARTITIONED_KINDS.get(self, frozenset())


_PARTITIONED_KINDS: dict[Dimension, frozenset[RecordKind]] = {
    Dimension.SUITE_CATEGORY: frozenset({RecordKind.RENTALS, RecordKind.STAYS, RecordKind.SUITES}),
    Dimension.CHANNEL_TYPE: frozenset({RecordKind.BOOKINGS}),
    Dimension.SHIFT: frozenset({RecordKind.CLEANINGS}),
}


@dataclass(frozen=True)
class AggregateRow:
    """
    One KPI snapshot.

    ``dimension_key`` is empty for the roll-up row.  ``created_date`` is the
    end instant of the range the row was computed for.
    """

    tenant_id: int
    kpi: str
    period: str
    created_date: datetime
    dimension_key: str = ROLLUP_KEY
    values: Mapping[str, Decimal | int] = field(default_factory=dict)
    total_all_value: Decimal | int | None = None

    @property
    def natural_key(self) -> tuple[int, str, str, datetime, str]:
        return (self.tenant_id, self.kpi, self.period, self.created_date, self.dimension_key)

    @property
    def is_rollup(self) -> bool:
        return self.dimension_key == ROLLUP_KEY

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "kpi": self.kpi,
            "period": self.period,
            "created_date": self.created_date.isoformat(),
            "dimension_key": self.dimension_key,
            "values": dict(self.values),
            "total_all_value": self.total_all_value,
        }
