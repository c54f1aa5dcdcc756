"""
app/domain/records.py

Read-only operational records consumed by KPI formulas.

Record sources map their storage rows into these frozen dataclasses so
formulas never see ORM instances.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol

from app.domain.periods import DateRange


class RecordKind(str, Enum):
    BOOKINGS = "bookings"
    RENTALS = "rentals"
    STAYS = "stays"
    SUITES = "suites"
    CLEANINGS = "cleanings"
    RESTAURANT_SALES = "restaurant_sales"

    @property
    def is_inventory(self) -> bool:
        """Inventory kinds are not filtered by date range."""
        return self is RecordKind.SUITES


@dataclass(frozen=True)
class BookingRecord:
    id: int
    date_service: datetime
    price_rental: Decimal | None
    origin_type_id: int | None = None
    start_date: datetime | None = None
    canceled: bool = False
    rental_apartment_id: int | None = None


@dataclass(frozen=True)
class RentalRecord:
    id: int
    suite_id: int
    suite_category: str
    check_in: datetime
    check_out: datetime
    permanence_value: Decimal = Decimal("0")
    consumption_value: Decimal = Decimal("0")
    end_occupation_type: str | None = None

    @property
    def total_value(self) -> Decimal:
        return self.permanence_value + self.consumption_value


@dataclass(frozen=True)
class SuiteRecord:
    id: int
    suite_category: str


@dataclass(frozen=True)
class CleaningRecord:
    id: int
    suite_id: int
    employee_id: int
    start_date: datetime
    end_date: datetime | None
    reason_end: str | None = None
    employee_name: str | None = None
    shift_start: time | None = None


@dataclass(frozen=True)
class RestaurantSaleRecord:
    id: int
    sold_at: datetime
    total_value: Decimal
    canceled: bool = False


class RecordSource(Protocol):
    """
    Read-only access to one tenant's operational store.

    Implementations filter by *date_range* only; exclusion rules are
    applied by the aggregation engine.  Inventory kinds ignore the range.
    RENTALS match on check-out inside the range, STAYS on any overlap
    with it.
    """

    async def fetch(self, kind: RecordKind, date_range: DateRange) -> Sequence[Any]:
        ...
