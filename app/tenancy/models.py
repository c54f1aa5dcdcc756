"""
Tenant configuration models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from app.domain.periods import BoundaryConvention
from app.domain.records import (
    BookingRecord,
    CleaningRecord,
    RecordKind,
    RentalRecord,
    RestaurantSaleRecord,
)


class OutputFormat(str, Enum):
    NUMERIC = "numeric"
    CURRENCY = "currency"


@dataclass(frozen=True)
class ExclusionRules:
    """
    Per-tenant record predicates applied before aggregation.

    Empty ``rental_end_types`` or ``cleaning_reasons`` admit every value.
    """

    exclude_canceled_bookings: bool = True
    require_price_rental: bool = True
    require_rental_apartment: bool = True
    rental_end_types: tuple[str, ...] = ()
    cleaning_reasons: tuple[str, ...] = ("COMPLETA",)
    exclude_canceled_sales: bool = True

    def admits(self, kind: RecordKind, record: Any) -> bool:
        if kind is RecordKind.BOOKINGS and isinstance(record, BookingRecord):
            if self.exclude_canceled_bookings and record.canceled:
                return False
            if self.require_price_rental and record.price_rental is None:
                return False
            if self.require_rental_apartment and record.rental_apartment_id is None:
                return False
            return True

        if kind in (RecordKind.RENTALS, RecordKind.STAYS) and isinstance(record, RentalRecord):
            if self.rental_end_types:
                return (record.end_occupation_type or "") in self.rental_end_types
            return True

        if kind is RecordKind.CLEANINGS and isinstance(record, CleaningRecord):
            if record.end_date is None:
                return False
            if self.cleaning_reasons:
                return (record.reason_end or "") in self.cleaning_reasons
            return True

        if kind is RecordKind.RESTAURANT_SALES and isinstance(record, RestaurantSaleRecord):
            return not (self.exclude_canceled_sales and record.canceled)

        return True


@dataclass(frozen=True)
class TenantConfig:
    """
    One business unit served by this deployment.
    """

    name: str
    company_id: int
    database_url_env: str
    boundary: BoundaryConvention = field(default_factory=BoundaryConvention)
    suite_categories: tuple[str, ...] = ()
    exclusions: ExclusionRules = field(default_factory=ExclusionRules)
    output_format: OutputFormat = OutputFormat.NUMERIC
    enabled: bool = True

    @property
    def pool_name(self) -> str:
        """Limiter pool shared by every query against this tenant's store."""
        return f"tenant:{self.name}"
