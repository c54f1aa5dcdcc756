"""
kpi/bookings.py

Booking KPI formulas.

Expected inputs
---------------
bookings : list[BookingRecord]
    Bookings whose service date falls in the range, after exclusions.
rentals : list[RentalRecord]
    Closed rentals in the range (representativeness only).
restaurant_sales : list[RestaurantSaleRecord]
    Direct sales in the range (representativeness only).

Formulas
--------
Ticket Average      = sum(price_rental) / count(bookings)
Revenue             = sum(price_rental)
Representativeness  = bookings revenue / (rental revenue + direct sales) * 100

Zero denominators yield 0.
"""

from __future__ import annotations

from decimal import Decimal

from app.domain.aggregates import Dimension
from app.domain.records import RecordKind
from kpi.base import BaseKPIFormula, FormulaInputs, Unit
from kpi.money import ZERO, percentage, quantize, safe_divide, to_decimal

_BOOKING_DIMENSIONS = frozenset({Dimension.CHANNEL_TYPE, Dimension.DAY, Dimension.MONTH})


def _bookings_total(inputs: FormulaInputs) -> tuple[int, Decimal]:
    bookings = inputs.of(RecordKind.BOOKINGS)
    total = sum((to_decimal(b.price_rental) for b in bookings), ZERO)
    return len(bookings), total


class BookingsTicketAverageFormula(BaseKPIFormula):
    """Average booking price per booking."""

    name = "bookings_ticket_average"
    service_prefix = "bk"
    primary_source = RecordKind.BOOKINGS
    sources = (RecordKind.BOOKINGS,)
    dimensions = _BOOKING_DIMENSIONS
    rollup_names = {
        "ticketAverage": "totalAllTicketAverage",
        "totalValue": "totalAllValue",
    }
    total_field = "totalAllTicketAverage"
    units = {
        "totalBookings": Unit.COUNT,
        "totalValue": Unit.CURRENCY,
        "ticketAverage": Unit.CURRENCY,
    }

    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        count, total = _bookings_total(inputs)
        return {
            "totalBookings": count,
            "totalValue": quantize(total),
            "ticketAverage": quantize(safe_divide(total, count)),
        }


class BookingsRevenueFormula(BaseKPIFormula):
    """Booking revenue, usually grouped by channel type."""

    name = "bookings_revenue"
    service_prefix = "bk"
    primary_source = RecordKind.BOOKINGS
    sources = (RecordKind.BOOKINGS,)
    dimensions = _BOOKING_DIMENSIONS
    rollup_names = {"totalValue": "totalAllValue"}
    total_field = "totalAllValue"
    units = {
        "totalBookings": Unit.COUNT,
        "totalValue": Unit.CURRENCY,
    }

    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        count, total = _bookings_total(inputs)
        return {
            "totalBookings": count,
            "totalValue": quantize(total),
        }


class BookingsRepresentativenessFormula(BaseKPIFormula):
    """Share of total sales that came in through bookings."""

    name = "bookings_representativeness"
    service_prefix = "bk"
    primary_source = RecordKind.RENTALS
    sources = (RecordKind.BOOKINGS, RecordKind.RENTALS, RecordKind.RESTAURANT_SALES)
    rollup_names = {"representativeness": "totalAllRepresentativeness"}
    total_field = "totalAllRepresentativeness"
    units = {
        "bookingsValue": Unit.CURRENCY,
        "totalSalesValue": Unit.CURRENCY,
        "representativeness": Unit.RATE,
    }

    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        _, bookings_value = _bookings_total(inputs)
        rentals_value = sum((r.total_value for r in inputs.of(RecordKind.RENTALS)), ZERO)
        direct_sales = sum(
            (to_decimal(s.total_value) for s in inputs.of(RecordKind.RESTAURANT_SALES)),
            ZERO,
        )
        total_sales = rentals_value + direct_sales
        return {
            "bookingsValue": quantize(bookings_value),
            "totalSalesValue": quantize(total_sales),
            "representativeness": percentage(bookings_value, total_sales),
        }
