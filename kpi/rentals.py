"""
kpi/rentals.py

Company-wide rental KPI formulas, groupable by suite category.

Formulas
--------
Revenue          = sum(permanence) + sum(consumption)
Ticket Average   = revenue / rentals
Total Rentals    = count(rentals)
Occupancy Rate   = occupied seconds / (suites * range seconds) * 100
ALOS             = stay seconds / stays checked in within the range
Giro             = rentals / suites / business days
RevPAR           = permanence revenue / suites / business days
TRevPAR          = total revenue / suites / business days

Occupancy and ALOS read STAYS, the rentals overlapping the range.  Occupancy
clips each stay to the range; ALOS counts whole stays by check-in.

Zero denominators yield 0.
"""

from __future__ import annotations

from decimal import Decimal

from app.domain.aggregates import Dimension
from app.domain.records import RecordKind, RentalRecord
from kpi.base import BaseKPIFormula, FormulaInputs, Unit
from kpi.money import ZERO, percentage, quantize, safe_divide

_RENTAL_DIMENSIONS = frozenset({Dimension.SUITE_CATEGORY, Dimension.DAY, Dimension.MONTH})


def _sum(values) -> Decimal:
    return sum(values, ZERO)


def _occupied_seconds(rentals: list[RentalRecord], inputs: FormulaInputs) -> int:
    """Seconds of each rental clipped to the range."""
    window = inputs.date_range
    total = 0.0
    for rental in rentals:
        start = max(rental.check_in, window.start)
        end = min(rental.check_out, window.stop)
        if end > start:
            total += (end - start).total_seconds()
    return int(total)


class _RentalFormula(BaseKPIFormula):
    service_prefix = "cp"
    primary_source = RecordKind.RENTALS
    sources = (RecordKind.RENTALS,)
    dimensions = _RENTAL_DIMENSIONS

    @staticmethod
    def _rentals(inputs: FormulaInputs) -> list[RentalRecord]:
        return list(inputs.of(RecordKind.RENTALS))

    @staticmethod
    def _suite_count(inputs: FormulaInputs) -> int:
        return len(inputs.of(RecordKind.SUITES))


class RevenueFormula(_RentalFormula):
    name = "revenue"
    rollup_names = {"totalValue": "totalAllValue"}
    total_field = "totalAllValue"
    units = {
        "permanenceValue": Unit.CURRENCY,
        "consumptionValue": Unit.CURRENCY,
        "totalValue": Unit.CURRENCY,
    }

    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        rentals = self._rentals(inputs)
        permanence = _sum(r.permanence_value for r in rentals)
        consumption = _sum(r.consumption_value for r in rentals)
        return {
            "permanenceValue": quantize(permanence),
            "consumptionValue": quantize(consumption),
            "totalValue": quantize(permanence + consumption),
        }


class TicketAverageFormula(_RentalFormula):
    name = "ticket_average"
    rollup_names = {"ticketAverage": "totalAllTicketAverage"}
    total_field = "totalAllTicketAverage"
    units = {
        "totalRentals": Unit.COUNT,
        "totalValue": Unit.CURRENCY,
        "ticketAverage": Unit.CURRENCY,
    }

    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        rentals = self._rentals(inputs)
        total = _sum(r.total_value for r in rentals)
        return {
            "totalRentals": len(rentals),
            "totalValue": quantize(total),
            "ticketAverage": quantize(safe_divide(total, len(rentals))),
        }


class TotalRentalsFormula(_RentalFormula):
    name = "total_rentals"
    rollup_names = {"totalRentals": "totalAllRentalsApartments"}
    total_field = "totalAllRentalsApartments"
    units = {"totalRentals": Unit.COUNT}

    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        return {"totalRentals": len(self._rentals(inputs))}


class OccupancyRateFormula(_RentalFormula):
    name = "occupancy_rate"
    primary_source = RecordKind.STAYS
    sources = (RecordKind.STAYS, RecordKind.SUITES)
    rollup_names = {"occupancyRate": "totalAllOccupancyRate"}
    total_field = "totalAllOccupancyRate"
    units = {
        "occupiedSeconds": Unit.COUNT,
        "availableSeconds": Unit.COUNT,
        "occupancyRate": Unit.RATE,
    }

    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        occupied = _occupied_seconds(list(inputs.of(RecordKind.STAYS)), inputs)
        available = int(self._suite_count(inputs) * inputs.date_range.seconds)
        return {
            "occupiedSeconds": occupied,
            "availableSeconds": available,
            "occupancyRate": percentage(occupied, available),
        }


class AverageLengthOfStayFormula(_RentalFormula):
    name = "alos"
    primary_source = RecordKind.STAYS
    sources = (RecordKind.STAYS,)
    rollup_names = {"averageOccupationTime": "totalAllAverageOccupationTime"}
    total_field = "totalAllAverageOccupationTime"
    units = {
        "totalRentals": Unit.COUNT,
        "occupationTime": Unit.DURATION,
        "averageOccupationTime": Unit.DURATION,
    }

    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        window = inputs.date_range
        stays = [s for s in inputs.of(RecordKind.STAYS) if window.contains(s.check_in)]
        occupied = int(sum((s.check_out - s.check_in).total_seconds() for s in stays))
        return {
            "totalRentals": len(stays),
            "occupationTime": occupied,
            "averageOccupationTime": int(safe_divide(occupied, len(stays))),
        }


class GiroFormula(_RentalFormula):
    name = "giro"
    sources = (RecordKind.RENTALS, RecordKind.SUITES)
    rollup_names = {"giro": "totalAllGiro"}
    total_field = "totalAllGiro"
    units = {"totalRentals": Unit.COUNT, "totalSuites": Unit.COUNT, "giro": Unit.NUMBER}

    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        rentals = len(self._rentals(inputs))
        suites = self._suite_count(inputs)
        return {
            "totalRentals": rentals,
            "totalSuites": suites,
            "giro": quantize(safe_divide(safe_divide(rentals, suites), inputs.business_days)),
        }


class RevparFormula(_RentalFormula):
    name = "revpar"
    sources = (RecordKind.RENTALS, RecordKind.SUITES)
    rollup_names = {"revpar": "totalAllRevpar"}
    total_field = "totalAllRevpar"
    units = {"permanenceValue": Unit.CURRENCY, "totalSuites": Unit.COUNT, "revpar": Unit.CURRENCY}

    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        permanence = _sum(r.permanence_value for r in self._rentals(inputs))
        suites = self._suite_count(inputs)
        return {
            "permanenceValue": quantize(permanence),
            "totalSuites": suites,
            "revpar": quantize(safe_divide(safe_divide(permanence, suites), inputs.business_days)),
        }


class TrevparFormula(_RentalFormula):
    name = "trevpar"
    sources = (RecordKind.RENTALS, RecordKind.SUITES)
    rollup_names = {"trevpar": "totalAllTrevpar"}
    total_field = "totalAllTrevpar"
    units = {"totalValue": Unit.CURRENCY, "totalSuites": Unit.COUNT, "trevpar": Unit.CURRENCY}

    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        total = _sum(r.total_value for r in self._rentals(inputs))
        suites = self._suite_count(inputs)
        return {
            "totalValue": quantize(total),
            "totalSuites": suites,
            "trevpar": quantize(safe_divide(safe_divide(total, suites), inputs.business_days)),
        }
