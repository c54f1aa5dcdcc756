"""
kpi/restaurant.py

Direct restaurant sales formula.
"""

from __future__ import annotations

from decimal import Decimal

from app.domain.records import RecordKind
from kpi.base import BaseKPIFormula, FormulaInputs, Unit
from kpi.money import ZERO, quantize, safe_divide, to_decimal


class RestaurantSalesFormula(BaseKPIFormula):
    name = "restaurant_sales"
    service_prefix = "rt"
    primary_source = RecordKind.RESTAURANT_SALES
    sources = (RecordKind.RESTAURANT_SALES,)
    rollup_names = {
        "totalValue": "totalAllValue",
        "ticketAverage": "totalAllTicketAverage",
    }
    total_field = "totalAllValue"
    units = {
        "totalSales": Unit.COUNT,
        "totalValue": Unit.CURRENCY,
        "ticketAverage": Unit.CURRENCY,
    }

    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        sales = inputs.of(RecordKind.RESTAURANT_SALES)
        total = sum((to_decimal(s.total_value) for s in sales), ZERO)
        return {
            "totalSales": len(sales),
            "totalValue": quantize(total),
            "ticketAverage": quantize(safe_divide(total, len(sales))),
        }
