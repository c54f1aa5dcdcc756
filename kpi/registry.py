"""
kpi/registry.py

Formula registry keyed by KPI name.
"""

from __future__ import annotations

from app.domain.errors import UnknownKpiError
from kpi.base import BaseKPIFormula
from kpi.bookings import (
    BookingsRepresentativenessFormula,
    BookingsRevenueFormula,
    BookingsTicketAverageFormula,
)
from kpi.cleanings import CleaningsFormula
from kpi.rentals import (
    AverageLengthOfStayFormula,
    GiroFormula,
    OccupancyRateFormula,
    RevenueFormula,
    RevparFormula,
    TicketAverageFormula,
    TotalRentalsFormula,
    TrevparFormula,
)
from kpi.restaurant import RestaurantSalesFormula

FORMULA_REGISTRY: dict[str, BaseKPIFormula] = {
    formula.name: formula
    for formula in (
        BookingsTicketAverageFormula(),
        BookingsRevenueFormula(),
        BookingsRepresentativenessFormula(),
        RevenueFormula(),
        TicketAverageFormula(),
        TotalRentalsFormula(),
        OccupancyRateFormula(),
        AverageLengthOfStayFormula(),
        GiroFormula(),
        RevparFormula(),
        TrevparFormula(),
        CleaningsFormula(),
        RestaurantSalesFormula(),
    )
}


def get_formula(name: str) -> BaseKPIFormula:
    """
    Return the registered formula for *name*.

    Raises
    ------
    UnknownKpiError
        If no formula is registered under *name*.
    """
    formula = FORMULA_REGISTRY.get(name.strip().lower())
    if formula is None:
        raise UnknownKpiError(
            f"Unknown KPI {name!r}. Valid KPIs: {sorted(FORMULA_REGISTRY)}",
            context={"kpi": name},
        )
    return formula
