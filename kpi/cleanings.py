"""
kpi/cleanings.py

Housekeeping KPI formula.

Counts completed suite cleanings and averages them over the business
days on which at least one cleaning finished.  Groupable by shift.
"""

from __future__ import annotations

from decimal import Decimal

from app.domain.aggregates import Dimension
from app.domain.records import CleaningRecord, RecordKind
from kpi.base import BaseKPIFormula, FormulaInputs, Unit
from kpi.money import quantize, safe_divide


class CleaningsFormula(BaseKPIFormula):
    name = "cleanings"
    service_prefix = "gv"
    primary_source = RecordKind.CLEANINGS
    sources = (RecordKind.CLEANINGS,)
    dimensions = frozenset({Dimension.SHIFT, Dimension.DAY, Dimension.MONTH})
    rollup_names = {
        "totalSuitesCleaned": "totalAllSuitesCleaned",
        "averageDailyCleaning": "totalAllAverageDailyCleaning",
    }
    total_field = "totalAllSuitesCleaned"
    units = {
        "totalSuitesCleaned": Unit.COUNT,
        "totalDaysWorked": Unit.COUNT,
        "totalEmployees": Unit.COUNT,
        "averageDailyCleaning": Unit.NUMBER,
    }

    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        cleanings: list[CleaningRecord] = list(inputs.of(RecordKind.CLEANINGS))
        days_worked = {
            inputs.boundary.business_day_of(c.end_date)
            for c in cleanings
            if c.end_date is not None
        }
        employees = {c.employee_id for c in cleanings}
        return {
            "totalSuitesCleaned": len(cleanings),
            "totalDaysWorked": len(days_worked),
            "totalEmployees": len(employees),
            "averageDailyCleaning": quantize(safe_divide(len(cleanings), len(days_worked))),
        }
