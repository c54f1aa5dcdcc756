"""
app/services/presentation.py

Output formatting for computed KPI rows.

``numeric`` keeps machine-readable values (decimal strings, integer
counts).  ``currency`` renders pt-BR strings per the unit each formula
declares: ``R$ 1.234,56`` for money, ``12,34%`` for rates and ``HH:MM:SS``
for durations.  Counts and durations stay whole numbers in ``numeric``.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from app.domain.aggregates import AggregateRow
from app.domain.errors import InvalidFormatError
from app.tenancy.models import OutputFormat
from kpi.base import BaseKPIFormula, Unit
from kpi.money import format_currency, format_duration, format_number, format_percent, quantize


def parse_output_format(raw: str | None, default: OutputFormat) -> OutputFormat:
    if raw is None or not raw.strip():
        return default
    try:
        return OutputFormat(raw.strip().lower())
    except ValueError as exc:
        valid = [item.value for item in OutputFormat]
        raise InvalidFormatError(
            f"Unsupported format {raw!r}. Valid formats: {valid}",
            context={"format": raw},
        ) from exc


def format_value(unit: Unit, value: Decimal | int | None, output_format: OutputFormat) -> str | int | None:
    if value is None:
        return None
    if unit in (Unit.COUNT, Unit.DURATION):
        whole = int(value)
        if unit is Unit.DURATION and output_format is OutputFormat.CURRENCY:
            return format_duration(whole)
        return whole
    if output_format is OutputFormat.NUMERIC:
        return str(quantize(value)) if isinstance(value, Decimal) else value
    if unit is Unit.CURRENCY:
        return format_currency(value)
    if unit is Unit.RATE:
        return format_percent(value)
    return format_number(value)


def format_values(
    formula: BaseKPIFormula,
    values: Mapping[str, Decimal | int],
    output_format: OutputFormat,
) -> dict[str, Any]:
    return {
        name: format_value(formula.unit_of(name), value, output_format)
        for name, value in values.items()
    }


def format_row(formula: BaseKPIFormula, row: AggregateRow, output_format: OutputFormat) -> dict[str, Any]:
    """Presentation dict for one row; the natural key fields stay raw."""
    return {
        "created_date": row.created_date.isoformat(),
        "period": row.period,
        "dimension_key": row.dimension_key or None,
        "values": format_values(formula, row.values, output_format),
        "total_all_value": format_value(
            formula.unit_of(formula.total_field),
            row.total_all_value,
            output_format,
        ),
    }
