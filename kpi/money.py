"""
kpi/money.py

Exact decimal helpers shared by every KPI formula.

Monetary values never pass through binary floating point.  Ratios whose
denominator is zero are defined as ``0``.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """
    Convert *value* to Decimal; ``None`` and unparsable values become zero.

    Floats go through ``str`` so ``0.1`` stays ``Decimal("0.1")``.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return ZERO


def safe_divide(numerator: Any, denominator: Any) -> Decimal:
    """numerator / denominator, or ``0`` when the denominator is zero."""
    divisor = to_decimal(denominator)
    if divisor == ZERO:
        return ZERO
    return to_decimal(numerator) / divisor


def quantize(value: Any, places: int = 2) -> Decimal:
    """Round half-up to *places* decimal places."""
    exponent = _CENT if places == 2 else Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def percentage(numerator: Any, denominator: Any) -> Decimal:
    """Ratio expressed as a percentage with two decimal places."""
    return quantize(safe_divide(numerator, denominator) * HUNDRED)


# ---------------------------------------------------------------------------
# pt-BR presentation
# ---------------------------------------------------------------------------


def _group_pt_br(value: Decimal) -> str:
    """``1234567.8`` → ``1.234.567,80``."""
    formatted = f"{quantize(value):,.2f}"
    return formatted.replace(",", "_").replace(".", ",").replace("_", ".")


def format_currency(value: Any) -> str:
    """Format as Brazilian reais, e.g. ``R$ 1.234,56``."""
    amount = to_decimal(value)
    sign = "-" if amount < ZERO else ""
    return f"{sign}R$ {_group_pt_br(abs(amount))}"


def format_percent(value: Any) -> str:
    """Format a percentage value, e.g. ``12,34%``."""
    return f"{_group_pt_br(to_decimal(value))}%"


def format_number(value: Any) -> str:
    """Format a plain decimal with pt-BR separators, e.g. ``1.234,50``."""
    return _group_pt_br(to_decimal(value))


def format_duration(seconds: Any) -> str:
    """Whole seconds as ``HH:MM:SS``; hours may exceed 24."""
    total = int(to_decimal(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
