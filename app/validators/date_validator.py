"""
app/validators/date_validator.py

Explicit validation for ``DD/MM/YYYY`` request dates.

Validators never raise: they return a result holding either the parsed
value or the typed error, and the caller decides when to unwrap.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

from app.domain.errors import (
    InputError,
    InvalidDateError,
    InvalidFormatError,
    MissingParameterError,
    RangeInvertedError,
    RangeTooLongError,
)

_DATE_PATTERN = re.compile(r"^\d{2}/\d{2}/\d{4}$")


@dataclass(frozen=True)
class DateValidationResult:
    """
    Outcome of validating one date string.
    """

    value: date | None = None
    error: InputError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> date:
        if self.error is not None:
            raise self.error
        if self.value is None:
            raise ValueError("Validation result has neither a value nor an error.")
        return self.value


@dataclass(frozen=True)
class DateRangeValidationResult:
    """
    Outcome of validating a start/end pair.
    """

    start: date | None = None
    end: date | None = None
    error: InputError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> tuple[date, date]:
        if self.error is not None:
            raise self.error
        if self.start is None or self.end is None:
            raise ValueError("Validation result has neither a range nor an error.")
        return self.start, self.end


def validate_business_date(raw: str | None, *, field: str = "date") -> DateValidationResult:
    """
    Parse a ``DD/MM/YYYY`` string into a calendar date.

    The numeric parts are round-tripped through ``date`` construction and
    compared back, so ``31/02/2024`` is rejected instead of rolling over.
    """

    if raw is None or not raw.strip():
        return DateValidationResult(
            error=MissingParameterError(f"{field} is required.", context={"field": field})
        )

    candidate = raw.strip()
    if not _DATE_PATTERN.match(candidate):
        return DateValidationResult(
            error=InvalidFormatError(
                f"Invalid {field} format {candidate!r}. Use DD/MM/YYYY.",
                context={"field": field, "value": candidate},
            )
        )

    day, month, year = (int(part) for part in candidate.split("/"))
    try:
        parsed = date(year, month, day)
    except ValueError:
        parsed = None

    if parsed is None or (parsed.day, parsed.month, parsed.year) != (day, month, year):
        return DateValidationResult(
            error=InvalidDateError(
                f"Invalid {field} {candidate!r}: not a real calendar date.",
                context={"field": field, "value": candidate},
            )
        )

    return DateValidationResult(value=parsed)


def validate_date_range(
    raw_start: str | None,
    raw_end: str | None,
    *,
    max_days: int = 0,
) -> DateRangeValidationResult:
    """
    Validate a start/end pair of ``DD/MM/YYYY`` strings.

    ``max_days`` of zero disables the length check.
    """

    start_result = validate_business_date(raw_start, field="startDate")
    if not start_result.ok:
        return DateRangeValidationResult(error=start_result.error)

    end_result = validate_business_date(raw_end, field="endDate")
    if not end_result.ok:
        return DateRangeValidationResult(error=end_result.error)

    start = start_result.unwrap()
    end = end_result.unwrap()
    if start > end:
        return DateRangeValidationResult(
            error=RangeInvertedError(
                "startDate must not be after endDate.",
                context={"startDate": raw_start, "endDate": raw_end},
            )
        )

    span_days = (end - start).days + 1
    if max_days > 0 and span_days > max_days:
        return DateRangeValidationResult(
            error=RangeTooLongError(
                f"Range of {span_days} days exceeds the maximum of {max_days} days.",
                context={"days": span_days, "max_days": max_days},
            )
        )

    return DateRangeValidationResult(start=start, end=end)
