"""
app/domain/errors.py

Exception taxonomy shared by the KPI pipeline.

Every error carries the HTTP status class the API layer maps it to, so
routers translate failures without inspecting messages:

    InputError       → 400  (never retried)
    NoDataError      → 404  (distinct from a zero-valued aggregate)
    ComputeError     → 500  (wrapped with tenant/range context)
    PersistenceError → 500
"""

from __future__ import annotations

from typing import Any


class KpiError(Exception):
    """Base class for all KPI pipeline failures."""

    status_code: int = 500
    code: str = "kpi_error"

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


# ---------------------------------------------------------------------------
# Caller input errors
# ---------------------------------------------------------------------------


class InputError(KpiError):
    """Raised when caller-supplied parameters are unusable."""

    status_code = 400
    code = "invalid_input"


class InvalidFormatError(InputError):
    """Date string does not match ``DD/MM/YYYY`` or a tag is not recognised."""

    code = "invalid_format"


class InvalidDateError(InputError):
    """Date string has the right shape but is not a real calendar date."""

    code = "invalid_date"


class RangeInvertedError(InputError):
    """Start of range falls after its end."""

    code = "range_inverted"


class RangeTooLongError(InputError):
    """Custom range exceeds the configured maximum number of days."""

    code = "range_too_long"


class MissingParameterError(InputError):
    """A required request parameter was not supplied."""

    code = "missing_parameter"


class MissingPeriodError(MissingParameterError):
    """The period tag is required on this path and was not supplied."""

    code = "missing_period"


class UnknownKpiError(InputError):
    code = "unknown_kpi"


class UnsupportedDimensionError(InputError):
    code = "unsupported_dimension"


class UnknownTenantError(InputError):
    status_code = 404
    code = "unknown_tenant"


# ---------------------------------------------------------------------------
# Runtime failures
# ---------------------------------------------------------------------------


class NoDataError(KpiError):
    """The filtered record set for the requested range is empty."""

    status_code = 404
    code = "no_data"


class ComputeError(KpiError):
    """Unexpected failure inside the aggregation engine."""

    status_code = 500
    code = "compute_error"


class PersistenceError(KpiError):
    """Storage-layer failure while writing or reading snapshots."""

    status_code = 500
    code = "persistence_error"
