"""
app/validators package marker.
"""

from app.validators.date_validator import (
    DateRangeValidationResult,
    DateValidationResult,
    validate_business_date,
    validate_date_range,
)

__all__ = [
    "DateRangeValidationResult",
    "DateValidationResult",
    "validate_business_date",
    "validate_date_range",
]
