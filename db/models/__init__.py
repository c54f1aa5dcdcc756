"""
Model package exports.

Import the reporting models here so metadata registration and Alembic
autogeneration work without extra imports.  Operational models live on a
separate metadata and are exported for the record source only.
"""

from db.models.kpi_snapshot import KpiSnapshot
from db.models.operational import (
    ApartmentCleaning,
    Booking,
    Employee,
    RentalApartment,
    RestaurantSale,
    Suite,
    SuiteCategory,
)

__all__ = [
    "ApartmentCleaning",
    "Booking",
    "Employee",
    "KpiSnapshot",
    "RentalApartment",
    "RestaurantSale",
    "Suite",
    "SuiteCategory",
]
