"""
db/models/operational.py

Read-only mapping of a tenant's operational tables.

These tables belong to the property-management system of each business
unit; this service only selects from them.
"""

from __future__ import annotations

from datetime import datetime, time
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Time
from sqlalchemy.orm import Mapped, mapped_column

from db.base import OperationalBase


class SuiteCategory(OperationalBase):
    __tablename__ = "suite_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    description: Mapped[str] = mapped_column(String(120), nullable=False)


class Suite(OperationalBase):
    __tablename__ = "suites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    suite_category_id: Mapped[int] = mapped_column(ForeignKey("suite_categories.id"), nullable=False)
    deleted_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class RentalApartment(OperationalBase):
    __tablename__ = "rental_apartments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    suite_id: Mapped[int] = mapped_column(ForeignKey("suites.id"), nullable=False)
    check_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    check_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    permanence_value_liquid: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    consumption_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    end_occupation_type: Mapped[str | None] = mapped_column(String(40), nullable=True)


class Booking(OperationalBase):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date_service: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    price_rental: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    id_type_origin_booking: Mapped[int | None] = mapped_column(Integer, nullable=True)
    canceled: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rental_apartment_id: Mapped[int | None] = mapped_column(
        ForeignKey("rental_apartments.id"), nullable=True
    )


class Employee(OperationalBase):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    business_start_time: Mapped[time | None] = mapped_column(Time, nullable=True)


class ApartmentCleaning(OperationalBase):
    __tablename__ = "apartment_cleanings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    suite_id: Mapped[int] = mapped_column(ForeignKey("suites.id"), nullable=False)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reason_end: Mapped[str | None] = mapped_column(String(40), nullable=True)


class RestaurantSale(OperationalBase):
    __tablename__ = "restaurant_sales"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sold_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    canceled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
