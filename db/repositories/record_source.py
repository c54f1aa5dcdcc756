"""
db/repositories/record_source.py

Read-only SQL access to a tenant's operational store.

Queries filter by date range only and map rows into the frozen records in
:mod:`app.domain.records`; tenant exclusion rules are applied by the
aggregation engine.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import ColumnElement, and_, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.domain.periods import DateRange
from app.domain.records import (
    BookingRecord,
    CleaningRecord,
    RecordKind,
    RentalRecord,
    RestaurantSaleRecord,
    SuiteRecord,
)
from db.models.operational import (
    ApartmentCleaning,
    Booking,
    Employee,
    RentalApartment,
    RestaurantSale,
    Suite,
    SuiteCategory,
)

logger = logging.getLogger(__name__)


class SqlRecordSource:
    """
    Record source backed by one tenant's operational database.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._sessions = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async def fetch(self, kind: RecordKind, date_range: DateRange) -> Sequence[Any]:
        if kind is RecordKind.BOOKINGS:
            return await self._bookings(date_range)
        if kind is RecordKind.RENTALS:
            return await self._rentals(
                RentalApartment.check_out.between(date_range.start, date_range.end)
            )
        if kind is RecordKind.STAYS:
            return await self._rentals(
                and_(
                    RentalApartment.check_in <= date_range.end,
                    RentalApartment.check_out >= date_range.start,
                )
            )
        if kind is RecordKind.SUITES:
            return await self._suites()
        if kind is RecordKind.CLEANINGS:
            return await self._cleanings(date_range)
        if kind is RecordKind.RESTAURANT_SALES:
            return await self._restaurant_sales(date_range)
        raise ValueError(f"Unsupported record kind {kind!r}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _bookings(self, date_range: DateRange) -> list[BookingRecord]:
        stmt = select(Booking).where(
            Booking.date_service.between(date_range.start, date_range.end)
        )
        async with self._sessions() as session:
            rows = (await session.scalars(stmt)).all()

        logger.debug("fetched bookings count=%d", len(rows))
        return [
            BookingRecord(
                id=row.id,
                date_service=_aware(row.date_service),
                price_rental=row.price_rental,
                origin_type_id=row.id_type_origin_booking,
                start_date=_aware(row.start_date) if row.start_date else None,
                canceled=row.canceled is not None,
                rental_apartment_id=row.rental_apartment_id,
            )
            for row in rows
        ]

    async def _rentals(self, condition: ColumnElement[bool]) -> list[RentalRecord]:
        stmt = (
            select(RentalApartment, SuiteCategory.description)
            .join(Suite, Suite.id == RentalApartment.suite_id)
            .join(SuiteCategory, SuiteCategory.id == Suite.suite_category_id)
            .where(condition)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).all()

        logger.debug("fetched rentals count=%d", len(rows))
        return [
            RentalRecord(
                id=rental.id,
                suite_id=rental.suite_id,
                suite_category=category,
                check_in=_aware(rental.check_in),
                check_out=_aware(rental.check_out),
                permanence_value=rental.permanence_value_liquid or Decimal("0"),
                consumption_value=rental.consumption_value or Decimal("0"),
                end_occupation_type=rental.end_occupation_type,
            )
            for rental, category in rows
        ]

    async def _suites(self) -> list[SuiteRecord]:
        stmt = (
            select(Suite.id, SuiteCategory.description)
            .join(SuiteCategory, SuiteCategory.id == Suite.suite_category_id)
            .where(Suite.deleted_date.is_(None))
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).all()
        return [SuiteRecord(id=suite_id, suite_category=category) for suite_id, category in rows]

    async def _cleanings(self, date_range: DateRange) -> list[CleaningRecord]:
        stmt = (
            select(ApartmentCleaning, Employee.name, Employee.business_start_time)
            .join(Employee, Employee.id == ApartmentCleaning.employee_id, isouter=True)
            .where(ApartmentCleaning.end_date.between(date_range.start, date_range.end))
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).all()

        logger.debug("fetched cleanings count=%d", len(rows))
        return [
            CleaningRecord(
                id=cleaning.id,
                suite_id=cleaning.suite_id,
                employee_id=cleaning.employee_id,
                start_date=_aware(cleaning.start_date),
                end_date=_aware(cleaning.end_date) if cleaning.end_date else None,
                reason_end=cleaning.reason_end,
                employee_name=employee_name,
                shift_start=shift_start,
            )
            for cleaning, employee_name, shift_start in rows
        ]

    async def _restaurant_sales(self, date_range: DateRange) -> list[RestaurantSaleRecord]:
        stmt = select(RestaurantSale).where(
            RestaurantSale.sold_at.between(date_range.start, date_range.end)
        )
        async with self._sessions() as session:
            rows = (await session.scalars(stmt)).all()
        return [
            RestaurantSaleRecord(
                id=row.id,
                sold_at=_aware(row.sold_at),
                total_value=row.total_value,
                canceled=row.canceled,
            )
            for row in rows
        ]


def _aware(value: datetime) -> datetime:
    """Treat naive driver values as UTC so range comparisons stay valid."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
