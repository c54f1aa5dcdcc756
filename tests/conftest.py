"""
Shared fixtures: an in-memory record source, a UTC test tenant and a fixed
clock.  Nothing here touches an operational database.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.domain.periods import BoundaryConvention
from app.domain.records import BookingRecord, RecordKind
from app.tenancy.models import TenantConfig

FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)

_DATE_FIELDS = {
    RecordKind.BOOKINGS: "date_service",
    RecordKind.RENTALS: "check_out",
    RecordKind.CLEANINGS: "end_date",
    RecordKind.RESTAURANT_SALES: "sold_at",
}


class FakeRecordSource:
    """
    Filters canned records by the kind's date field, like the SQL source;
    STAYS match on overlap with the range.

    Tracks calls and the peak number of concurrent fetches.
    """

    def __init__(self, records=None, *, delay: float = 0.0, error: Exception | None = None) -> None:
        self.records = records or {}
        self.delay = delay
        self.error = error
        self.calls: list[tuple[RecordKind, object]] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def fetch(self, kind, date_range):
        self.calls.append((kind, date_range))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            items = self.records.get(kind, [])
            if kind.is_inventory:
                return list(items)
            if kind is RecordKind.STAYS:
                return [
                    item
                    for item in items
                    if item.check_in <= date_range.end and item.check_out >= date_range.start
                ]
            field = _DATE_FIELDS[kind]
            return [
                item
                for item in items
                if getattr(item, field) is not None and date_range.contains(getattr(item, field))
            ]
        finally:
            self.in_flight -= 1


def booking(
    booking_id: int,
    price: str | None,
    day: int,
    *,
    origin: int = 1,
    canceled: bool = False,
    month: int = 3,
) -> BookingRecord:
    served = datetime(2024, month, day, 12, 0, tzinfo=timezone.utc)
    return BookingRecord(
        id=booking_id,
        date_service=served,
        price_rental=Decimal(price) if price is not None else None,
        origin_type_id=origin,
        start_date=served,
        canceled=canceled,
        rental_apartment_id=booking_id,
    )


@pytest.fixture()
def tenant() -> TenantConfig:
    return TenantConfig(
        name="test",
        company_id=7,
        database_url_env="TEST_DATABASE_URL",
        boundary=BoundaryConvention(start_hour=0, timezone="UTC"),
        suite_categories=("STANDARD", "MASTER"),
    )


@pytest.fixture()
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture()
def reporting_store(tmp_path):
    """Session factory over a fresh SQLite reporting store with tables created."""
    from db.base import Base
    from db.models import KpiSnapshot  # noqa: F401
    from db.session import build_session_factory, create_db_engine

    engine = create_db_engine(f"sqlite:///{tmp_path / 'reporting.db'}")

    async def create() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create())
    yield build_session_factory(engine)
    asyncio.run(engine.dispose())


@pytest.fixture()
def empty_store(tmp_path):
    """Session factory over a SQLite file with no tables."""
    from db.session import build_session_factory, create_db_engine

    engine = create_db_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    yield build_session_factory(engine)
    asyncio.run(engine.dispose())
