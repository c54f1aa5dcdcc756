"""
tests/test_kpi_snapshot_repository.py

Integration tests for KpiSnapshotRepository against a file-backed SQLite
database (aiosqlite).

Coverage
--------
- upsert inserts, then replaces values on the natural key
- upsert_many deduplicates within one call (last write wins)
- upsert_many_atomic opens its own transaction
- find: range filter, ordering, value types, optional period filter
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.domain.aggregates import AggregateRow
from db.models import KpiSnapshot
from db.repositories.kpi_snapshot_repository import KpiSnapshotRepository

UTC = timezone.utc
DAY_END = datetime(2024, 3, 14, 23, 59, 59, 999000, tzinfo=UTC)


def _row(**overrides) -> AggregateRow:
    values = {
        "tenant_id": 7,
        "kpi": "bookings_ticket_average",
        "period": "LAST_7_D",
        "created_date": DAY_END,
        "dimension_key": "",
        "values": {"totalBookings": 3, "totalAllTicketAverage": Decimal("200.00")},
        "total_all_value": Decimal("200.00"),
    }
    values.update(overrides)
    return AggregateRow(**values)


@pytest.fixture()
def session_factory(reporting_store):
    return reporting_store


def _run(session_factory, operation):
    async def scenario():
        async with session_factory() as session:
            result = await operation(session, KpiSnapshotRepository(session))
            await session.commit()
            return result

    return asyncio.run(scenario())


async def _count(session) -> int:
    return (await session.scalar(select(func.count()).select_from(KpiSnapshot))) or 0


class TestUpsert:
    def test_upsert_then_replace(self, session_factory) -> None:
        _run(session_factory, lambda s, repo: repo.upsert(_row()))
        _run(
            session_factory,
            lambda s, repo: repo.upsert(
                _row(values={"totalBookings": 4, "totalAllTicketAverage": Decimal("250.00")},
                     total_all_value=Decimal("250.00"))
            ),
        )

        async def check(session, repo):
            return await _count(session), await repo.find(
                tenant_id=7, kpi="bookings_ticket_average", start=DAY_END, end=DAY_END
            )

        count, rows = _run(session_factory, check)
        assert count == 1
        assert rows[0].values == {"totalBookings": 4, "totalAllTicketAverage": Decimal("250.00")}
        assert rows[0].total_all_value == Decimal("250.00")

    def test_upsert_many_deduplicates(self, session_factory) -> None:
        rows = [
            _row(dimension_key="BOOKING", total_all_value=Decimal("1")),
            _row(dimension_key="BOOKING", total_all_value=Decimal("2")),
            _row(),
        ]
        written = _run(session_factory, lambda s, repo: repo.upsert_many(rows))
        assert written == 2

        async def check(session, repo):
            return await repo.find(tenant_id=7, kpi="bookings_ticket_average", start=DAY_END, end=DAY_END)

        stored = _run(session_factory, check)
        assert [r.dimension_key for r in stored] == ["", "BOOKING"]
        assert stored[1].total_all_value == Decimal("2")

    def test_upsert_many_empty(self, session_factory) -> None:
        assert _run(session_factory, lambda s, repo: repo.upsert_many([])) == 0

    def test_upsert_many_atomic_outside_transaction(self, session_factory) -> None:
        async def scenario():
            async with session_factory() as session:
                written = await KpiSnapshotRepository(session).upsert_many_atomic([_row()])
                return written, await _count(session)

        assert asyncio.run(scenario()) == (1, 1)


class TestFind:
    def test_range_order_and_types(self, session_factory) -> None:
        earlier = datetime(2024, 3, 7, 23, 59, 59, 999000, tzinfo=UTC)
        outside = datetime(2024, 2, 1, 23, 59, 59, 999000, tzinfo=UTC)
        rows = [
            _row(dimension_key="BOOKING"),
            _row(),
            _row(created_date=earlier),
            _row(created_date=outside),
            _row(kpi="revenue"),
            _row(tenant_id=8),
        ]
        _run(session_factory, lambda s, repo: repo.upsert_many(rows))

        async def check(session, repo):
            return await repo.find(
                tenant_id=7,
                kpi="bookings_ticket_average",
                start=datetime(2024, 3, 1, tzinfo=UTC),
                end=DAY_END,
            )

        found = _run(session_factory, check)
        assert [(r.created_date, r.dimension_key) for r in found] == [
            (earlier, ""),
            (DAY_END, ""),
            (DAY_END, "BOOKING"),
        ]
        assert isinstance(found[0].values["totalBookings"], int)
        assert isinstance(found[0].values["totalAllTicketAverage"], Decimal)
        assert found[0].created_date.tzinfo is not None

    def test_period_filter(self, session_factory) -> None:
        _run(session_factory, lambda s, repo: repo.upsert_many([_row(), _row(period="CUSTOM")]))

        async def check(session, repo):
            return await repo.find(
                tenant_id=7, kpi="bookings_ticket_average", start=DAY_END, end=DAY_END, period="CUSTOM"
            )

        found = _run(session_factory, check)
        assert [r.period for r in found] == ["CUSTOM"]
