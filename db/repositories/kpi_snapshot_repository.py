"""
db/repositories/kpi_snapshot_repository.py

Persistence layer for KpiSnapshot records.

All methods are transaction-safe. The caller controls commit/rollback;
this repository never commits on its own.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.aggregates import AggregateRow
from app.domain.errors import PersistenceError
from db.models.kpi_snapshot import NATURAL_KEY_COLUMNS, KpiSnapshot

logger = logging.getLogger(__name__)

_UPDATE_COLUMNS: tuple[str, ...] = ("kpi_values", "total_all_value", "updated_at")
_DEFAULT_BATCH_SIZE = 500


class KpiSnapshotRepository:
    """
    Repository for writing and querying KpiSnapshot rows.

    Upsert semantics: writing a row whose natural key
    ``(company_id, kpi_name, period, created_date, dimension_key)`` already
    exists replaces ``kpi_values`` and ``total_all_value`` wholesale and
    refreshes ``updated_at``, in one ``INSERT … ON CONFLICT DO UPDATE``
    statement.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def upsert(self, row: AggregateRow) -> AggregateRow:
        """
        Upsert a single snapshot row.

        Parameters
        ----------
        row:
            Snapshot to store.

        Returns
        -------
        AggregateRow
            The row as written (not yet committed).

        Raises
        ------
        PersistenceError
            On any storage-layer failure.
        """
        try:
            await self._execute_upsert(_to_payload(row))
        except SQLAlchemyError as exc:
            logger.error("upsert failed key=%s: %s", row.natural_key, exc, exc_info=True)
            raise PersistenceError(
                f"Failed to upsert snapshot {row.kpi!r} for tenant={row.tenant_id}: {exc}",
                context={"tenant_id": row.tenant_id, "kpi": row.kpi, "period": row.period},
            ) from exc
        return row

    async def upsert_many(
        self,
        rows: Sequence[AggregateRow],
        *,
        batch_size: int = _DEFAULT_BATCH_SIZE,
    ) -> int:
        """
        Upsert multiple rows.

        Rows sharing a natural key within the same call are deduplicated in
        Python before hitting the database; the last occurrence wins.

        Returns
        -------
        int
            Number of distinct rows written (inserted + updated).
        """
        if not rows:
            return 0

        deduped = _deduplicate(rows)
        size = max(1, batch_size)
        try:
            for start in range(0, len(deduped), size):
                for row in deduped[start : start + size]:
                    await self._execute_upsert(_to_payload(row))
                await self._session.flush()
        except SQLAlchemyError as exc:
            logger.error("upsert_many failed rows=%d: %s", len(deduped), exc, exc_info=True)
            raise PersistenceError(
                f"Failed to upsert {len(deduped)} snapshots: {exc}",
                context={"rows": len(deduped)},
            ) from exc
        return len(deduped)

    async def upsert_many_atomic(
        self,
        rows: Sequence[AggregateRow],
        *,
        batch_size: int = _DEFAULT_BATCH_SIZE,
    ) -> int:
        """
        Transaction-safe wrapper around :meth:`upsert_many`.

        Wraps in a savepoint when already inside a transaction so the outer
        transaction is never implicitly committed; either every row lands or
        none does.
        """
        if not rows:
            return 0

        if self._session.in_transaction():
            async with self._session.begin_nested():
                return await self.upsert_many(rows, batch_size=batch_size)
        async with self._session.begin():
            return await self.upsert_many(rows, batch_size=batch_size)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def find(
        self,
        *,
        tenant_id: int,
        kpi: str,
        start: datetime,
        end: datetime,
        period: str | None = None,
    ) -> list[AggregateRow]:
        """
        Return snapshots whose ``created_date`` falls in ``[start, end]``.

        Ordered by ``created_date`` then ``dimension_key``, which puts the
        roll-up row (empty key) first within each date.
        """
        stmt = (
            select(KpiSnapshot)
            .where(
                KpiSnapshot.company_id == tenant_id,
                KpiSnapshot.kpi_name == kpi,
                KpiSnapshot.created_date >= _utc(start),
                KpiSnapshot.created_date <= _utc(end),
            )
            .order_by(KpiSnapshot.created_date, KpiSnapshot.dimension_key)
        )
        if period is not None:
            stmt = stmt.where(KpiSnapshot.period == period)

        try:
            snapshots = (await self._session.scalars(stmt)).all()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to read snapshots for tenant={tenant_id}: {exc}",
                context={"tenant_id": tenant_id, "kpi": kpi},
            ) from exc
        return [_to_row(snapshot) for snapshot in snapshots]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _execute_upsert(self, values: dict[str, Any]) -> None:
        """Dialect-aware upsert: PostgreSQL ``ON CONFLICT DO UPDATE`` or SQLite equivalent."""
        bind = self._session.get_bind()
        dialect_name = getattr(getattr(bind, "dialect", None), "name", "")

        stmt: Any
        if "postgresql" in str(dialect_name):
            from sqlalchemy.dialects.postgresql import insert as _pg_insert

            stmt = _pg_insert(KpiSnapshot).values(**values)
        else:
            from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

            stmt = _sqlite_insert(KpiSnapshot).values(**values)

        stmt = stmt.on_conflict_do_update(
            index_elements=list(NATURAL_KEY_COLUMNS),
            set_={column: getattr(stmt.excluded, column) for column in _UPDATE_COLUMNS},
        )
        await self._session.execute(stmt)


# ---------------------------------------------------------------------------
# Module-level helpers (no business logic)
# ---------------------------------------------------------------------------


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_payload(row: AggregateRow) -> dict[str, Any]:
    return {
        "company_id": row.tenant_id,
        "kpi_name": row.kpi,
        "period": row.period,
        "created_date": _utc(row.created_date),
        "dimension_key": row.dimension_key,
        "kpi_values": _serialise_values(row.values),
        "total_all_value": row.total_all_value,
        "updated_at": datetime.now(tz=timezone.utc),
    }


def _serialise_values(values: Any) -> dict[str, Any]:
    return {
        name: str(value) if isinstance(value, Decimal) else value
        for name, value in values.items()
    }


def _deserialise_values(values: dict[str, Any]) -> dict[str, Decimal | int]:
    parsed: dict[str, Decimal | int] = {}
    for name, value in values.items():
        if isinstance(value, int) and not isinstance(value, bool):
            parsed[name] = value
        else:
            parsed[name] = Decimal(str(value))
    return parsed


def _to_row(snapshot: KpiSnapshot) -> AggregateRow:
    return AggregateRow(
        tenant_id=snapshot.company_id,
        kpi=snapshot.kpi_name,
        period=snapshot.period,
        created_date=_utc(snapshot.created_date),
        dimension_key=snapshot.dimension_key,
        values=_deserialise_values(snapshot.kpi_values or {}),
        total_all_value=(
            Decimal(str(snapshot.total_all_value))
            if snapshot.total_all_value is not None
            else None
        ),
    )


def _deduplicate(rows: Sequence[AggregateRow]) -> list[AggregateRow]:
    """Last-write-wins deduplication keyed on the natural key."""
    seen: dict[tuple[Any, ...], AggregateRow] = {}
    for row in rows:
        key = (row.tenant_id, row.kpi, row.period, _utc(row.created_date), row.dimension_key)
        seen[key] = row
    return list(seen.values())
