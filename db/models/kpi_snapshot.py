"""
db/models/kpi_snapshot.py

Persisted output of the aggregation engine.
One row per natural key: tenant, KPI, period, created date, dimension.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin

UPSERT_CONSTRAINT = "uq_kpi_snapshots_natural_key"
NATURAL_KEY_COLUMNS: tuple[str, ...] = (
    "company_id",
    "kpi_name",
    "period",
    "created_date",
    "dimension_key",
)


class KpiSnapshot(TimestampMixin, Base):
    """
    Stores one AggregateRow.

    ``kpi_values`` holds the value mapping with decimals serialised as
    strings, e.g.::

        {"totalBookings": 3, "totalValue": "600.00", "ticketAverage": "200.00"}

    The unique constraint on the natural key drives upsert semantics:
    recomputing the same snapshot replaces the stored values instead of
    inserting a duplicate.  ``dimension_key`` is the empty string for the
    roll-up row so the constraint also covers it.
    """

    __tablename__ = "kpi_snapshots"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    company_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Tenant company identifier",
    )
    kpi_name: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Registered KPI formula name",
    )
    period: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Period tag the snapshot was computed for",
    )
    created_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="End instant of the range the snapshot covers",
    )
    dimension_key: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="",
        server_default="",
        comment="Partition key; empty for the roll-up row",
    )
    kpi_values: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
        comment="Computed values keyed by value name",
    )
    total_all_value: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 4),
        nullable=True,
        comment="Tenant-wide total across all dimension keys",
    )

    __table_args__ = (
        UniqueConstraint(*NATURAL_KEY_COLUMNS, name=UPSERT_CONSTRAINT),
        Index("ix_kpi_snapshots_company_kpi", "company_id", "kpi_name"),
        Index("ix_kpi_snapshots_created_date", "created_date"),
    )
