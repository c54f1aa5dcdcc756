"""create kpi_snapshots table

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "kpi_snapshots",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False,
                  comment="Tenant company identifier"),
        sa.Column("kpi_name", sa.String(length=64), nullable=False,
                  comment="Registered KPI formula name"),
        sa.Column("period", sa.String(length=32), nullable=False,
                  comment="Period tag the snapshot was computed for"),
        sa.Column("created_date", sa.DateTime(timezone=True), nullable=False,
                  comment="End instant of the range the snapshot covers"),
        sa.Column(
            "dimension_key",
            sa.String(length=64),
            server_default="",
            nullable=False,
            comment="Partition key; empty for the roll-up row",
        ),
        sa.Column(
            "kpi_values",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="Computed values keyed by value name",
        ),
        sa.Column("total_all_value", sa.Numeric(precision=18, scale=4), nullable=True,
                  comment="Tenant-wide total across all dimension keys"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "company_id",
            "kpi_name",
            "period",
            "created_date",
            "dimension_key",
            name="uq_kpi_snapshots_natural_key",
        ),
    )
    op.create_index(
        "ix_kpi_snapshots_company_kpi",
        "kpi_snapshots",
        ["company_id", "kpi_name"],
        unique=False,
    )
    op.create_index(
        "ix_kpi_snapshots_created_date",
        "kpi_snapshots",
        ["created_date"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_kpi_snapshots_created_date", table_name="kpi_snapshots")
    op.drop_index("ix_kpi_snapshots_company_kpi", table_name="kpi_snapshots")
    op.drop_table("kpi_snapshots")
