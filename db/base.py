"""
db/base.py

Declarative bases and shared mixins for all SQLAlchemy models.

``Base`` owns the reporting store schema (managed by Alembic).
``OperationalBase`` maps the tenants' read-only operational tables; its
metadata is never migrated from here.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Reporting-store declarative base.
    All snapshot models must inherit from this class.
    """

    type_annotation_map: dict[type, Any] = {}


class OperationalBase(DeclarativeBase):
    """
    Declarative base for tenant operational tables (read-only mapping).
    """


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at to any model.
    updated_at is refreshed on ORM updates via onupdate; upserts set it
    explicitly.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
    )
