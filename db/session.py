"""
db/session.py

Async SQLAlchemy engines and session factories.

One engine serves the shared reporting store; each tenant's operational
store gets its own lazily created engine, keyed by the env var naming its
URL.
"""

from __future__ import annotations

import os

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from db.config import normalize_async_url, resolve_database_url, resolve_tenant_database_url


def _get_bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def create_db_engine(url: str) -> AsyncEngine:
    """
    Build an async engine; pool sizing applies to PostgreSQL only.
    """

    database_url = normalize_async_url(url)
    if database_url.startswith("sqlite"):
        # one connection per checkout; file databases only
        return create_async_engine(
            database_url,
            echo=_get_bool_env("SQL_ECHO", default=False),
            poolclass=NullPool,
        )

    return create_async_engine(
        database_url,
        echo=_get_bool_env("SQL_ECHO", default=False),
        pool_pre_ping=True,
        pool_recycle=_get_int_env("DB_POOL_RECYCLE", 1800),
        pool_size=_get_int_env("DB_POOL_SIZE", 5),
        max_overflow=_get_int_env("DB_MAX_OVERFLOW", 10),
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


class EngineRegistry:
    """
    Owns the reporting engine and every tenant engine for one process.
    """

    def __init__(self, *, reporting_url: str | None = None) -> None:
        self._reporting_url = reporting_url
        self._reporting_engine: AsyncEngine | None = None
        self._reporting_sessions: async_sessionmaker[AsyncSession] | None = None
        self._tenant_engines: dict[str, AsyncEngine] = {}

    @property
    def reporting_engine(self) -> AsyncEngine:
        """Return the reporting engine, creating it on first access."""
        if self._reporting_engine is None:
            self._reporting_engine = create_db_engine(self._reporting_url or resolve_database_url())
        return self._reporting_engine

    def reporting_session(self) -> AsyncSession:
        if self._reporting_sessions is None:
            self._reporting_sessions = build_session_factory(self.reporting_engine)
        return self._reporting_sessions()

    def tenant_engine(self, database_url_env: str) -> AsyncEngine:
        """Return the operational engine for a tenant's URL variable."""
        engine = self._tenant_engines.get(database_url_env)
        if engine is None:
            engine = create_db_engine(resolve_tenant_database_url(database_url_env))
            self._tenant_engines[database_url_env] = engine
        return engine

    async def dispose(self) -> None:
        for engine in self._tenant_engines.values():
            await engine.dispose()
        self._tenant_engines.clear()
        if self._reporting_engine is not None:
            await self._reporting_engine.dispose()
            self._reporting_engine = None
            self._reporting_sessions = None

