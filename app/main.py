from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from app.services.registry import KpiServices


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Runs before any service or database connection is initialised.
    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - A reporting database URL must be configured.
    - Every enabled tenant must have its operational URL variable set.
    """

    from app.config import get_tenancy_settings
    from app.tenancy.loader import load_tenant_configs
    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Reporting database URL -----------------------------------------
    if not any(
        os.getenv(name, "").strip()
        for name in ("DATABASE_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL")
    ):
        errors.append(
            "No reporting database URL configured. Set DATABASE_URL, "
            "CLOUD_DATABASE_URL or LOCAL_DATABASE_URL."
        )

    # --- Tenant operational URLs ----------------------------------------
    try:
        tenants = load_tenant_configs(config_path=get_tenancy_settings().config_path)
    except (ValueError, FileNotFoundError) as exc:
        errors.append(f"Tenant configuration is invalid: {exc}")
        tenants = []

    for tenant in tenants:
        if tenant.enabled and not os.getenv(tenant.database_url_env, "").strip():
            errors.append(
                f"{tenant.database_url_env} is not set for tenant {tenant.name!r}. "
                "Set it or disable the tenant."
            )

    if errors:
        raise RuntimeError(
            "Startup validation failed; missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def _check_db(services: KpiServices) -> None:
    """Run SELECT 1 against the reporting store. Raises RuntimeError if unreachable."""
    from sqlalchemy import text

    try:
        async with services.engines.reporting_engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


async def _check_schema(services: KpiServices) -> None:
    """
    Every table registered on Base.metadata must exist in the reporting
    store.  Missing tables abort startup so the operator runs migrations
    before serving traffic.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401 (registers ORM models on Base.metadata)
    from db.base import Base

    async with services.engines.reporting_engine.connect() as connection:
        actual: set[str] = set(
            await connection.run_sync(lambda sync_conn: sa_inspect(sync_conn).get_table_names())
        )
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        log = logging.getLogger(__name__)
        log.critical(
            "Schema mismatch: %d table(s) defined in ORM metadata are absent from "
            "the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Build services, validate the reporting store, start the scheduler; tear down on exit."""
    from app.config import get_scheduler_settings
    from app.scheduler.jobs import build_scheduler
    from app.services.registry import build_services

    log = logging.getLogger(__name__)
    services: KpiServices | None = getattr(application.state, "services", None)
    owns_services = services is None
    if owns_services:
        services = build_services()
        await _check_db(services)
        log.info("Database connectivity confirmed")
        await _check_schema(services)
        log.info("Database schema validated")
        application.state.services = services

    scheduler = None
    if get_scheduler_settings().enabled:
        scheduler = build_scheduler(services)
        scheduler.start()
        log.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            log.info("Scheduler shut down")
        if owns_services:
            await services.aclose()
            application.state.services = None


def create_app(services: KpiServices | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    A prebuilt ``services`` graph skips environment validation and the
    startup database checks.
    """

    if services is None:
        _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Hospitality KPI API",
        version="1.0.0",
        lifespan=_lifespan,
    )
    application.state.services = services

    from app.api.routers import cache_router, cron_router, kpi_router

    application.include_router(kpi_router)
    application.include_router(cache_router)
    application.include_router(cron_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
