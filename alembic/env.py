"""
Alembic environment for the shared reporting store.

Only ``Base.metadata`` (the ``kpi_snapshots`` table) is migrated from here.
Tenant operational tables live on ``OperationalBase`` and are owned by the
operational systems; autogenerate ignores any table it does not know.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from db.base import Base
from db.config import load_env_files, normalize_postgres_url, resolve_database_url
from db.models import KpiSnapshot  # noqa: F401 (registers the table on Base.metadata)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _resolve_database_url() -> str:
    """
    Resolve the reporting DB URL for migrations.

    Priority:
    1) `-x db_url=...` override for one-off migration targets
    2) ALEMBIC_DATABASE_URL
    3) sqlalchemy.url from alembic.ini
    4) DATABASE_URL / CLOUD_DATABASE_URL / LOCAL_DATABASE_URL

    Migrations run on the synchronous psycopg driver; the application uses
    the same ``postgresql+psycopg`` URL through its async engine.
    """

    load_env_files()

    x_args = context.get_x_argument(as_dictionary=True)
    raw_url = (
        x_args.get("db_url")
        or os.getenv("ALEMBIC_DATABASE_URL")
        or (config.get_main_option("sqlalchemy.url") or "").strip()
    )
    url = normalize_postgres_url(raw_url) if raw_url else resolve_database_url()

    if not url.startswith("postgresql"):
        raise RuntimeError("Alembic is configured for PostgreSQL URLs only.")

    return url


def _include_object(obj, name, type_, reflected, compare_to) -> bool:
    """Skip reflected tables that are not part of the reporting metadata."""
    if type_ == "table" and reflected and compare_to is None:
        return name in target_metadata.tables
    return True


def run_migrations_offline() -> None:
    url = _resolve_database_url()

    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
        include_object=_include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = _resolve_database_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        future=True,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
            include_object=_include_object,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
