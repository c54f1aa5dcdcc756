"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache

from db.config import load_env_files

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_int_list_env(name: str, default: tuple[int, ...]) -> tuple[int, ...]:
    """
    Read a comma-separated list of integers; invalid tokens are skipped.
    """

    raw = _get_str_env(name, "")
    if not raw:
        return default
    values: list[int] = []
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        try:
            values.append(int(token))
        except ValueError:
            logger.warning("%s: skipping invalid integer %r", name, token)
    return tuple(values) or default


def _get_mapping_env(name: str) -> dict[str, int]:
    """
    Parse ``KEY=seconds,KEY=seconds`` pairs; malformed pairs are skipped.
    """

    raw = _get_str_env(name, "")
    mapping: dict[str, int] = {}
    for token in raw.split(","):
        if "=" not in token:
            continue
        key, value = token.split("=", 1)
        try:
            mapping[key.strip().upper()] = int(value.strip())
        except ValueError:
            logger.warning("%s: skipping invalid entry %r", name, token)
    return mapping


@dataclass(frozen=True)
class PeriodSettings:
    """
    Default business-day boundary and range limits.
    """

    start_hour: int = 0
    timezone: str = "America/Sao_Paulo"
    max_range_days: int = 0


@dataclass(frozen=True)
class CacheSettings:
    """
    In-process KPI cache sizing and TTL overrides (seconds, keyed by period).
    """

    max_entries: int = 100
    ttl_overrides: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class AggregationSettings:
    """
    Query concurrency and timeout settings for operational stores.
    """

    concurrency_limit: int = 5
    fetch_timeout_seconds: float = 30.0


@dataclass(frozen=True)
class SchedulerSettings:
    """
    Cron schedule for the KPI recomputation batch.
    """

    enabled: bool = True
    hours: tuple[int, ...] = (0, 6, 16)
    minute: int = 0
    timezone: str = "America/Sao_Paulo"
    misfire_grace_seconds: int = 3600


@dataclass(frozen=True)
class TenancySettings:
    """
    Location of the tenant definitions file.
    """

    config_path: str = "app/tenancy/tenants.json"


@lru_cache(maxsize=1)
def get_period_settings() -> PeriodSettings:
    """
    Return cached default boundary settings from environment variables.
    """

    return PeriodSettings(
        start_hour=min(23, max(0, _get_int_env("KPI_DAY_START_HOUR", 0))),
        timezone=_get_str_env("KPI_TIMEZONE", "America/Sao_Paulo"),
        max_range_days=max(0, _get_int_env("KPI_MAX_RANGE_DAYS", 0)),
    )


@lru_cache(maxsize=1)
def get_cache_settings() -> CacheSettings:
    """
    Return cached KPI cache settings from environment variables.
    """

    return CacheSettings(
        max_entries=max(1, _get_int_env("KPI_CACHE_MAX_ENTRIES", 100)),
        ttl_overrides=_get_mapping_env("KPI_CACHE_TTL_OVERRIDES"),
    )


@lru_cache(maxsize=1)
def get_aggregation_settings() -> AggregationSettings:
    """
    Return cached aggregation settings from environment variables.
    """

    return AggregationSettings(
        concurrency_limit=max(1, _get_int_env("KPI_CONCURRENCY_LIMIT", 5)),
        fetch_timeout_seconds=max(1.0, _get_float_env("KPI_FETCH_TIMEOUT_SECONDS", 30.0)),
    )


@lru_cache(maxsize=1)
def get_scheduler_settings() -> SchedulerSettings:
    """
    Return cached scheduler settings from environment variables.
    """

    return SchedulerSettings(
        enabled=_get_bool_env("KPI_SCHEDULER_ENABLED", True),
        hours=tuple(h for h in _get_int_list_env("KPI_SCHEDULER_HOURS", (0, 6, 16)) if 0 <= h <= 23)
        or (0, 6, 16),
        minute=min(59, max(0, _get_int_env("KPI_SCHEDULER_MINUTE", 0))),
        timezone=_get_str_env("KPI_SCHEDULER_TIMEZONE", _get_str_env("KPI_TIMEZONE", "America/Sao_Paulo")),
        misfire_grace_seconds=max(1, _get_int_env("KPI_SCHEDULER_MISFIRE_GRACE_SECONDS", 3600)),
    )


@lru_cache(maxsize=1)
def get_tenancy_settings() -> TenancySettings:
    """
    Return cached tenancy settings from environment variables.
    """

    return TenancySettings(
        config_path=_get_str_env("TENANTS_CONFIG_PATH", "app/tenancy/tenants.json"),
    )
