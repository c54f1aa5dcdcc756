"""
JSON config loader for tenant definitions.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path

from app.domain.errors import UnknownTenantError
from app.domain.periods import BoundaryConvention
from app.tenancy.models import ExclusionRules, OutputFormat, TenantConfig

logger = logging.getLogger(__name__)


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_config_path(raw_path: str) -> Path:
    candidate = Path(raw_path)
    if candidate.is_absolute():
        return candidate
    return (_project_root() / candidate).resolve()


def load_tenant_configs(
    *,
    config_path: str,
    default_boundary: BoundaryConvention | None = None,
) -> list[TenantConfig]:
    """
    Load tenant configurations from a JSON file.

    Entries without a name, company id or database env var are skipped.
    Tenants without a ``boundary`` block inherit *default_boundary*.
    """

    path = _resolve_config_path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Tenant config file not found: {path}")

    raw_data = json.loads(path.read_text(encoding="utf-8"))
    tenants = raw_data.get("tenants", [])
    if not isinstance(tenants, list):
        raise ValueError("Invalid tenant config: 'tenants' must be a list.")

    fallback_boundary = default_boundary or BoundaryConvention()
    parsed: list[TenantConfig] = []
    for entry in tenants:
        if not isinstance(entry, dict):
            continue

        name = str(entry.get("name", "")).strip().lower()
        company_id = _optional_int(entry.get("company_id"))
        database_url_env = str(entry.get("database_url_env", "")).strip()
        if not name or company_id is None or not database_url_env:
            logger.warning("Tenant config: skipping incomplete entry %r", entry)
            continue

        parsed.append(
            TenantConfig(
                name=name,
                company_id=company_id,
                database_url_env=database_url_env,
                boundary=_parse_boundary(entry.get("boundary"), fallback_boundary),
                suite_categories=_normalize_str_list(entry.get("suite_categories")),
                exclusions=_parse_exclusions(entry.get("exclusions")),
                output_format=_parse_output_format(entry.get("output_format")),
                enabled=_optional_bool(entry.get("enabled"), True),
            )
        )

    return parsed


class TenantDirectory:
    """
    Lookup of configured tenants by name or company id.
    """

    def __init__(self, tenants: Iterable[TenantConfig]) -> None:
        self._by_name: dict[str, TenantConfig] = {}
        self._by_company: dict[int, TenantConfig] = {}
        for tenant in tenants:
            self._by_name[tenant.name] = tenant
            self._by_company[tenant.company_id] = tenant

    def __len__(self) -> int:
        return len(self._by_name)

    def all(self, *, enabled_only: bool = True) -> list[TenantConfig]:
        return [t for t in self._by_name.values() if t.enabled or not enabled_only]

    def get(self, identifier: str | int) -> TenantConfig:
        """
        Return the tenant for a name or company id.

        Raises
        ------
        UnknownTenantError
            If no tenant matches.
        """
        tenant: TenantConfig | None
        if isinstance(identifier, int):
            tenant = self._by_company.get(identifier)
        else:
            key = identifier.strip().lower()
            tenant = self._by_name.get(key)
            if tenant is None and key.isdigit():
                tenant = self._by_company.get(int(key))

        if tenant is None:
            raise UnknownTenantError(
                f"Unknown tenant {identifier!r}.",
                context={"tenant": identifier},
            )
        return tenant


def _parse_boundary(value: object, default: BoundaryConvention) -> BoundaryConvention:
    if not isinstance(value, dict):
        return default
    start_hour = _optional_int(value.get("start_hour"))
    tz_name = value.get("timezone")
    return BoundaryConvention(
        start_hour=default.start_hour if start_hour is None else start_hour,
        timezone=tz_name.strip() if isinstance(tz_name, str) and tz_name.strip() else default.timezone,
    )


def _parse_exclusions(value: object) -> ExclusionRules:
    if not isinstance(value, dict):
        return ExclusionRules()

    defaults = ExclusionRules()
    return ExclusionRules(
        exclude_canceled_bookings=_optional_bool(
            value.get("exclude_canceled_bookings"), defaults.exclude_canceled_bookings
        ),
        require_price_rental=_optional_bool(
            value.get("require_price_rental"), defaults.require_price_rental
        ),
        require_rental_apartment=_optional_bool(
            value.get("require_rental_apartment"), defaults.require_rental_apartment
        ),
        rental_end_types=_normalize_str_list(value.get("rental_end_types")),
        cleaning_reasons=(
            _normalize_str_list(value.get("cleaning_reasons"))
            if "cleaning_reasons" in value
            else defaults.cleaning_reasons
        ),
        exclude_canceled_sales=_optional_bool(
            value.get("exclude_canceled_sales"), defaults.exclude_canceled_sales
        ),
    )


def _parse_output_format(value: object) -> OutputFormat:
    if isinstance(value, str):
        try:
            return OutputFormat(value.strip().lower())
        except ValueError:
            logger.warning("Tenant config: unknown output_format %r, using numeric", value)
    return OutputFormat.NUMERIC


def _normalize_str_list(value: object) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value.strip(),) if value.strip() else ()
    if not isinstance(value, list):
        return ()
    return tuple(item.strip() for item in value if isinstance(item, str) and item.strip())


def _optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _optional_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return default
