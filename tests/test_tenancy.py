"""
tests/test_tenancy.py

Pytest unit tests for tenant configuration loading and exclusion rules.

Coverage
--------
- Packaged tenants.json loads every tenant with its boundary
- Lookup by name, company id and numeric string; unknown → UnknownTenantError
- Incomplete entries skipped; defaults applied
- ExclusionRules.admits per record kind
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.domain.errors import UnknownTenantError
from app.domain.periods import BoundaryConvention
from app.domain.records import CleaningRecord, RecordKind, RentalRecord, RestaurantSaleRecord
from app.tenancy.loader import TenantDirectory, load_tenant_configs
from app.tenancy.models import ExclusionRules, OutputFormat
from conftest import booking

UTC = timezone.utc


class TestPackagedConfig:
    def test_loads_all_tenants(self) -> None:
        tenants = load_tenant_configs(config_path="app/tenancy/tenants.json")
        assert [t.name for t in tenants] == ["lush_ipiranga", "lush_lapa", "tout", "andar_de_cima"]

        ipiranga = tenants[0]
        assert ipiranga.company_id == 1
        assert ipiranga.boundary == BoundaryConvention(start_hour=6, timezone="America/Sao_Paulo")
        assert ipiranga.exclusions.rental_end_types == ("FINALIZADA", "TRANSFERIDA")
        assert tenants[2].output_format is OutputFormat.CURRENCY

    def test_directory_lookup(self) -> None:
        directory = TenantDirectory(load_tenant_configs(config_path="app/tenancy/tenants.json"))
        assert directory.get("TOUT").company_id == 3
        assert directory.get(3).name == "tout"
        assert directory.get("3").name == "tout"
        with pytest.raises(UnknownTenantError) as exc_info:
            directory.get("nowhere")
        assert exc_info.value.status_code == 404


class TestLoader:
    def test_incomplete_entries_are_skipped(self, tmp_path) -> None:
        path = tmp_path / "tenants.json"
        path.write_text(
            json.dumps(
                {
                    "tenants": [
                        {"name": "ok", "company_id": "9", "database_url_env": "OK_DATABASE_URL"},
                        {"name": "", "company_id": 10, "database_url_env": "X"},
                        {"name": "no_id", "database_url_env": "Y"},
                        {"name": "no_env", "company_id": 11},
                        "not-a-dict",
                    ]
                }
            ),
            encoding="utf-8",
        )
        default = BoundaryConvention(start_hour=6, timezone="UTC")
        tenants = load_tenant_configs(config_path=str(path), default_boundary=default)

        assert len(tenants) == 1
        tenant = tenants[0]
        assert tenant.company_id == 9
        assert tenant.boundary == default
        assert tenant.exclusions == ExclusionRules()
        assert tenant.output_format is OutputFormat.NUMERIC
        assert tenant.enabled is True

    def test_disabled_tenants_are_hidden_by_default(self, tmp_path) -> None:
        path = tmp_path / "tenants.json"
        path.write_text(
            json.dumps(
                {
                    "tenants": [
                        {"name": "a", "company_id": 1, "database_url_env": "A", "enabled": "false"},
                        {"name": "b", "company_id": 2, "database_url_env": "B"},
                    ]
                }
            ),
            encoding="utf-8",
        )
        directory = TenantDirectory(load_tenant_configs(config_path=str(path)))
        assert [t.name for t in directory.all()] == ["b"]
        assert len(directory.all(enabled_only=False)) == 2

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_tenant_configs(config_path=str(tmp_path / "missing.json"))

    def test_tenants_must_be_a_list(self, tmp_path) -> None:
        path = tmp_path / "tenants.json"
        path.write_text('{"tenants": {}}', encoding="utf-8")
        with pytest.raises(ValueError):
            load_tenant_configs(config_path=str(path))


class TestExclusionRules:
    def test_bookings(self) -> None:
        rules = ExclusionRules()
        assert rules.admits(RecordKind.BOOKINGS, booking(1, "10", 1))
        assert not rules.admits(RecordKind.BOOKINGS, booking(1, "10", 1, canceled=True))
        assert not rules.admits(RecordKind.BOOKINGS, booking(1, None, 1))

    def test_rental_end_types(self) -> None:
        check_out = datetime(2024, 3, 1, 12, tzinfo=UTC)
        rental = RentalRecord(
            id=1,
            suite_id=1,
            suite_category="LUSH",
            check_in=check_out - timedelta(hours=2),
            check_out=check_out,
            permanence_value=Decimal("10"),
            end_occupation_type="CANCELADA",
        )
        assert ExclusionRules().admits(RecordKind.RENTALS, rental)
        assert not ExclusionRules(rental_end_types=("FINALIZADA",)).admits(RecordKind.RENTALS, rental)

    def test_cleaning_reasons(self) -> None:
        finished = datetime(2024, 3, 1, 12, tzinfo=UTC)
        complete = CleaningRecord(
            id=1, suite_id=1, employee_id=1, start_date=finished, end_date=finished, reason_end="COMPLETA"
        )
        partial = CleaningRecord(
            id=2, suite_id=1, employee_id=1, start_date=finished, end_date=finished, reason_end="PARCIAL"
        )
        unfinished = CleaningRecord(id=3, suite_id=1, employee_id=1, start_date=finished, end_date=None)
        rules = ExclusionRules()
        assert rules.admits(RecordKind.CLEANINGS, complete)
        assert not rules.admits(RecordKind.CLEANINGS, partial)
        assert not rules.admits(RecordKind.CLEANINGS, unfinished)

    def test_canceled_restaurant_sales(self) -> None:
        sale = RestaurantSaleRecord(
            id=1, sold_at=datetime(2024, 3, 1, tzinfo=UTC), total_value=Decimal("5"), canceled=True
        )
        assert not ExclusionRules().admits(RecordKind.RESTAURANT_SALES, sale)
        assert ExclusionRules(exclude_canceled_sales=False).admits(RecordKind.RESTAURANT_SALES, sale)
