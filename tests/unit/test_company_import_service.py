"""
Unit tests for company import.

Run: pytest tests/unit/test_company_import_service.py -v
"""

import pytest

from models.configs import CompanyImportConfig
from models.plan import ActionType
from models.record import SinkResult
from parsers.table_parser import parse_table
from services.company_import_service import (
    company_key,
    build_company_import_plan,
    apply_company_import,
)
from exceptions import MappingError, SinkApplyError
from tests.factories import RecordFactory


def _config() -> CompanyImportConfig:
    mappings = [
        {"csv_column": "Company", "mapped_to": "name"},
        {"csv_column": "Website", "mapped_to": "domain"},
        {"csv_column": "ARR", "mapped_to": "cf-arr"},
        {"csv_column": "Tier", "mapped_to": "cf-tier"},
    ]
    return CompanyImportConfig(mappings=mappings)


@pytest.fixture
def company_workspace(workspace, fast_settings):
    workspace.add_field("companies", "cf-arr", "ARR", "number")
    workspace.add_field("companies", "cf-tier", "Tier", "text")
    workspace.add("companies", RecordFactory.create(id="co-1", name="Acme", domain="acme.com"))
    workspace.set_value("co-1", "cf-arr", 1000)
    return workspace


class TestCompanyKey:
    def test_case_insensitive(self):
        assert company_key(" Acme ", "ACME.com") == company_key("acme", "acme.com")


class TestBuildCompanyImportPlan:
    """Tests for build_company_import_plan()"""

    def test_create_update_and_blank(self, company_workspace):
        # Arrange
        table = parse_table(
            "Company,Website,ARR,Tier\n"
            "ACME,Acme.com,2000,Gold\n"
            "Globex,globex.com,,Silver\n"
            "Nameless,,5,\n"
        )

        # Act
        items, companies = build_company_import_plan(company_workspace, table, _config())

        # Assert
        assert [i.action for i in items] == [ActionType.UPDATE, ActionType.CREATE, ActionType.SKIPPED_BLANK]
        update = items[0]
        assert update.record_id == "co-1"
        assert update.fields == {"cf-arr": 2000.0, "cf-tier": "Gold"}
        arr = next(f for f in update.field_updates if f.field_id == "cf-arr")
        assert arr.old_value == "1000"
        assert items[1].fields == {"cf-tier": "Silver"}
        assert len(companies.records) == 1

    def test_invalid_number_fails_that_field_only(self, company_workspace):
        table = parse_table("Company,Website,ARR,Tier\nGlobex,globex.com,abc,Gold\n")

        items, _ = build_company_import_plan(company_workspace, table, _config())

        assert items[0].action == ActionType.CREATE
        assert items[0].fields == {"cf-tier": "Gold"}
        assert items[0].field_errors == ["Invalid number value for ARR: abc"]

    def test_missing_column(self, company_workspace):
        table = parse_table("Company,ARR,Tier\nAcme,1,2\n")

        with pytest.raises(MappingError):
            build_company_import_plan(company_workspace, table, _config())

    def test_name_and_domain_required(self):
        with pytest.raises(MappingError):
            CompanyImportConfig(mappings=[{"csv_column": "Company", "mapped_to": "name"}])

    def test_two_columns_for_name_rejected(self):
        with pytest.raises(MappingError):
            CompanyImportConfig(mappings=[
                {"csv_column": "A", "mapped_to": "name"},
                {"csv_column": "B", "mapped_to": "name"},
                {"csv_column": "C", "mapped_to": "domain"},
            ])


class TestApplyCompanyImport:
    """Tests for apply_company_import()"""

    def test_create_then_set_fields(self, company_workspace):
        table = parse_table("Company,Website,ARR,Tier\nGlobex,globex.com,10,Gold\n")
        items, _ = build_company_import_plan(company_workspace, table, _config())

        result = apply_company_import(company_workspace, items[0])

        assert result.success is True
        assert company_workspace.created[0][0] == "companies"
        assert company_workspace.created[0][1] == {"name": "Globex", "domain": "globex.com"}
        assert {a[1] for a in company_workspace.applied} == {"cf-arr", "cf-tier"}
        assert all(a[0] == result.record_id and a[4] == "companies" for a in company_workspace.applied)

    def test_classification_field_error_fails_row(self, company_workspace):
        """Should still write valid fields but mark the row failed."""
        table = parse_table("Company,Website,ARR,Tier\nAcme,acme.com,abc,Gold\n")
        items, _ = build_company_import_plan(company_workspace, table, _config())

        result = apply_company_import(company_workspace, items[0])

        assert result.success is False
        assert "ARR" in result.error
        assert [a[1] for a in company_workspace.applied] == ["cf-tier"]

    def test_create_failure_raises(self, company_workspace):
        company_workspace.create_responses = [SinkResult(success=False, error="Invalid data format", status_code=422)]
        table = parse_table("Company,Website,ARR,Tier\nGlobex,globex.com,,\n")
        items, _ = build_company_import_plan(company_workspace, table, _config())

        with pytest.raises(SinkApplyError):
            apply_company_import(company_workspace, items[0])


class TestReplanCompanyImport:
    """Planning the same file twice"""

    def test_same_file_gives_same_plan(self, company_workspace):
        # Arrange
        text = "Company,Website,ARR,Tier\nACME,Acme.com,2000,Gold\nGlobex,globex.com,,Silver\n"

        # Act
        first, _ = build_company_import_plan(company_workspace, parse_table(text), _config())
        second, _ = build_company_import_plan(company_workspace, parse_table(text), _config())

        # Assert
        assert first == second
        assert [i.action for i in first] == [ActionType.UPDATE, ActionType.CREATE]
