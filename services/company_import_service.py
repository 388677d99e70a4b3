"""
Company import from an uploaded CSV.

Rows are matched to existing companies by lowercase name and domain.
Unmatched rows create a company; matched rows only get their custom
field values written. Number fields are cleaned before sending, and a
value that is not a number fails that field alone.
"""

from typing import Any
import structlog

from models.configs import CompanyImportConfig
from models.field_value import display_value
from models.plan import ActionType, ClassifiedItem, FieldUpdateDetail
from models.record import CustomField, FieldValueResult, Record
from models.execution import ExecutionResult
from exceptions import FieldCoercionError, MappingError, SinkApplyError
from integrations.base import RecordSink, RecordSource
from parsers.table_parser import ParsedTable
from services.pager_service import PagerResult, fetch_all_records
from services.field_value_service import get_field_snapshots
from services.executor_service import base_result, raise_for_sink
from utils.value_utils import is_blank, to_numeric

logger = structlog.get_logger(__name__)


def company_key(name: str, domain: str) -> str:
    """Natural key: lower(name)|lower(domain)."""
    return f"{name.strip().lower()}|{domain.strip().lower()}"


def classify_company_import(
    rows: list[dict[str, str]],
    config: CompanyImportConfig,
    existing: list[Record],
    fields_by_id: dict[str, CustomField],
    snapshots: dict[str, dict[str, FieldValueResult]],
) -> list[ClassifiedItem]:
    """
    Classify each row as create, update or skipped_blank.

    Args:
        rows: Parsed rows in file order
        config: Column mapping
        existing: Every company in the workspace
        fields_by_id: Company custom field definitions
        snapshots: Field id -> company id -> current value (update rows only)

    Returns:
        One item per row
    """
    lookup = {
        company_key(c.name, str(c.get("domain", ""))): c
        for c in existing
    }
    name_column = config.name_column
    domain_column = config.domain_column
    custom_fields = config.custom_fields()
    items = []

    for row_index, row in enumerate(rows):
        source_ref = f"row:{row_index + 1}"
        name = (row.get(name_column) or "").strip()
        domain = (row.get(domain_column) or "").strip()

        if not name or not domain:
            items.append(ClassifiedItem(
                source_ref=source_ref,
                action=ActionType.SKIPPED_BLANK,
                comparison_key="missing_name_or_domain",
                row_index=row_index,
                display_name=name,
                context={"name": name, "domain": domain},
            ))
            continue

        key = company_key(name, domain)
        match = lookup.get(key)

        fields: dict[str, Any] = {}
        field_updates: list[FieldUpdateDetail] = []
        field_errors: list[str] = []
        current_values: dict[str, str] = {}

        for field_id, column in custom_fields.items():
            raw_value = row.get(column)
            if is_blank(raw_value):
                continue
            raw_value = raw_value.strip()

            field = fields_by_id.get(field_id)
            field_name = field.name if field else field_id
            field_type = field.type if field else "text"

            value: Any = raw_value
            if field_type == "number":
                try:
                    value = to_numeric(raw_value)
                except FieldCoercionError:
                    field_errors.append(f"Invalid number value for {field_name}: {raw_value}")
                    continue

            current = snapshots.get(field_id, {}).get(match.id) if match else None
            old_value = display_value(current.value) if current and current.has_value else None
            if old_value is not None:
                current_values[field_id] = old_value

            fields[field_id] = value
            field_updates.append(FieldUpdateDetail(
                field_id=field_id,
                field_name=field_name,
                field_type=field_type,
                old_value=old_value,
                new_value=value,
            ))

        items.append(ClassifiedItem(
            source_ref=source_ref,
            action=ActionType.UPDATE if match else ActionType.CREATE,
            comparison_key=key,
            row_index=row_index,
            record_id=match.id if match else None,
            display_name=name,
            fields=fields,
            current_values=current_values,
            field_updates=field_updates,
            field_errors=field_errors,
            context={"name": name, "domain": domain},
        ))

    return items


def build_company_import_plan(
    source: RecordSource,
    table: ParsedTable,
    config: CompanyImportConfig,
) -> tuple[list[ClassifiedItem], PagerResult]:
    """
    Fetch existing companies and field values, then classify rows.

    Raises:
        SourceUnavailableError: If the company listing cannot be read
        MappingError: If a mapped column or field does not exist
    """
    missing = [m.csv_column for m in config.mappings if m.mapped_to and m.csv_column not in table.columns]
    if missing:
        raise MappingError("Mapped column not found", details={"columns": missing})

    fields_by_id = {f.id: f for f in source.list_custom_fields("companies")}
    field_ids = list(config.custom_fields())
    unknown = [field_id for field_id in field_ids if field_id not in fields_by_id]
    if unknown:
        raise MappingError("Unknown company field", details={"field_ids": unknown})

    companies = fetch_all_records(source, "companies")

    # Current values are only needed for rows that update an existing company
    items = classify_company_import(table.rows, config, companies.records, fields_by_id, {})
    update_ids = [item.record_id for item in items if item.action == ActionType.UPDATE]
    if update_ids and field_ids:
        snapshots = get_field_snapshots(source, update_ids, field_ids, scope="companies")
        items = classify_company_import(table.rows, config, companies.records, fields_by_id, snapshots)

    logger.info(
        "company_import_plan_built",
        rows=len(table.rows),
        existing=len(companies.records),
        updates=len(update_ids)
    )

    return items, companies


def apply_company_import(sink: RecordSink, item: ClassifiedItem) -> ExecutionResult:
    """
    Create the company when needed, then set each field one by one.

    The row succeeds only when every field (including ones rejected at
    classification) was written.
    """
    company_id = item.record_id

    if item.action == ActionType.CREATE:
        created = raise_for_sink(sink.create_record(
            "companies",
            {"name": item.context.get("name"), "domain": item.context.get("domain")}
        ))
        company_id = created.record_id

    if not company_id:
        raise SinkApplyError("No company ID available")

    field_errors = list(item.field_errors)
    field_types = {f.field_id: (f.field_type, f.field_name) for f in item.field_updates}

    for field_id, value in item.fields.items():
        field_type, field_name = field_types.get(field_id, ("text", field_id))
        sink_result = sink.apply_field_value(company_id, field_id, field_type, value, scope="companies")
        if not sink_result.success:
            field_errors.append(f"{field_name}: {sink_result.error}")

    return base_result(
        item,
        success=not field_errors,
        record_id=company_id,
        field_errors=field_errors,
        error="; ".join(field_errors) or None,
        applied_field_outcomes=list(item.field_updates),
    )
