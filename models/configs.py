"""
Run configuration values.

Each classifier receives one of these at call time. They are frozen so a
run can never change its own mapping halfway through.
"""

from typing import Optional
from pydantic import Field, model_validator

from models.base import FrozenSchema
from exceptions import MappingError


# Reserved targets a column may map to (everything else is a custom field id)
RESERVED_COMPANY_FIELDS = ("name", "domain")
RESERVED_ENTITY_FIELDS = (
    "name",
    "description",
    "status",
    "owner",
    "timeframe.startDate",
    "timeframe.endDate",
)

ENTITY_TYPES = (
    "product",
    "component",
    "feature",
    "subfeature",
    "initiative",
    "objective",
    "keyResult",
    "release",
    "releaseGroup",
)

# Valid parent types for each entity type
PARENT_TYPE_MAP: dict[str, tuple[str, ...]] = {
    "product": (),
    "component": ("product",),
    "feature": ("product", "component"),
    "subfeature": ("feature",),
    "initiative": (),
    "objective": ("initiative",),
    "keyResult": ("objective",),
    "release": ("releaseGroup",),
    "releaseGroup": (),
}


class ColumnMapping(FrozenSchema):
    """Maps one CSV column to a target field; None means ignore."""

    csv_column: str
    mapped_to: Optional[str] = None


def single_column(mappings: tuple[ColumnMapping, ...], target: str) -> Optional[str]:
    """
    Return the column mapped to a reserved singleton target.

    Raises:
        MappingError: If more than one column maps to the target
    """
    columns = [m.csv_column for m in mappings if m.mapped_to == target]
    if len(columns) > 1:
        raise MappingError(
            f"Only one column may map to '{target}'",
            details={"target": target, "columns": columns}
        )
    return columns[0] if columns else None


def custom_field_mappings(
    mappings: tuple[ColumnMapping, ...],
    reserved: tuple[str, ...],
    exclude_columns: tuple[str, ...] = (),
) -> dict[str, str]:
    """
    Custom field id -> CSV column, in column order.

    A custom field mapped from two columns keeps the last one.
    """
    result: dict[str, str] = {}
    for m in mappings:
        if not m.mapped_to or m.mapped_to in reserved or m.csv_column in exclude_columns:
            continue
        result.pop(m.mapped_to, None)
        result[m.mapped_to] = m.csv_column
    return result


# ===================
# FIELD COPY
# ===================

class FieldCopyMapping(FrozenSchema):
    source_field_id: str = Field(..., min_length=1)
    target_field_id: str = Field(..., min_length=1)


class FieldCopyConfig(FrozenSchema):
    """Copy source custom field values into target fields across all features."""

    mappings: tuple[FieldCopyMapping, ...] = Field(..., min_length=1)
    only_empty_targets: bool = True

    @model_validator(mode="after")
    def _distinct_fields(self):
        for m in self.mappings:
            if m.source_field_id == m.target_field_id:
                raise MappingError(
                    "Source and target field must differ",
                    details={"field_id": m.source_field_id}
                )
        return self


# ===================
# BULK UPDATE
# ===================

class BulkUpdateConfig(FrozenSchema):
    """Write numeric custom field values keyed by a UUID column."""

    uuid_column: str = Field(..., min_length=1)
    mappings: tuple[ColumnMapping, ...]
    preserve_existing: bool = True

    @model_validator(mode="after")
    def _has_value_columns(self):
        if not self.value_columns():
            raise MappingError("Map at least one column to a custom field")
        return self

    def value_columns(self) -> dict[str, str]:
        """Custom field id -> CSV column (the UUID column is never a value)."""
        return custom_field_mappings(self.mappings, (), exclude_columns=(self.uuid_column,))


# ===================
# COMPANY IMPORT
# ===================

class CompanyImportConfig(FrozenSchema):
    """Create or update companies keyed by lowercase name and domain."""

    mappings: tuple[ColumnMapping, ...]

    @model_validator(mode="after")
    def _requires_name_and_domain(self):
        if not self.name_column or not self.domain_column:
            raise MappingError("Both 'name' and 'domain' must be mapped")
        return self

    @property
    def name_column(self) -> Optional[str]:
        return single_column(self.mappings, "name")

    @property
    def domain_column(self) -> Optional[str]:
        return single_column(self.mappings, "domain")

    def custom_fields(self) -> dict[str, str]:
        return custom_field_mappings(self.mappings, RESERVED_COMPANY_FIELDS)


# ===================
# ENTITY IMPORT
# ===================

class EntityImportConfig(FrozenSchema):
    """Create or update v2 hierarchy entities keyed by lowercase name."""

    entity_type: str
    mappings: tuple[ColumnMapping, ...]
    parent_id: Optional[str] = None

    @model_validator(mode="after")
    def _check(self):
        if self.entity_type not in ENTITY_TYPES:
            raise MappingError(
                f"Unknown entity type: {self.entity_type}",
                details={"valid": list(ENTITY_TYPES)}
            )
        if not self.name_column:
            raise MappingError("A column must be mapped to 'name'")
        for reserved in RESERVED_ENTITY_FIELDS:
            single_column(self.mappings, reserved)
        return self

    @property
    def name_column(self) -> Optional[str]:
        return single_column(self.mappings, "name")

    def field_columns(self) -> dict[str, str]:
        """Every mapped target (reserved and custom) -> CSV column."""
        return custom_field_mappings(self.mappings, ())


# ===================
# NOTE IMPORT
# ===================

class NoteImportConfig(FrozenSchema):
    """Build notes from ordered title, body and tag columns."""

    title_columns: tuple[str, ...] = Field(..., min_length=1)
    body_columns: tuple[str, ...] = Field(..., min_length=1)
    tag_columns: tuple[str, ...] = ()
    user_email_column: Optional[str] = None
    owner_column: Optional[str] = None
