"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema, FrozenSchema
from models.record import (
    Record,
    PageResult,
    FieldValueResult,
    SinkResult,
    CustomField,
)
from models.field_value import (
    Scalar,
    NamedRef,
    LabeledRef,
    ListValue,
    RawObject,
    FieldValue,
    parse_field_value,
    display_value,
    has_value,
)
from models.plan import (
    ActionType,
    SENT_ACTIONS,
    requires_remote_call,
    FieldUpdateDetail,
    ClassifiedItem,
    DuplicateGroup,
    PlanPreview,
)
from models.execution import (
    RunStatus,
    ExecutionResult,
    RunProgress,
    RunSummary,
    RunOutcome,
    TabularReport,
    RunState,
)
from models.configs import (
    ENTITY_TYPES,
    PARENT_TYPE_MAP,
    ColumnMapping,
    FieldCopyMapping,
    FieldCopyConfig,
    BulkUpdateConfig,
    CompanyImportConfig,
    EntityImportConfig,
    NoteImportConfig,
)
from models.migration_log import (
    MigrationLogStatus,
    MigrationLogDetail,
    MigrationLogCreate,
    MigrationLogUpdate,
    MigrationLogResponse,
    MigrationLogListResponse,
)
from models.usage import UsageStatResponse, UsageStatListResponse

__all__ = [
    # Base
    "BaseSchema",
    "FrozenSchema",
    # Records
    "Record",
    "PageResult",
    "FieldValueResult",
    "SinkResult",
    "CustomField",
    # Field values
    "Scalar",
    "NamedRef",
    "LabeledRef",
    "ListValue",
    "RawObject",
    "FieldValue",
    "parse_field_value",
    "display_value",
    "has_value",
    # Plans
    "ActionType",
    "SENT_ACTIONS",
    "requires_remote_call",
    "FieldUpdateDetail",
    "ClassifiedItem",
    "DuplicateGroup",
    "PlanPreview",
    # Execution
    "RunStatus",
    "ExecutionResult",
    "RunProgress",
    "RunSummary",
    "RunOutcome",
    "TabularReport",
    "RunState",
    # Configs
    "ENTITY_TYPES",
    "PARENT_TYPE_MAP",
    "ColumnMapping",
    "FieldCopyMapping",
    "FieldCopyConfig",
    "BulkUpdateConfig",
    "CompanyImportConfig",
    "EntityImportConfig",
    "NoteImportConfig",
    # Migration logs
    "MigrationLogStatus",
    "MigrationLogDetail",
    "MigrationLogCreate",
    "MigrationLogUpdate",
    "MigrationLogResponse",
    "MigrationLogListResponse",
    # Usage
    "UsageStatResponse",
    "UsageStatListResponse",
]
