"""
API route modules.

Each module defines routes for one reconciliation module.
"""

from routes.field_migration import router as field_migration_router
from routes.duplicate_notes import router as duplicate_notes_router
from routes.bulk_update import router as bulk_update_router
from routes.company_import import router as company_import_router
from routes.entity_import import router as entity_import_router
from routes.note_import import router as note_import_router
from routes.runs import router as runs_router
from routes.usage import router as usage_router

__all__ = [
    "field_migration_router",
    "duplicate_notes_router",
    "bulk_update_router",
    "company_import_router",
    "entity_import_router",
    "note_import_router",
    "runs_router",
    "usage_router",
]
