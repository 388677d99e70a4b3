"""
Shared test fixtures.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

import pytest
from unittest.mock import patch
from datetime import datetime
from typing import Generator

from tests.factories import FakeWorkspace

# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable methods."""

    def __init__(self, data: list = None, count: int = None, calls: list = None):
        self._data = data or []
        self._count = count
        self._is_single = False
        self._calls = calls if calls is not None else []

    def select(self, *args, **kwargs):
        return self

    def insert(self, data):
        # Simulate insert - add id and timestamps
        self._calls.append(("insert", data))
        if isinstance(data, dict):
            data = [data]
        for item in data:
            item["id"] = "test-uuid-123"
            item["created_at"] = datetime.utcnow().isoformat() + "Z"
        self._data = data
        return self

    def update(self, data):
        # Simulate update - merge with existing data
        self._calls.append(("update", data))
        updated_data = []
        for item in self._data:
            merged = {**item, **data}
            updated_data.append(merged)
        self._data = updated_data if updated_data else [data]
        return self

    def delete(self):
        return self

    def eq(self, column, value):
        return self

    def single(self):
        self._is_single = True
        return self

    def order(self, column, **kwargs):
        return self

    def limit(self, count):
        return self

    def execute(self) -> MockSupabaseResponse:
        if self._is_single:
            # Return first item or empty for single()
            data = self._data[0] if self._data else None
            return MockSupabaseResponse(
                data=data,
                count=1 if data else 0
            )
        return MockSupabaseResponse(
            data=self._data,
            count=self._count if self._count is not None else len(self._data)
        )


class MockSupabaseTable:
    """Mock Supabase table with configurable responses."""

    def __init__(self, data: list = None, count: int = None, calls: list = None):
        self._data = data or []
        self._count = count
        self._calls = calls if calls is not None else []

    def _query(self) -> MockSupabaseQuery:
        return MockSupabaseQuery([dict(row) for row in self._data], self._count, self._calls)

    def select(self, *args, **kwargs):
        return self._query()

    def insert(self, data):
        return self._query().insert(data)

    def update(self, data):
        # For update, pass the existing data so it can be merged
        return self._query().update(data)

    def delete(self):
        return self._query()


class MockSupabaseClient:
    """Mock Supabase client. Writes are recorded per table in .calls."""

    def __init__(self):
        self._tables = {}
        self.calls: dict[str, list] = {}

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Configure mock data for a table."""
        self._tables[table_name] = {"data": data, "count": count}

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        config = self._tables.get(name, {"data": [], "count": None})
        return MockSupabaseTable(config["data"], config["count"], self.calls.setdefault(name, []))


# ===================
# FIXTURES
# ===================

@pytest.fixture(autouse=True)
def isolated_state(monkeypatch):
    """Fresh run registry and preview cache for every test."""
    import services.run_registry_service as run_registry_service
    import services.preview_cache_service as preview_cache_service

    monkeypatch.setattr(run_registry_service, "_run_registry", None)
    monkeypatch.setattr(preview_cache_service, "_cache", {})
    yield


@pytest.fixture
def no_supabase(monkeypatch):
    """Run with the datastore unconfigured."""
    from config import settings

    monkeypatch.setattr(settings, "supabase_url", None)
    monkeypatch.setattr(settings, "supabase_key", None)
    yield


@pytest.fixture
def fast_settings(monkeypatch):
    """Disable every pause so runs finish instantly."""
    from config import settings

    monkeypatch.setattr(settings, "write_throttle_delay_ms", 0)
    monkeypatch.setattr(settings, "delete_throttle_delay_ms", 0)
    monkeypatch.setattr(settings, "field_value_batch_pause_ms", 0)
    yield settings


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("migration_logs", [
                {"id": "1", "source_field_id": "cf-a", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase, monkeypatch) -> Generator:
    """
    Patch the database client with mock and mark Supabase configured.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("usage_stats", [...])
            # Now any code using get_supabase_client() gets the mock
    """
    import services.migration_log_service as migration_log_service
    import services.usage_stats_service as usage_stats_service
    from config import settings

    monkeypatch.setattr(settings, "supabase_url", "https://test.supabase.co")
    monkeypatch.setattr(settings, "supabase_key", "test-key")
    monkeypatch.setattr(migration_log_service, "_migration_log_service", None)
    monkeypatch.setattr(usage_stats_service, "_usage_stats_service", None)

    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.migration_log_service.get_supabase_client", return_value=mock_supabase):
            with patch("services.usage_stats_service.get_supabase_client", return_value=mock_supabase):
                yield mock_supabase


@pytest.fixture
def workspace() -> FakeWorkspace:
    """
    In-memory record source and sink.

    Usage:
        def test_something(workspace):
            workspace.add("features", RecordFactory.create(id="f1"))
    """
    return FakeWorkspace(page_size=2)


@pytest.fixture
def sample_migration_log() -> dict:
    """Sample migration_logs row."""
    return {
        "id": "log-1",
        "source_field_id": "cf-source",
        "source_field_name": "Legacy Score",
        "target_field_id": "cf-target",
        "target_field_name": "Score",
        "features_processed": 3,
        "features_updated": 2,
        "features_skipped": 1,
        "features_failed": 0,
        "status": "completed",
        "started_at": "2024-05-01T10:00:00+00:00",
        "completed_at": "2024-05-01T10:01:00+00:00",
        "details": []
    }


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(no_supabase, fast_settings):
    """
    Create FastAPI test client.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/health")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)


@pytest.fixture
def workspace_client(test_client, workspace):
    """
    Test client whose routes talk to the in-memory workspace.

    Usage:
        def test_endpoint(workspace_client, workspace):
            workspace.add("notes", ...)
            response = workspace_client.post(..., headers={"Authorization": "Bearer t"})
    """
    with patch("routes.common.ProductboardClient", return_value=workspace):
        yield test_client
