"""
Shared test fixtures.

Pipeline tests run against the in-memory collaborators; Supabase gateway
tests use the mock client below.
"""

import sys
from pathlib import Path

# Add project root to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import pytest
from unittest.mock import patch
from datetime import datetime, timezone
from typing import Generator

from models.upload_job import Supplier
from services.checkpoint_store import InMemoryCheckpointStore
from services.column_mapper_service import ColumnMapperService
from services.learning_store import InMemoryLearningStore
from services.price_list_persistence import (
    InMemoryPriceListStore,
    InMemorySupplierDirectory,
    InMemoryStatusStore,
)
from services.upload_events import UploadEventBus
from services.upload_orchestrator import UploadOrchestrator


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """
    Mock Supabase query builder with chainable methods.

    Filters are accepted and ignored; writes are recorded on the client log.
    """

    def __init__(self, table_name: str, data: list = None, count: int = None, log: list = None):
        self._table_name = table_name
        self._data = data or []
        self._count = count
        self._log = log if log is not None else []
        self._is_single = False

    def select(self, *args, **kwargs):
        return self

    def insert(self, data):
        self._log.append((self._table_name, "insert", data))
        rows = [data] if isinstance(data, dict) else data
        inserted = []
        for row in rows:
            row = dict(row)
            row.setdefault("id", "test-uuid-123")
            row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            inserted.append(row)
        self._data = inserted
        return self

    def upsert(self, data, **kwargs):
        self._log.append((self._table_name, "upsert", data))
        self._data = [data] if isinstance(data, dict) else list(data)
        return self

    def update(self, data):
        self._log.append((self._table_name, "update", data))
        self._data = [{**item, **data} for item in self._data] or [data]
        return self

    def delete(self):
        self._log.append((self._table_name, "delete", None))
        return self

    def eq(self, column, value):
        return self

    def neq(self, column, value):
        return self

    def lt(self, column, value):
        return self

    def in_(self, column, values):
        return self

    def single(self):
        self._is_single = True
        return self

    def order(self, column, **kwargs):
        return self

    def range(self, start, end):
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

    def __init__(self, name: str, data: list = None, count: int = None, log: list = None):
        self._name = name
        self._data = data or []
        self._count = count
        self._log = log

    def _query(self) -> MockSupabaseQuery:
        return MockSupabaseQuery(self._name, self._data.copy(), self._count, self._log)

    def select(self, *args, **kwargs):
        return self._query()

    def insert(self, data):
        return self._query().insert(data)

    def upsert(self, data, **kwargs):
        return self._query().upsert(data, **kwargs)

    def update(self, data):
        return self._query().update(data)

    def delete(self):
        return self._query().delete()


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables = {}
        self._rpc_results = {}
        self.writes: list[tuple] = []

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Configure mock data for a table."""
        self._tables[table_name] = {"data": data, "count": count}

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        config = self._tables.get(name, {"data": [], "count": None})
        return MockSupabaseTable(name, config["data"], config["count"], self.writes)

    def set_rpc_result(self, function: str, data):
        """Configure what a database function returns."""
        self._rpc_results[function] = data

    def rpc(self, function: str, params: dict = None) -> MockSupabaseQuery:
        """Call a database function; recorded as an "rpc" write under its name."""
        self.writes.append((function, "rpc", params))
        result = self._rpc_results.get(function)
        return MockSupabaseQuery(function, result)

    def writes_to(self, table_name: str, operation: str = None) -> list:
        return [
            data for name, op, data in self.writes
            if name == table_name and (operation is None or op == operation)
        ]


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("suppliers", [
                {"id": "sup-1", "name": "Acme Tiles", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("supplier_items", [...])
            # Now any gateway built inside the test gets the mock
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.supabase_gateways.get_supabase_client", return_value=mock_supabase):
            with patch("services.checkpoint_store.get_supabase_client", return_value=mock_supabase):
                with patch("services.learning_store.get_supabase_client", return_value=mock_supabase):
                    yield mock_supabase


# ===================
# PIPELINE COLLABORATORS
# ===================

@pytest.fixture
def supplier() -> Supplier:
    return Supplier(id="sup-1", name="Acme Tiles", email="prices@acme.example")


@pytest.fixture
def supplier_directory(supplier) -> InMemorySupplierDirectory:
    return InMemorySupplierDirectory([
        supplier,
        Supplier(id="sup-off", name="Dormant Supply", is_active=False),
    ])


@pytest.fixture
def price_list_store() -> InMemoryPriceListStore:
    """Persistence and existing-items lookup in one; starts with an empty catalog."""
    return InMemoryPriceListStore()


@pytest.fixture
def status_store() -> InMemoryStatusStore:
    return InMemoryStatusStore()


@pytest.fixture
def learning_store() -> InMemoryLearningStore:
    return InMemoryLearningStore()


@pytest.fixture
def column_mapper(learning_store) -> ColumnMapperService:
    return ColumnMapperService(learning_store=learning_store)


@pytest.fixture
def event_bus() -> UploadEventBus:
    return UploadEventBus()


@pytest.fixture
def checkpoint_store() -> InMemoryCheckpointStore:
    return InMemoryCheckpointStore()


@pytest.fixture
def orchestrator(
    supplier_directory,
    price_list_store,
    checkpoint_store,
    status_store,
    event_bus,
    column_mapper
) -> UploadOrchestrator:
    """
    Orchestrator wired to in-memory collaborators.

    Usage:
        def test_upload(orchestrator, price_list_store):
            result = orchestrator.process_upload(csv_bytes(...), "prices.csv", "sup-1")
    """
    return UploadOrchestrator(
        suppliers=supplier_directory,
        existing_items=price_list_store,
        persistence=price_list_store,
        checkpoints=checkpoint_store,
        status_store=status_store,
        events=event_bus,
        column_mapper=column_mapper
    )


