"""
Shared test fixtures.
"""

import sys
from pathlib import Path

# Add project directory to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

import pytest
from copy import deepcopy
from unittest.mock import patch
from typing import Any, Generator, Optional

from exceptions import CollectionLoadError, MutationError
from integrations.parks_api import ApiSession, parse_import_report
from tests.factories import EmployeeFactory, IncomeFactory


# ===================
# MOCK PARKS API
# ===================

class MockParksApi:
    """
    In-memory stand-in for ParksApiClient.

    Collections are keyed by API path. Every call is recorded in `calls`.
    """

    def __init__(self, session: Optional[ApiSession] = None):
        self.session = session or ApiSession(token="test-token", user_id="1", user_role="admin")
        self.collections: dict[str, Any] = {}
        self.failures: dict[str, str] = {}
        self.mutation_error: Optional[MutationError] = None
        self.row_errors: dict[str, str] = {}
        self.calls: list[tuple] = []
        self._next_id = 1000
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def bind(self, session: ApiSession) -> "MockParksApi":
        self.session = session
        return self

    def set_collection(self, path: str, records: list, envelope: bool = False):
        """Configure the records returned for path."""
        self.collections[path] = {"data": records} if envelope else records

    def fail_collection(self, path: str, message: str = "Service unavailable"):
        self.failures[path] = message

    def heal_collection(self, path: str):
        self.failures.pop(path, None)

    def _rows(self, path: str) -> list:
        payload = self.collections.setdefault(path, [])
        return payload["data"] if isinstance(payload, dict) else payload

    def list_collection(self, key: str, path: str) -> Any:
        self.calls.append(("GET", path))
        if path in self.failures:
            raise CollectionLoadError(key=key, message=self.failures[path])
        return deepcopy(self.collections.get(path, []))

    def create(self, path: str, payload: dict) -> Any:
        self.calls.append(("POST", path, payload))
        if self.mutation_error is not None:
            raise self.mutation_error
        error = self.row_errors.get(str(payload.get("email") or payload.get("concept")))
        if error:
            raise MutationError(operation="create", message=error, status_code=400)
        self._next_id += 1
        record = {"id": self._next_id, **payload}
        self._rows(path).append(record)
        return {"data": record}

    def update(self, path: str, record_id: Any, payload: dict) -> Any:
        self.calls.append(("PUT", path, record_id, payload))
        if self.mutation_error is not None:
            raise self.mutation_error
        for row in self._rows(path):
            if str(row.get("id")) == str(record_id):
                row.update(payload)
                return row
        raise MutationError(operation="update", message="Not found", status_code=404)

    def delete(self, path: str, record_id: Any) -> None:
        self.calls.append(("DELETE", path, record_id))
        if self.mutation_error is not None:
            raise self.mutation_error
        rows = self._rows(path)
        rows[:] = [r for r in rows if str(r.get("id")) != str(record_id)]

    def bulk_import(self, path: str, records: list, row_numbers: list):
        self.calls.append(("IMPORT", path, records))
        if self.mutation_error is not None:
            raise self.mutation_error
        collection = path.rsplit("/import", 1)[0]
        results = []
        for position, record in enumerate(records, start=1):
            error = self.row_errors.get(str(record.get("email")))
            if error:
                results.append({"row": position, "success": False, "error": error})
                continue
            self._next_id += 1
            self._rows(collection).append({"id": self._next_id, **record})
            results.append({"row": position, "success": True, "id": self._next_id})
        return parse_import_report({"results": results}, row_numbers)

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_api() -> MockParksApi:
    """
    Create a mock parks API client.

    Usage:
        def test_something(mock_api):
            mock_api.set_collection("/api/hr/employees", [...])
    """
    return MockParksApi()


@pytest.fixture
def sample_employees() -> list:
    """Three employees across two departments."""
    return [
        EmployeeFactory.create(id=1, full_name="Ana Pérez", email="ana@parques.mx",
                               department="Dirección General", position="Directora"),
        EmployeeFactory.create(id=2, full_name="Luis Gómez", email="luis@parques.mx",
                               department="Mantenimiento", position="Jardinero", status="inactive"),
        EmployeeFactory.create(id=3, full_name="Carmen López", email="carmen@parques.mx",
                               department="Mantenimiento", position="Coordinadora"),
    ]


@pytest.fixture
def sample_incomes() -> list:
    """Incomes over two years and two categories."""
    return [
        IncomeFactory.create(id=1, concept="Renta de kiosco", amount=1200.5,
                             date="2024-11-03", category_id=5),
        IncomeFactory.create(id=2, concept="Estacionamiento", amount=350,
                             date="2025-02-10", category_id=2),
        IncomeFactory.create(id=3, concept="Eventos", amount=9000,
                             date="2025-07-14", category_id=5),
    ]


@pytest.fixture
def api_session() -> ApiSession:
    return ApiSession(token="test-token", user_id="1", user_role="admin")


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": "Bearer test-token", "X-User-Id": "1", "X-User-Role": "admin"}


@pytest.fixture
def patched_sessions(mock_api) -> Generator:
    """
    Page sessions built on the mock API instead of the network.

    Usage:
        def test_something(patched_sessions, mock_api):
            mock_api.set_collection(...)
    """
    from services import page_session_service

    page_session_service.reset()
    with patch("services.page_session_service.ParksApiClient", side_effect=mock_api.bind):
        yield mock_api
    page_session_service.reset()


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(patched_sessions):
    """
    Create FastAPI test client backed by the mock parks API.

    Usage:
        def test_endpoint(test_client, mock_api, auth_headers):
            response = test_client.get("/api/tables/employees", headers=auth_headers)
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)
