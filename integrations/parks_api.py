"""
Parks REST API client.

The API is the system of record for every list page. This client receives
the caller's ApiSession explicitly; it never reads credentials from
globals or the environment.

Read failures raise CollectionLoadError; write failures raise
MutationError carrying the API's own message when it sends one.
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence

import requests
import structlog

from config import settings
from exceptions import CollectionLoadError, MutationError
from models.imports import ImportReport, ImportRowResult

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ApiSession:
    """Authenticated caller, forwarded on every request."""
    token: Optional[str] = None
    user_id: Optional[str] = None
    user_role: Optional[str] = None

    @property
    def scope(self) -> str:
        """Key identifying whose cached collections these are."""
        return self.user_id or self.token or "anonymous"

    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self.user_id:
            headers["X-User-Id"] = str(self.user_id)
        if self.user_role:
            headers["X-User-Role"] = str(self.user_role)
        return headers


def _error_message(response: requests.Response) -> str:
    """Human-readable message from an error response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
    return f"Parks API responded with HTTP {response.status_code}"


class ParksApiClient:
    """
    Thin requests-based client for the parks API.

    Args:
        session: Caller identity (token, user id, role)
        base_url: API root (defaults to settings)
        timeout: Seconds per request (defaults to settings)
        http: requests.Session to reuse; a new one is created otherwise
    """

    def __init__(
        self,
        session: ApiSession,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ):
        self.session = session
        self.base_url = (base_url or settings.parks_api_base_url).rstrip("/")
        self.timeout = timeout or settings.parks_api_timeout_seconds
        self.http = http or requests.Session()

    def close(self) -> None:
        """Release pooled connections."""
        self.http.close()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        return self.http.request(
            method,
            self._url(path),
            headers=self.session.headers(),
            timeout=self.timeout,
            **kwargs
        )

    # ===================
    # READ
    # ===================

    def list_collection(self, key: str, path: str) -> Any:
        """
        GET a collection.

        Args:
            key: Cache key (for errors and logs)
            path: Collection path, e.g. "/api/hr/employees"

        Returns:
            Decoded JSON body (array or {"data": [...]} envelope)

        Raises:
            CollectionLoadError: Network failure, non-2xx or non-JSON body
        """
        try:
            logger.info("parks_api_list", key=key, path=path)
            response = self._request("GET", path)
        except requests.exceptions.RequestException as e:
            logger.error("parks_api_list_failed", key=key, error=str(e))
            raise CollectionLoadError(
                key=key,
                message="Could not reach the parks API",
                details={"error": str(e)}
            ) from e

        if not response.ok:
            message = _error_message(response)
            logger.error("parks_api_list_rejected", key=key, status=response.status_code, error=message)
            raise CollectionLoadError(
                key=key,
                message=message,
                details={"status": response.status_code}
            )

        try:
            return response.json()
        except ValueError as e:
            raise CollectionLoadError(
                key=key,
                message="Parks API returned an unreadable response",
                details={"status": response.status_code}
            ) from e

    # ===================
    # WRITE
    # ===================

    def _mutate(self, operation: str, method: str, path: str, payload: Any = None) -> Any:
        try:
            logger.info("parks_api_mutation", operation=operation, path=path)
            response = self._request(method, path, json=payload)
        except requests.exceptions.RequestException as e:
            logger.error("parks_api_mutation_failed", operation=operation, error=str(e))
            raise MutationError(
                operation=operation,
                message="Could not reach the parks API",
                details={"error": str(e)}
            ) from e

        if not response.ok:
            message = _error_message(response)
            logger.warning(
                "parks_api_mutation_rejected",
                operation=operation,
                status=response.status_code,
                error=message
            )
            raise MutationError(
                operation=operation,
                message=message,
                status_code=response.status_code if 400 <= response.status_code < 500 else 502,
                details={"status": response.status_code}
            )

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    def create(self, path: str, payload: dict) -> Any:
        """POST a new record to the collection."""
        return self._mutate("create", "POST", path, payload)

    def update(self, path: str, record_id: Any, payload: dict) -> Any:
        """PUT a record."""
        return self._mutate("update", "PUT", f"{path.rstrip('/')}/{record_id}", payload)

    def delete(self, path: str, record_id: Any) -> None:
        """DELETE a record."""
        self._mutate("delete", "DELETE", f"{path.rstrip('/')}/{record_id}")

    def bulk_import(self, path: str, records: Sequence[dict], row_numbers: Sequence[int]) -> ImportReport:
        """
        POST a batch of mapped records and normalize the per-row report.

        Args:
            path: Import endpoint, e.g. "/api/hr/employees/import"
            records: Mapped records in upload order
            row_numbers: Upload row number of each record

        Returns:
            ImportReport with one result per record

        Raises:
            MutationError: If the whole request is rejected
        """
        body = self._mutate("import", "POST", path, list(records))
        return parse_import_report(body, row_numbers)


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict) and isinstance(body.get("data"), (dict, list)):
        return body["data"]
    return body


def parse_import_report(body: Any, row_numbers: Sequence[int]) -> ImportReport:
    """
    Normalize the import endpoint's answer into per-row results.

    Accepted shapes:
        - {"results": [{"row": 1, "success": true, "id": 7}, ...]}
          (row numbers are 1-based within the batch)
        - {"imported": 3, "errors": [{"row": 2, "error": "..."}]}
        - a bare list of per-row results
        - empty body: every row imported
    """
    body = _unwrap(body)
    total = len(row_numbers)

    def upload_row(batch_row: Any) -> int:
        try:
            index = int(batch_row) - 1
        except (TypeError, ValueError):
            return 0
        return row_numbers[index] if 0 <= index < total else int(batch_row)

    items = body.get("results") if isinstance(body, dict) else body
    if isinstance(items, list):
        results = []
        for position, item in enumerate(items):
            item = item if isinstance(item, dict) else {}
            batch_row = item.get("row", position + 1)
            success = bool(item.get("success", not item.get("error")))
            results.append(ImportRowResult(
                row=upload_row(batch_row),
                success=success,
                error=None if success else str(item.get("error") or item.get("message") or "Rejected"),
                record_id=item.get("id"),
            ))
        return ImportReport(total_rows=total, results=results)

    failures: dict[int, str] = {}
    if isinstance(body, dict):
        for item in body.get("errors") or []:
            if isinstance(item, dict):
                failures[upload_row(item.get("row"))] = str(item.get("error") or item.get("message") or "Rejected")

    results = [
        ImportRowResult(row=row, success=row not in failures, error=failures.get(row))
        for row in row_numbers
    ]
    return ImportReport(total_rows=total, results=results)
