"""
Custom exception classes for the application.

Every error the service raises carries a code, a human-readable message
and an HTTP status so routes can render it without a stack trace.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "RESOURCE_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Request conflicts with the current page state (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        code: Optional[str] = None,
        status_code: int = 503,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code or f"{service.upper()}_ERROR",
            message=message,
            status_code=status_code,
            details={"service": service, **(details or {})}
        )


# ===================
# RESOURCE ERRORS
# ===================

class ResourceNotFoundError(NotFoundError):
    """Unknown list resource requested."""

    def __init__(self, resource_key: str):
        super().__init__(
            resource="Resource",
            identifier=resource_key,
            code="RESOURCE_NOT_FOUND"
        )


class PageSessionNotFoundError(NotFoundError):
    """No open page session for this resource."""

    def __init__(self, resource_key: str):
        super().__init__(
            resource="Page session",
            identifier=resource_key,
            code="PAGE_SESSION_NOT_FOUND"
        )


# ===================
# COLLECTION ERRORS
# ===================

class CollectionLoadError(ExternalServiceError):
    """Collection fetch failed (network error, non-2xx or bad payload)."""

    def __init__(
        self,
        key: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            service="parks_api",
            code="COLLECTION_LOAD_FAILED",
            message=message,
            details={"key": key, **(details or {})}
        )
        self.key = key


class MutationError(ExternalServiceError):
    """Parks API rejected a create/update/delete."""

    def __init__(
        self,
        operation: str,
        message: str,
        status_code: int = 502,
        details: Optional[dict] = None
    ):
        super().__init__(
            service="parks_api",
            code="MUTATION_FAILED",
            message=message,
            status_code=status_code,
            details={"operation": operation, **(details or {})}
        )
        self.operation = operation


class RecordValidationError(ValidationError):
    """Record failed client-side schema validation. Never sent to the API."""

    def __init__(self, errors: list[dict]):
        super().__init__(
            code="RECORD_VALIDATION_FAILED",
            message=f"Record validation failed with {len(errors)} errors",
            details={"errors": errors}
        )
        self.errors = errors


class InvalidStateError(ConflictError):
    """Operation not allowed in the page's current state."""

    def __init__(self, operation: str, state: str):
        super().__init__(
            code="INVALID_PAGE_STATE",
            message=f"Cannot {operation} while page is {state}",
            details={"operation": operation, "state": state}
        )


# ===================
# CSV ERRORS
# ===================

class CsvParseError(ValidationError):
    """Uploaded file could not be read as CSV."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="CSV_PARSE_ERROR",
            message=message,
            details=details
        )


class CsvMissingColumnsError(ValidationError):
    """Required columns are not mapped from the uploaded CSV."""

    def __init__(self, missing: list[str], headers: list[str]):
        super().__init__(
            code="CSV_MISSING_COLUMNS",
            message=f"Missing required columns: {', '.join(missing)}",
            details={"missing": missing, "headers": headers}
        )
        self.missing = missing
