"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,

    # Resources
    ResourceNotFoundError,
    PageSessionNotFoundError,

    # Collections and mutations
    CollectionLoadError,
    MutationError,
    RecordValidationError,
    InvalidStateError,

    # CSV
    CsvParseError,
    CsvMissingColumnsError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",

    # Resources
    "ResourceNotFoundError",
    "PageSessionNotFoundError",

    # Collections and mutations
    "CollectionLoadError",
    "MutationError",
    "RecordValidationError",
    "InvalidStateError",

    # CSV
    "CsvParseError",
    "CsvMissingColumnsError",
]
