"""
Pydantic models and plain data structures.
"""

from models.base import BaseSchema, PaginatedResponse
from models.filters import (
    ALL,
    FilterKind,
    DateGranularity,
    DateRange,
    FilterDefinition,
    FilterSet,
)
from models.table import (
    PageStatus,
    ColumnSpec,
    ExportVariant,
    SortSpec,
    ResourceConfig,
    TableViewResponse,
)
from models.imports import (
    CsvDocument,
    ImportMapping,
    ImportRow,
    ImportRowResult,
    ImportReport,
    ImportPreview,
)

__all__ = [
    "BaseSchema",
    "PaginatedResponse",
    "ALL",
    "FilterKind",
    "DateGranularity",
    "DateRange",
    "FilterDefinition",
    "FilterSet",
    "PageStatus",
    "ColumnSpec",
    "ExportVariant",
    "SortSpec",
    "ResourceConfig",
    "TableViewResponse",
    "CsvDocument",
    "ImportMapping",
    "ImportRow",
    "ImportRowResult",
    "ImportReport",
    "ImportPreview",
]
