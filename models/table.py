"""
List-page configuration and view schemas.

ResourceConfig describes one admin list page declaratively: where its
collection lives, how records are validated, which filters and export
columns it offers and how CSV imports are mapped.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from models.base import BaseSchema, PaginatedResponse
from models.filters import FilterDefinition
from models.records import RecordBase

Record = dict[str, Any]


class PageStatus(str, Enum):
    """List-page state machine states."""
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"
    PREVIEWING = "previewing"
    CLOSED = "closed"


@dataclass(frozen=True)
class ColumnSpec:
    """One exported column: header text and display extractor."""
    header: str
    extract: Callable[[Record], Any]
    example: str = ""


@dataclass(frozen=True)
class ExportVariant:
    """Named set of export columns (e.g. simple / complete)."""
    name: str
    label: str
    columns: tuple[ColumnSpec, ...]


@dataclass(frozen=True)
class SortSpec:
    """Display order applied before filtering and paging."""
    field: str
    descending: bool = False


@dataclass(frozen=True)
class ResourceConfig:
    """
    Declarative configuration of one list page.

    Attributes:
        key: Collection cache key and URL segment (e.g. "employees")
        label: Human label, used in file names (e.g. "empleados")
        path: Parks API collection path (e.g. "/api/hr/employees")
        record_model: Schema validated at the cache boundary
        create_model: Schema for create/update/import payloads
        page_size: Fixed page size for this page
        filters: Filters offered by the page
        export_variants: Export column sets; the first one is the default
        import_synonyms: target field -> header fragments for auto-mapping
        required_fields: Target fields every imported row must carry
        dependent_keys: Other cache keys invalidated by mutations
        import_path: Batch import endpoint, or None for per-row creates
        sort: Display order, or None to keep API order
    """
    key: str
    label: str
    path: str
    record_model: type[RecordBase]
    create_model: Optional[type[RecordBase]] = None
    page_size: int = 10
    filters: tuple[FilterDefinition, ...] = ()
    export_variants: tuple[ExportVariant, ...] = ()
    import_synonyms: dict[str, tuple[str, ...]] = field(default_factory=dict)
    required_fields: tuple[str, ...] = ()
    dependent_keys: tuple[str, ...] = ()
    import_path: Optional[str] = None
    sort: Optional[SortSpec] = None

    @property
    def supports_import(self) -> bool:
        return self.create_model is not None and bool(self.import_synonyms)

    def filter_definition(self, name: str) -> Optional[FilterDefinition]:
        for definition in self.filters:
            if definition.name == name:
                return definition
        return None

    def export_variant(self, name: Optional[str] = None) -> ExportVariant:
        """Variant by name; the default one when name is empty."""
        if not self.export_variants:
            raise LookupError(f"Resource '{self.key}' has no export columns")
        if not name:
            return self.export_variants[0]
        for variant in self.export_variants:
            if variant.name == name:
                return variant
        raise LookupError(f"Unknown export variant '{name}' for '{self.key}'")

    def describe(self) -> dict[str, Any]:
        """Serializable description for the resource catalogue."""
        return {
            "key": self.key,
            "label": self.label,
            "page_size": self.page_size,
            "filters": [f.describe() for f in self.filters],
            "export_variants": [
                {"name": v.name, "label": v.label, "headers": [c.header for c in v.columns]}
                for v in self.export_variants
            ],
            "supports_import": self.supports_import,
            "import_fields": list(self.import_synonyms),
            "required_fields": list(self.required_fields),
        }


# ===================
# API SCHEMAS
# ===================

class LoadErrorInfo(BaseModel):
    """Load failure banner shown above the last-known-good rows."""
    code: str
    message: str


class TableViewResponse(PaginatedResponse):
    """One rendered page of a list."""
    resource: str
    status: PageStatus
    filters: dict[str, Any] = Field(default_factory=dict)
    error: Optional[LoadErrorInfo] = None
    loaded_at: Optional[datetime] = None


class ResourceCatalogResponse(BaseSchema):
    """Available list pages."""
    data: list[dict[str, Any]]
    total: int


class MutationResponse(BaseSchema):
    """Result of a create/update/delete."""
    success: bool
    resource: str
    record: Optional[dict[str, Any]] = None
    message: str
