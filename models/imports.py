"""
CSV import data structures.

Parsing produces a CsvDocument; auto-mapping produces an ImportMapping;
mapping rows produces ImportRow objects; the API's answer becomes an
ImportReport.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, Field

from models.base import BaseSchema

# uploaded header -> target field name
ImportMapping = dict[str, str]


@dataclass
class CsvDocument:
    """Parsed CSV: header row plus one dict per data row."""
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class ImportRow:
    """One uploaded row after mapping. Row numbers are 1-based data rows."""
    row: int
    record: dict[str, Any]
    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class ImportRowResult:
    """Outcome of importing one row."""
    row: int
    success: bool
    error: Optional[str] = None
    record_id: Optional[Any] = None


@dataclass
class ImportReport:
    """Per-row outcome of a bulk import. Partial success is allowed."""
    total_rows: int = 0
    results: list[ImportRowResult] = field(default_factory=list)

    @property
    def imported(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> list[ImportRowResult]:
        return [r for r in self.results if not r.success]

    @property
    def success(self) -> bool:
        """True if every row was imported."""
        return self.total_rows > 0 and not self.failed

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "total_rows": self.total_rows,
            "imported": self.imported,
            "failed_count": len(self.failed),
            "success": self.success,
            "failures": [
                {"row": r.row, "error": r.error}
                for r in self.failed
            ],
        }


@dataclass
class ImportPreview:
    """What the operator reviews before committing an import."""
    preview_id: str
    filename: str
    headers: list[str]
    mapping: ImportMapping
    unmapped_headers: list[str]
    total_rows: int
    sample_rows: list[dict[str, str]]
    sample_records: list[ImportRow]

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "preview_id": self.preview_id,
            "filename": self.filename,
            "headers": self.headers,
            "mapping": self.mapping,
            "unmapped_headers": self.unmapped_headers,
            "total_rows": self.total_rows,
            "sample_rows": self.sample_rows,
            "sample_records": [
                {"row": r.row, "record": r.record, "errors": r.errors}
                for r in self.sample_records
            ],
        }


# ===================
# API SCHEMAS
# ===================

class MappingUpdateRequest(BaseSchema):
    """Operator corrections to the auto-derived mapping. Empty value unmaps."""
    mapping: dict[str, Optional[str]] = Field(default_factory=dict)


class ImportPreviewResponse(BaseModel):
    """Import preview response."""
    success: bool
    message: str
    preview: dict[str, Any]


class ImportReportResponse(BaseModel):
    """Import commit response."""
    success: bool
    message: str
    report: dict[str, Any]
