"""
CSV bridge for list pages.

Export: records + column spec -> CSV text (every field quoted).
Import: uploaded CSV -> CsvDocument -> auto-mapped headers -> preview ->
mapped records with per-row validation errors.

CSV grammar is handled by pandas, so quoted fields may contain commas,
newlines and doubled quotes.
"""

import csv
from datetime import date
from io import StringIO
from typing import Any, Iterable, Optional, Sequence

import pandas as pd
import structlog
from pydantic import BaseModel, ValidationError as PydanticValidationError
from rapidfuzz import fuzz

from config import settings
from exceptions import CsvMissingColumnsError, CsvParseError, ValidationError
from models.imports import CsvDocument, ImportMapping, ImportPreview, ImportRow
from models.table import ColumnSpec, Record
from utils.text_utils import normalize_header

logger = structlog.get_logger(__name__)

CSV_MEDIA_TYPE = "text/csv;charset=utf-8"
CSV_MIME_TYPES = {"text/csv", "application/csv", "text/comma-separated-values"}

# Encodings tried in order for uploads (Mexican Excel exports are often cp1252)
UPLOAD_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")


# ===================
# EXPORT
# ===================

def _display(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _frame_to_csv(headers: list[str], rows: list[list[str]]) -> str:
    frame = pd.DataFrame(rows, columns=headers)
    text = frame.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
    return text[:-1] if text.endswith("\n") else text


def to_csv(records: Iterable[Record], columns: Sequence[ColumnSpec]) -> str:
    """
    Serialize records to CSV text.

    First line holds the headers; each following line one record. Every
    field is wrapped in double quotes, fields are separated by "," and
    rows by "\\n". Embedded double quotes are doubled.

    Args:
        records: Records in export order
        columns: Ordered column spec (header + extractor)

    Returns:
        CSV text without a trailing newline

    Raises:
        ValidationError: If no columns are given
    """
    if not columns:
        raise ValidationError("Export needs at least one column", code="EXPORT_NO_COLUMNS")

    headers = [c.header for c in columns]
    rows = [[_display(c.extract(record)) for c in columns] for record in records]

    logger.debug("csv_export_built", rows=len(rows), columns=len(headers))
    return _frame_to_csv(headers, rows)


def template_csv(columns: Sequence[ColumnSpec]) -> str:
    """Import template: header row plus one example row."""
    sample = [c for c in columns if c.example]
    if not sample:
        raise ValidationError("No template columns defined", code="EXPORT_NO_COLUMNS")
    return _frame_to_csv([c.header for c in sample], [[c.example for c in sample]])


def export_filename(
    label: str,
    variant: Optional[str] = None,
    on: Optional[date] = None,
    extension: str = "csv",
) -> str:
    """
    Download name: <label>-<ISO date>.csv, with the variant when given.

    - ("empleados", None, 2025-07-14) → "empleados-2025-07-14.csv"
    - ("empleados", "completo", 2025-07-14) → "empleados-completo-2025-07-14.csv"
    """
    day = (on or date.today()).isoformat()
    parts = [label, variant, day] if variant else [label, day]
    return f"{'-'.join(parts)}.{extension}"


# ===================
# IMPORT: PARSING
# ===================

def _dedupe_headers(headers: list[str]) -> list[str]:
    seen: dict[str, int] = {}
    result = []
    for header in headers:
        count = seen.get(header, 0)
        seen[header] = count + 1
        result.append(f"{header}.{count}" if count else header)
    return result


def parse_csv(text: str) -> CsvDocument:
    """
    Parse CSV text. The first line is the header row.

    Values are kept as stripped text; blank lines are skipped. The header
    row fixes the column count, so a data row with more fields than the
    header is rejected instead of being shifted into an implicit index.

    Raises:
        CsvParseError: If the text is empty, has no header or is malformed
    """
    if text is None or not text.strip():
        raise CsvParseError("CSV file is empty")

    text = text.lstrip("\ufeff")

    try:
        frame = pd.read_csv(
            StringIO(text),
            header=None,
            index_col=False,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError as e:
        raise CsvParseError("CSV file has no header row", details={"error": str(e)}) from e
    except pd.errors.ParserError as e:
        raise CsvParseError("CSV file is malformed", details={"error": str(e)}) from e

    frame = frame.fillna("")
    if frame.empty:
        raise CsvParseError("CSV file has no header row")

    headers = _dedupe_headers([str(h).strip() for h in frame.iloc[0]])
    rows = [
        dict(zip(headers, (str(value).strip() for value in values)))
        for values in frame.iloc[1:].itertuples(index=False, name=None)
    ]

    logger.info("csv_parsed", headers=len(headers), rows=len(rows))
    return CsvDocument(headers=headers, rows=rows)


def read_csv_upload(filename: Optional[str], content: bytes, content_type: Optional[str] = None) -> CsvDocument:
    """
    Read an uploaded CSV file as text and parse it.

    Args:
        filename: Uploaded file name (must end in .csv)
        content: Raw upload
        content_type: MIME type reported by the browser

    Raises:
        CsvParseError: Wrong file type, undecodable or unparseable content
    """
    mime = (content_type or "").split(";")[0].strip().lower()
    has_csv_name = bool(filename) and filename.lower().endswith(".csv")
    if not has_csv_name and not (not filename and mime in CSV_MIME_TYPES):
        raise CsvParseError(
            "Please select a valid CSV file",
            details={"filename": filename, "content_type": content_type}
        )

    if not content:
        raise CsvParseError("CSV file is empty", details={"filename": filename})

    for encoding in UPLOAD_ENCODINGS:
        try:
            text = content.decode(encoding)
            break
        except UnicodeDecodeError:
            continue
    else:
        raise CsvParseError("CSV file is not valid text", details={"filename": filename})

    logger.info("csv_upload_read", filename=filename, encoding=encoding, bytes=len(content))
    return parse_csv(text)


# ===================
# IMPORT: HEADER MAPPING
# ===================

def _normalized_synonyms(synonyms: dict[str, tuple[str, ...]]) -> list[tuple[str, list[str]]]:
    table = []
    for field, words in synonyms.items():
        normalized = [normalize_header(w) for w in words]
        normalized.append(normalize_header(field))
        table.append((field, [w for w in normalized if w]))
    return table


def auto_map_headers(
    headers: Iterable[str],
    synonyms: dict[str, tuple[str, ...]],
    threshold: Optional[int] = None,
) -> ImportMapping:
    """
    Pre-populate the import mapping from uploaded headers.

    Each header is lower-cased and accent-folded, then tested for containing
    any synonym of each target field in table order (first hit wins). Headers
    with no substring hit fall back to the closest synonym by rapidfuzz ratio
    when it reaches the threshold. Anything else stays unmapped.

    - "Correo Electrónico" → "email"
    - "xyz123" → (unmapped)

    Args:
        headers: Uploaded header row
        synonyms: target field -> header fragments
        threshold: Minimum fuzzy score (defaults to settings)

    Returns:
        header -> target field, unmapped headers omitted
    """
    threshold = settings.fuzzy_header_threshold if threshold is None else threshold
    headers = list(headers)
    table = _normalized_synonyms(synonyms)
    mapping: ImportMapping = {}

    for header in headers:
        normalized = normalize_header(header)
        if not normalized:
            continue

        field = next(
            (f for f, words in table if any(w in normalized for w in words)),
            None
        )

        if field is None:
            best_score = 0.0
            for candidate, words in table:
                for word in words:
                    score = fuzz.ratio(normalized, word)
                    if score > best_score:
                        best_score, field = score, candidate
            if best_score < threshold:
                field = None
            elif field is not None:
                logger.debug("csv_header_fuzzy_mapped", header=header, field=field, score=best_score)

        if field is not None:
            mapping[header] = field

    logger.info(
        "csv_headers_mapped",
        mapped=len(mapping),
        unmapped=[h for h in headers if h not in mapping]
    )
    return mapping


def update_mapping(
    mapping: ImportMapping,
    changes: dict[str, Optional[str]],
    headers: Sequence[str],
    allowed_fields: Iterable[str],
) -> ImportMapping:
    """
    Apply operator corrections to a mapping.

    An empty or None target unmaps the header.

    Raises:
        ValidationError: Unknown header or target field
    """
    allowed = set(allowed_fields)
    updated = dict(mapping)
    for header, field in changes.items():
        if header not in headers:
            raise ValidationError(
                f"Unknown CSV column '{header}'",
                code="IMPORT_UNKNOWN_COLUMN",
                details={"header": header, "headers": list(headers)}
            )
        if not field:
            updated.pop(header, None)
            continue
        if field not in allowed:
            raise ValidationError(
                f"Unknown target field '{field}'",
                code="IMPORT_UNKNOWN_FIELD",
                details={"field": field, "allowed": sorted(allowed)}
            )
        updated[header] = field
    return updated


def missing_required(mapping: ImportMapping, required_fields: Iterable[str]) -> list[str]:
    """Required target fields no header is mapped to."""
    mapped = set(mapping.values())
    return [f for f in required_fields if f not in mapped]


# ===================
# IMPORT: ROWS
# ===================

def _format_validation_errors(error: PydanticValidationError) -> list[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        messages.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return messages


def map_rows(
    rows: Iterable[dict[str, str]],
    mapping: ImportMapping,
    required_fields: Sequence[str] = (),
    schema: Optional[type[BaseModel]] = None,
) -> list[ImportRow]:
    """
    Turn uploaded rows into record-shaped objects.

    Only mapped columns are used; empty cells are left out; when two
    columns map to the same field the first non-empty one wins. Rows that
    miss a required field or fail the schema keep their errors and are
    reported individually; other rows are unaffected.

    Args:
        rows: Parsed CSV rows (header -> text)
        mapping: header -> target field
        required_fields: Fields every row must carry
        schema: Optional payload schema used to validate and coerce rows

    Returns:
        One ImportRow per input row, numbered from 1
    """
    mapped_rows: list[ImportRow] = []

    for number, raw in enumerate(rows, start=1):
        record: dict[str, Any] = {}
        for header, field in mapping.items():
            value = raw.get(header)
            if value is None:
                continue
            value = value.strip() if isinstance(value, str) else value
            if value == "" or field in record:
                continue
            record[field] = value

        errors = [f"Missing required field '{f}'" for f in required_fields if f not in record]

        if schema is not None and not errors:
            try:
                validated = schema.model_validate(record)
                record = validated.model_dump(by_alias=True, mode="json", exclude_none=True)
            except PydanticValidationError as e:
                errors.extend(_format_validation_errors(e))

        if errors:
            logger.debug("import_row_invalid", row=number, errors=errors)

        mapped_rows.append(ImportRow(row=number, record=record, errors=errors))

    return mapped_rows


def build_preview(
    document: CsvDocument,
    mapping: ImportMapping,
    *,
    preview_id: str,
    filename: str,
    required_fields: Sequence[str] = (),
    schema: Optional[type[BaseModel]] = None,
    limit: Optional[int] = None,
) -> ImportPreview:
    """
    Preview of the first rows under the current mapping.

    Raises:
        CsvParseError: If the file has no data rows
        CsvMissingColumnsError: If a required field has no mapped column
    """
    limit = settings.import_preview_rows if limit is None else limit

    if not document.rows:
        raise CsvParseError("CSV file has no data rows", details={"filename": filename})

    missing = missing_required(mapping, required_fields)
    if missing:
        raise CsvMissingColumnsError(missing=missing, headers=document.headers)

    sample_rows = document.rows[:limit]
    return ImportPreview(
        preview_id=preview_id,
        filename=filename,
        headers=list(document.headers),
        mapping=dict(mapping),
        unmapped_headers=[h for h in document.headers if h not in mapping],
        total_rows=len(document.rows),
        sample_rows=sample_rows,
        sample_records=map_rows(sample_rows, mapping, required_fields, schema),
    )
