"""
Tabular resource controller.

One instance per open list page. Wires the collection cache, the filter
engine, the pager and the CSV bridge together and enforces the page
state machine:

    loading  --fetch ok-->        ready
    loading  --fetch fails-->     failed
    ready    --filter changed-->  ready (page 1)
    ready    --mutation ok-->     loading (invalidate + refetch)
    ready    --export-->          ready
    ready    --import file-->     previewing
    previewing --confirm-->       loading (import + invalidate + refetch)
    previewing --cancel-->        ready
    failed   --retry-->           loading
    any      --close-->           closed

A failed load never replaces the last-known-good rows with nothing; they
stay visible next to the error.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from io import BytesIO
from typing import Any, Mapping, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from exceptions import (
    AppError,
    InvalidStateError,
    MutationError,
    RecordValidationError,
    ValidationError,
)
from integrations.parks_api import ParksApiClient
from models.filters import FilterSet, FilterValue, initial_filter_set
from models.imports import CsvDocument, ImportMapping, ImportPreview, ImportReport, ImportRowResult
from models.table import LoadErrorInfo, PageStatus, Record, ResourceConfig, TableViewResponse
from services import csv_bridge
from services.collection_cache import CacheSnapshot, RemoteCollectionCache
from services.export_service import XLSX_MEDIA_TYPE, get_export_service
from services.filter_engine import active_filters, filter_records
from services.pager import Page, clamp_page, paginate

logger = structlog.get_logger(__name__)

EXPORT_SCOPES = ("filtered", "all")


@dataclass
class PendingImport:
    """Uploaded file waiting for the operator to confirm the mapping."""
    preview_id: str
    filename: str
    document: CsvDocument
    mapping: ImportMapping


@dataclass
class ExportFile:
    """Generated download."""
    filename: str
    media_type: str
    content: bytes


def _unwrap_record(body: Any) -> Optional[dict]:
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        return body["data"]
    return body if isinstance(body, dict) else None


class TabularResourceController:
    """
    Controller for one list-page session.

    Args:
        config: Page configuration
        cache: Collection cache shared by the caller's pages
        client: Parks API client carrying the caller's session
    """

    def __init__(
        self,
        config: ResourceConfig,
        cache: RemoteCollectionCache,
        client: ParksApiClient,
    ):
        self.config = config
        self.cache = cache
        self.client = client

        self.status = PageStatus.LOADING
        self.filters: FilterSet = initial_filter_set(list(config.filters))
        self.current_page = 1
        self.page_size = config.page_size
        self.error: Optional[AppError] = None
        self.loaded_at: Optional[datetime] = None

        self._records: list[Record] = []
        self._pending_import: Optional[PendingImport] = None
        self._needs_reload = True
        self._unsubscribe = cache.subscribe(config.key, self._on_invalidated)

    @property
    def key(self) -> str:
        return self.config.key

    @property
    def records(self) -> list[Record]:
        """Last-known-good rows, in display order."""
        return list(self._records)

    @property
    def pending_import(self) -> Optional[PendingImport]:
        return self._pending_import

    def _require(self, operation: str, *allowed: PageStatus) -> None:
        if self.status not in allowed:
            raise InvalidStateError(operation, self.status.value)

    def _require_open(self, operation: str) -> None:
        if self.status == PageStatus.CLOSED:
            raise InvalidStateError(operation, self.status.value)

    def _on_invalidated(self, key: str) -> None:
        self._needs_reload = True

    # ===================
    # LOADING
    # ===================

    async def load(self) -> PageStatus:
        """
        Fetch the collection through the cache and settle into ready or failed.

        While previewing an import the page stays in previewing; only the
        rows behind the dialog are refreshed.
        """
        self._require_open("load")

        previewing = self.status == PageStatus.PREVIEWING
        if not previewing:
            self.status = PageStatus.LOADING
        self._needs_reload = False

        snapshot = await self.cache.load(self.key)

        if self.status == PageStatus.CLOSED:
            logger.info("page_response_dropped", key=self.key)
            return self.status

        self._apply(snapshot, previewing)
        return self.status

    def _apply(self, snapshot: CacheSnapshot, previewing: bool) -> None:
        if snapshot.has_records:
            self._records = snapshot.records
            self.loaded_at = snapshot.fetched_at

        if snapshot.status == PageStatus.FAILED:
            self.error = snapshot.error
            next_status = PageStatus.FAILED
        else:
            self.error = None
            next_status = PageStatus.READY

        if not previewing:
            self.status = next_status

        self.current_page = clamp_page(self.current_page, len(self.filtered_records()), self.page_size)

        logger.info(
            "page_loaded",
            key=self.key,
            status=self.status.value,
            rows=len(self._records),
            error=self.error.code if self.error else None
        )

    async def ensure_loaded(self) -> PageStatus:
        """Load when the page has never loaded or its key was invalidated."""
        self._require_open("load")
        if self._needs_reload or self.status == PageStatus.LOADING:
            return await self.load()
        if not self.cache.is_fresh(self.key) and self.status == PageStatus.READY:
            return await self.load()
        return self.status

    async def retry(self) -> PageStatus:
        """User-triggered retry after a failed load."""
        self._require("retry", PageStatus.FAILED)
        logger.info("page_retry", key=self.key)
        return await self.load()

    async def refresh(self) -> PageStatus:
        """Invalidate this page's collection and reload it."""
        self._require("refresh", PageStatus.READY, PageStatus.FAILED)
        self.cache.invalidate(self.key)
        return await self.load()

    # ===================
    # FILTERS & PAGING
    # ===================

    def set_filter(self, name: str, value: FilterValue) -> None:
        self.set_filters({name: value})

    def set_filters(self, changes: Mapping[str, FilterValue]) -> bool:
        """
        Apply filter changes. Any actual change resets the page to 1.

        Returns:
            True if the filter set changed
        """
        self._require_open("filter")
        changed = False
        for name, value in changes.items():
            if self.filters.get(name) != value:
                self.filters[name] = value
                changed = True

        if changed:
            self.current_page = 1
            logger.debug("page_filters_changed", key=self.key, filters=active_filters(self.filters))
        return changed

    def reset_filters(self) -> None:
        self.set_filters(initial_filter_set(list(self.config.filters)))

    def go_to_page(self, page: int) -> int:
        """
        Move to page, clamped to the filtered page count.

        Raises:
            ValidationError: If page is below 1
        """
        self._require_open("paginate")
        if page < 1:
            raise ValidationError(
                "Page number must be at least 1",
                code="INVALID_PAGE",
                details={"page": page}
            )
        self.current_page = clamp_page(page, len(self.filtered_records()), self.page_size)
        return self.current_page

    def filtered_records(self) -> list[Record]:
        return filter_records(self._records, self.filters, self.config.filters)

    def current_page_slice(self) -> Page:
        filtered = self.filtered_records()
        self.current_page = clamp_page(self.current_page, len(filtered), self.page_size)
        return paginate(filtered, self.page_size, self.current_page)

    def view(self) -> TableViewResponse:
        """Render the current page: visible rows, page counts, status and error."""
        self._require_open("view")
        page = self.current_page_slice()

        error = None
        if self.error is not None:
            error = LoadErrorInfo(code=self.error.code, message=self.error.message)

        return TableViewResponse.create(
            data=page.page_items,
            total=page.total_count,
            page=page.current_page,
            page_size=page.page_size,
            resource=self.key,
            status=self.status,
            filters=active_filters(self.filters),
            error=error,
            loaded_at=self.loaded_at,
        )

    # ===================
    # EXPORT
    # ===================

    def _export_rows(self, scope: str) -> list[Record]:
        if scope not in EXPORT_SCOPES:
            raise ValidationError(
                f"Unknown export scope '{scope}'",
                code="INVALID_EXPORT_SCOPE",
                details={"scope": scope, "allowed": list(EXPORT_SCOPES)}
            )
        return self.filtered_records() if scope == "filtered" else self.records

    def _variant(self, variant: Optional[str]):
        try:
            return self.config.export_variant(variant)
        except LookupError as e:
            raise ValidationError(str(e), code="INVALID_EXPORT_VARIANT", details={"variant": variant}) from e

    def export_csv(
        self,
        variant: Optional[str] = None,
        scope: str = "filtered",
        on: Optional[date] = None,
    ) -> ExportFile:
        """
        Export the filtered (or full) collection as CSV.

        The page state is unchanged.
        """
        self._require("export", PageStatus.READY, PageStatus.FAILED)
        chosen = self._variant(variant)
        rows = self._export_rows(scope)

        text = csv_bridge.to_csv(rows, chosen.columns)
        suffix = None if chosen is self.config.export_variants[0] else chosen.name
        filename = csv_bridge.export_filename(self.config.label, suffix, on)

        logger.info("page_exported", key=self.key, format="csv", variant=chosen.name, scope=scope, rows=len(rows))
        return ExportFile(filename=filename, media_type=csv_bridge.CSV_MEDIA_TYPE, content=text.encode("utf-8"))

    def export_xlsx(
        self,
        variant: Optional[str] = None,
        scope: str = "filtered",
        on: Optional[date] = None,
    ) -> ExportFile:
        """Export the same columns as a styled Excel workbook."""
        self._require("export", PageStatus.READY, PageStatus.FAILED)
        chosen = self._variant(variant)
        rows = self._export_rows(scope)

        output: BytesIO = get_export_service().generate_table_excel(
            title=chosen.label,
            records=rows,
            columns=chosen.columns,
            export_date=on,
        )
        suffix = None if chosen is self.config.export_variants[0] else chosen.name
        filename = csv_bridge.export_filename(self.config.label, suffix, on, extension="xlsx")

        logger.info("page_exported", key=self.key, format="xlsx", variant=chosen.name, scope=scope, rows=len(rows))
        return ExportFile(filename=filename, media_type=XLSX_MEDIA_TYPE, content=output.getvalue())

    def import_template(self) -> ExportFile:
        """Downloadable CSV template with one example row."""
        self._require_import_support()
        text = csv_bridge.template_csv(self.config.export_variant().columns)
        return ExportFile(
            filename=f"plantilla-{self.config.label}.csv",
            media_type=csv_bridge.CSV_MEDIA_TYPE,
            content=text.encode("utf-8"),
        )

    # ===================
    # IMPORT
    # ===================

    def _require_import_support(self) -> None:
        if not self.config.supports_import:
            raise ValidationError(
                f"'{self.key}' does not support CSV import",
                code="IMPORT_NOT_SUPPORTED",
                details={"resource": self.key}
            )

    def _preview(self, pending: PendingImport, mapping: ImportMapping) -> ImportPreview:
        return csv_bridge.build_preview(
            pending.document,
            mapping,
            preview_id=pending.preview_id,
            filename=pending.filename,
            required_fields=self.config.required_fields,
            schema=self.config.create_model,
        )

    def begin_import(
        self,
        filename: Optional[str],
        content: bytes,
        content_type: Optional[str] = None,
        mapping_overrides: Optional[Mapping[str, Optional[str]]] = None,
    ) -> ImportPreview:
        """
        Read an uploaded CSV and enter previewing.

        Parse failures and unmapped required columns are raised before any
        network call and leave the page in ready.

        Raises:
            CsvParseError: Unreadable file
            CsvMissingColumnsError: Required fields without a mapped column
        """
        self._require("import", PageStatus.READY)
        self._require_import_support()

        document = csv_bridge.read_csv_upload(filename, content, content_type)
        mapping = csv_bridge.auto_map_headers(document.headers, self.config.import_synonyms)
        if mapping_overrides:
            mapping = csv_bridge.update_mapping(
                mapping, dict(mapping_overrides), document.headers, self.config.import_synonyms
            )

        pending = PendingImport(
            preview_id=str(uuid.uuid4()),
            filename=filename or "upload.csv",
            document=document,
            mapping=mapping,
        )
        preview = self._preview(pending, mapping)

        self._pending_import = pending
        self.status = PageStatus.PREVIEWING

        logger.info(
            "import_preview_created",
            key=self.key,
            preview_id=pending.preview_id,
            rows=len(document),
            mapped=len(mapping)
        )
        return preview

    def preview_import(self) -> ImportPreview:
        """Current preview."""
        self._require("preview import", PageStatus.PREVIEWING)
        return self._preview(self._pending_import, self._pending_import.mapping)

    def update_import_mapping(self, changes: Mapping[str, Optional[str]]) -> ImportPreview:
        """
        Correct the auto-derived mapping and return the refreshed preview.

        The correction is only kept when every required field stays mapped.
        """
        self._require("update mapping", PageStatus.PREVIEWING)
        pending = self._pending_import
        mapping = csv_bridge.update_mapping(
            pending.mapping, dict(changes), pending.document.headers, self.config.import_synonyms
        )
        preview = self._preview(pending, mapping)
        pending.mapping = mapping
        return preview

    def cancel_import(self) -> None:
        """Discard the pending upload and return to ready."""
        self._require("cancel import", PageStatus.PREVIEWING)
        logger.info("import_cancelled", key=self.key, preview_id=self._pending_import.preview_id)
        self._pending_import = None
        self.status = PageStatus.READY

    async def confirm_import(self) -> ImportReport:
        """
        Send the mapped rows and report per-row outcomes.

        Rows failing local validation are reported without being sent.
        Successfully imported rows are kept even when others fail. When
        anything was imported the collection is invalidated and reloaded.

        Raises:
            MutationError: If the API rejects the whole batch (the preview
                stays open)
        """
        self._require("confirm import", PageStatus.PREVIEWING)
        pending = self._pending_import

        mapped = csv_bridge.map_rows(
            pending.document.rows,
            pending.mapping,
            self.config.required_fields,
            self.config.create_model,
        )
        results = [
            ImportRowResult(row=r.row, success=False, error="; ".join(r.errors))
            for r in mapped if not r.is_valid
        ]
        valid = [r for r in mapped if r.is_valid]

        if valid:
            if self.config.import_path:
                report = await asyncio.to_thread(
                    self.client.bulk_import,
                    self.config.import_path,
                    [r.record for r in valid],
                    [r.row for r in valid],
                )
                results.extend(report.results)
            else:
                results.extend(await self._create_rows(valid))

        results.sort(key=lambda r: r.row)
        report = ImportReport(total_rows=len(mapped), results=results)

        for failure in report.failed:
            logger.warning("import_row_failed", key=self.key, row=failure.row, error=failure.error)
        logger.info(
            "import_completed",
            key=self.key,
            total=report.total_rows,
            imported=report.imported,
            failed=len(report.failed)
        )

        if self.status == PageStatus.CLOSED:
            logger.info("page_response_dropped", key=self.key)
            return report

        self._pending_import = None
        self.status = PageStatus.READY
        if report.imported:
            self.cache.invalidate(self.key, *self.config.dependent_keys)
            await self.load()
        return report

    async def _create_rows(self, rows) -> list[ImportRowResult]:
        results = []
        for row in rows:
            try:
                body = await asyncio.to_thread(self.client.create, self.config.path, row.record)
            except MutationError as e:
                results.append(ImportRowResult(row=row.row, success=False, error=e.message))
                continue
            created = _unwrap_record(body) or {}
            results.append(ImportRowResult(row=row.row, success=True, record_id=created.get("id")))
        return results

    # ===================
    # MUTATIONS
    # ===================

    def validate_payload(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """
        Validate a form payload locally.

        Raises:
            RecordValidationError: Field errors; nothing is sent
        """
        if self.config.create_model is None:
            raise ValidationError(
                f"'{self.key}' is read-only",
                code="RESOURCE_READ_ONLY",
                details={"resource": self.key}
            )
        try:
            validated = self.config.create_model.model_validate(dict(payload))
        except PydanticValidationError as e:
            errors = [
                {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg")}
                for err in e.errors()
            ]
            logger.info("record_validation_failed", key=self.key, errors=errors)
            raise RecordValidationError(errors) from e
        return validated.model_dump(by_alias=True, mode="json", exclude_none=True)

    async def _after_mutation(self, operation: str) -> None:
        if self.status == PageStatus.CLOSED:
            logger.info("page_response_dropped", key=self.key, operation=operation)
            return
        self.cache.invalidate(self.key, *self.config.dependent_keys)
        await self.load()

    async def create(self, payload: Mapping[str, Any]) -> Optional[dict]:
        """Validate, POST, then invalidate and reload."""
        self._require("create", PageStatus.READY, PageStatus.FAILED)
        body = self.validate_payload(payload)
        result = await asyncio.to_thread(self.client.create, self.config.path, body)
        logger.info("record_created", key=self.key)
        await self._after_mutation("create")
        return _unwrap_record(result)

    async def update(self, record_id: Any, payload: Mapping[str, Any]) -> Optional[dict]:
        """Validate, PUT, then invalidate and reload."""
        self._require("update", PageStatus.READY, PageStatus.FAILED)
        body = self.validate_payload(payload)
        result = await asyncio.to_thread(self.client.update, self.config.path, record_id, body)
        logger.info("record_updated", key=self.key, record_id=record_id)
        await self._after_mutation("update")
        return _unwrap_record(result)

    async def delete(self, record_id: Any) -> None:
        """DELETE, then invalidate and reload."""
        self._require("delete", PageStatus.READY, PageStatus.FAILED)
        await asyncio.to_thread(self.client.delete, self.config.path, record_id)
        logger.info("record_deleted", key=self.key, record_id=record_id)
        await self._after_mutation("delete")

    # ===================
    # LIFECYCLE
    # ===================

    def close(self) -> None:
        """Unmount the page. Responses arriving afterwards are dropped."""
        if self.status == PageStatus.CLOSED:
            return
        self._unsubscribe()
        self._pending_import = None
        self.status = PageStatus.CLOSED
        logger.info("page_closed", key=self.key)
