"""
List-page API routes.

Every admin list page (employees, volunteers, journal entries, incomes,
expenses, trees) is served by the same endpoints, parameterized by the
resource key. The caller's session is read from the request headers and
passed explicitly to the page controller.
"""

import json
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, File, Form, Header, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response
import structlog

from exceptions import AppError, ValidationError
from integrations.parks_api import ApiSession
from models.imports import ImportPreviewResponse, ImportReportResponse, MappingUpdateRequest
from models.table import MutationResponse, PageStatus, ResourceCatalogResponse, TableViewResponse
from services import page_session_service
from services.filter_engine import parse_filter_params
from services.resource_registry import list_resources
from services.table_controller import ExportFile, TabularResourceController

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# DEPENDENCIES
# ===================

def get_api_session(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> ApiSession:
    """Caller identity forwarded to the parks API."""
    token = None
    if authorization:
        scheme, _, value = authorization.partition(" ")
        token = value.strip() if scheme.lower() == "bearer" and value else authorization.strip()
    return ApiSession(token=token, user_id=x_user_id, user_role=x_user_role)


async def _loaded_page(session: ApiSession, resource: str) -> TabularResourceController:
    controller = page_session_service.open_page(session, resource)
    await controller.ensure_loaded()
    return controller


def _require_rows(controller: TabularResourceController) -> None:
    """A failed page with nothing to show is reported as the load error."""
    if controller.status == PageStatus.FAILED and not controller.records:
        raise controller.error


def _download(export: ExportFile) -> Response:
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{export.filename}"',
            "Content-Length": str(len(export.content)),
        },
    )


# ===================
# ROUTES
# ===================

@router.get("", response_model=ResourceCatalogResponse)
async def list_tables():
    """
    List available list pages.

    Returns filters, page size, export variants and import fields per page.
    """
    resources = list_resources()
    return ResourceCatalogResponse(
        data=[r.describe() for r in resources],
        total=len(resources)
    )


@router.get("/{resource}", response_model=TableViewResponse)
async def view_table(
    resource: str,
    request: Request,
    page: Optional[int] = Query(None, ge=1, description="Page number"),
    session: ApiSession = Depends(get_api_session),
):
    """
    Render the current page of a list.

    Filters are passed as query parameters named after the page's filters;
    date ranges use `<name>_from` / `<name>_to`. Changing a filter returns
    to page 1.

    On a failed load the response carries status "failed", the error and
    the last-known-good rows. With no rows to show the load error is
    returned (503).
    """
    try:
        controller = await _loaded_page(session, resource)
        changes = parse_filter_params(controller.config.filters, request.query_params)
        controller.set_filters(changes)
        if page is not None:
            controller.go_to_page(page)

        _require_rows(controller)
        return controller.view()

    except Exception as e:
        return handle_error(e)


@router.post("/{resource}/refresh", response_model=TableViewResponse)
async def refresh_table(resource: str, session: ApiSession = Depends(get_api_session)):
    """
    Retry a failed load, or invalidate and refetch a loaded page.
    """
    try:
        controller = page_session_service.open_page(session, resource)
        if controller.status == PageStatus.FAILED:
            await controller.retry()
        elif controller.status == PageStatus.LOADING:
            await controller.load()
        else:
            await controller.refresh()

        _require_rows(controller)
        return controller.view()

    except Exception as e:
        return handle_error(e)


@router.get("/{resource}/export")
async def export_table(
    resource: str,
    format: str = Query("csv", pattern="^(csv|xlsx)$", description="File format"),
    variant: Optional[str] = Query(None, description="Export column set"),
    scope: str = Query("filtered", pattern="^(filtered|all)$", description="Filtered rows or the whole collection"),
    session: ApiSession = Depends(get_api_session),
):
    """
    Download the filtered (or full) collection as CSV or Excel.

    File name: <label>-<ISO date>.csv (variant added for non-default sets).
    """
    try:
        controller = await _loaded_page(session, resource)
        _require_rows(controller)

        if format == "xlsx":
            export = controller.export_xlsx(variant=variant, scope=scope)
        else:
            export = controller.export_csv(variant=variant, scope=scope)
        return _download(export)

    except Exception as e:
        return handle_error(e)


@router.get("/{resource}/import/template")
async def import_template(resource: str, session: ApiSession = Depends(get_api_session)):
    """Download a CSV template with one example row."""
    try:
        controller = page_session_service.open_page(session, resource)
        return _download(controller.import_template())

    except Exception as e:
        return handle_error(e)


@router.post("/{resource}/import/preview", response_model=ImportPreviewResponse)
async def preview_import(
    resource: str,
    file: UploadFile = File(..., description="CSV file to import"),
    mapping: Optional[str] = Form(None, description="JSON object of header -> field corrections"),
    session: ApiSession = Depends(get_api_session),
):
    """
    Upload a CSV and preview the first rows under the auto-derived mapping.

    Nothing is sent to the parks API until the import is confirmed. A new
    upload replaces a pending one.

    Raises:
        422: Not a CSV file, unparseable, or required columns not mapped
    """
    logger.info(
        "import_preview_started",
        resource=resource,
        filename=file.filename,
        content_type=file.content_type
    )

    try:
        overrides = None
        if mapping:
            try:
                overrides = json.loads(mapping)
            except ValueError as e:
                raise ValidationError("Mapping must be a JSON object", code="INVALID_MAPPING") from e
            if not isinstance(overrides, dict):
                raise ValidationError("Mapping must be a JSON object", code="INVALID_MAPPING")

        controller = await _loaded_page(session, resource)
        if controller.status == PageStatus.PREVIEWING:
            controller.cancel_import()

        content = await file.read()
        preview = controller.begin_import(file.filename, content, file.content_type, overrides)

        return ImportPreviewResponse(
            success=True,
            message=f"{preview.total_rows} filas listas para importar",
            preview=preview.to_dict()
        )

    except Exception as e:
        return handle_error(e)


@router.get("/{resource}/import", response_model=ImportPreviewResponse)
async def get_import_preview(resource: str, session: ApiSession = Depends(get_api_session)):
    """Current import preview."""
    try:
        controller = page_session_service.get_page(session, resource)
        preview = controller.preview_import()
        return ImportPreviewResponse(
            success=True,
            message=f"{preview.total_rows} filas listas para importar",
            preview=preview.to_dict()
        )

    except Exception as e:
        return handle_error(e)


@router.put("/{resource}/import/mapping", response_model=ImportPreviewResponse)
async def update_import_mapping(
    resource: str,
    data: MappingUpdateRequest,
    session: ApiSession = Depends(get_api_session),
):
    """
    Correct the column mapping of the pending import.

    An empty target unmaps a column.
    """
    try:
        controller = page_session_service.get_page(session, resource)
        preview = controller.update_import_mapping(data.mapping)
        return ImportPreviewResponse(
            success=True,
            message="Mapeo actualizado",
            preview=preview.to_dict()
        )

    except Exception as e:
        return handle_error(e)


@router.post("/{resource}/import/confirm", response_model=ImportReportResponse)
async def confirm_import(resource: str, session: ApiSession = Depends(get_api_session)):
    """
    Import every mapped row and report per-row results.

    Rows that fail are listed with their reason; the rest are kept.
    """
    try:
        controller = page_session_service.get_page(session, resource)
        report = await controller.confirm_import()

        if report.success:
            message = f"Se importaron {report.imported} registros correctamente"
        else:
            message = f"Se importaron {report.imported} de {report.total_rows} registros"

        return ImportReportResponse(
            success=report.success,
            message=message,
            report=report.to_dict()
        )

    except Exception as e:
        return handle_error(e)


@router.delete("/{resource}/import")
async def cancel_import(resource: str, session: ApiSession = Depends(get_api_session)):
    """Discard the pending import."""
    try:
        controller = page_session_service.get_page(session, resource)
        controller.cancel_import()
        return {"success": True, "message": "Importación cancelada"}

    except Exception as e:
        return handle_error(e)


@router.post("/{resource}/records", response_model=MutationResponse, status_code=201)
async def create_record(
    resource: str,
    payload: dict[str, Any] = Body(...),
    session: ApiSession = Depends(get_api_session),
):
    """
    Create a record.

    Raises:
        422: Validation failed (nothing was sent)
        4xx/502: Parks API rejected the record
    """
    try:
        controller = await _loaded_page(session, resource)
        record = await controller.create(payload)
        return MutationResponse(
            success=True,
            resource=controller.key,
            record=record,
            message="Registro creado"
        )

    except Exception as e:
        return handle_error(e)


@router.put("/{resource}/records/{record_id}", response_model=MutationResponse)
async def update_record(
    resource: str,
    record_id: str,
    payload: dict[str, Any] = Body(...),
    session: ApiSession = Depends(get_api_session),
):
    """Update a record."""
    try:
        controller = await _loaded_page(session, resource)
        record = await controller.update(record_id, payload)
        return MutationResponse(
            success=True,
            resource=controller.key,
            record=record,
            message="Registro actualizado"
        )

    except Exception as e:
        return handle_error(e)


@router.delete("/{resource}/records/{record_id}", response_model=MutationResponse)
async def delete_record(
    resource: str,
    record_id: str,
    session: ApiSession = Depends(get_api_session),
):
    """Delete a record."""
    try:
        controller = await _loaded_page(session, resource)
        await controller.delete(record_id)
        return MutationResponse(
            success=True,
            resource=controller.key,
            message="Registro eliminado"
        )

    except Exception as e:
        return handle_error(e)


@router.delete("/{resource}/session")
async def close_session(resource: str, session: ApiSession = Depends(get_api_session)):
    """Unmount the list page. Late responses for it are dropped."""
    try:
        closed = page_session_service.close_page(session, resource)
        return {"success": True, "closed": closed}

    except Exception as e:
        return handle_error(e)
