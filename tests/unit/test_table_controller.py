"""
Unit tests for the tabular resource controller.

Controllers run against the in-memory MockParksApi from conftest; async
operations are driven with asyncio.run.
"""

import asyncio
from datetime import date
from io import BytesIO

import pytest
from openpyxl import load_workbook

from exceptions import (
    CsvMissingColumnsError,
    CsvParseError,
    InvalidStateError,
    MutationError,
    RecordValidationError,
    ValidationError,
)
from models.table import PageStatus
from services.collection_cache import RemoteCollectionCache, make_resource_loader
from services.resource_registry import EMPLOYEES, INCOMES, RESOURCES
from services.table_controller import TabularResourceController
from tests.factories import CsvFactory, EmployeeFactory


def make_controller(api, config=EMPLOYEES, cache=None):
    cache = cache or RemoteCollectionCache(make_resource_loader(api, RESOURCES))
    return TabularResourceController(config, cache, api)


@pytest.fixture
def employees_page(mock_api, sample_employees):
    """Loaded employees page over the three sample employees."""
    mock_api.set_collection(EMPLOYEES.path, sample_employees)
    controller = make_controller(mock_api)
    asyncio.run(controller.load())
    return controller


@pytest.fixture
def large_page(mock_api):
    """Loaded employees page with 12 rows (3 pages of 5)."""
    EmployeeFactory.reset_counter()
    employees = EmployeeFactory.create_batch(12)
    for employee in employees[:4]:
        employee["department"] = "Dirección General"
    mock_api.set_collection(EMPLOYEES.path, employees)
    controller = make_controller(mock_api)
    asyncio.run(controller.load())
    return controller


# ===================
# LOADING
# ===================

class TestLoading:
    """Tests for load, failure and retry."""

    def test_new_page_is_loading(self, mock_api):
        controller = make_controller(mock_api)

        assert controller.status == PageStatus.LOADING
        assert controller.records == []

    def test_load_success(self, employees_page):
        view = employees_page.view()

        assert employees_page.status == PageStatus.READY
        assert view.total == 3
        assert view.page == 1
        assert view.total_pages == 1
        assert view.error is None
        assert view.loaded_at is not None
        assert [r["fullName"] for r in view.data] == ["Ana Pérez", "Luis Gómez", "Carmen López"]

    def test_load_failure_without_data(self, mock_api):
        mock_api.fail_collection(EMPLOYEES.path)
        controller = make_controller(mock_api)

        status = asyncio.run(controller.load())

        assert status == PageStatus.FAILED
        assert controller.error.code == "COLLECTION_LOAD_FAILED"
        assert controller.records == []

    def test_failed_refresh_keeps_rows(self, employees_page, mock_api):
        """Failed refetch: rows stay visible next to the error."""
        mock_api.fail_collection(EMPLOYEES.path, "Service unavailable")

        asyncio.run(employees_page.refresh())
        view = employees_page.view()

        assert employees_page.status == PageStatus.FAILED
        assert view.status == PageStatus.FAILED
        assert view.total == 3
        assert view.error.message == "Service unavailable"

    def test_retry_after_failure(self, mock_api, sample_employees):
        mock_api.fail_collection(EMPLOYEES.path)
        controller = make_controller(mock_api)
        asyncio.run(controller.load())

        mock_api.set_collection(EMPLOYEES.path, sample_employees)
        mock_api.heal_collection(EMPLOYEES.path)
        asyncio.run(controller.retry())

        assert controller.status == PageStatus.READY
        assert controller.error is None
        assert len(controller.records) == 3

    def test_failed_page_is_not_retried_automatically(self, mock_api):
        mock_api.fail_collection(EMPLOYEES.path)
        controller = make_controller(mock_api)
        asyncio.run(controller.load())

        asyncio.run(controller.ensure_loaded())
        asyncio.run(controller.ensure_loaded())

        assert mock_api.count("GET") == 1
        assert controller.status == PageStatus.FAILED

    def test_retry_only_from_failed(self, employees_page):
        with pytest.raises(InvalidStateError) as exc:
            asyncio.run(employees_page.retry())
        assert exc.value.code == "INVALID_PAGE_STATE"

    def test_ensure_loaded_uses_cache(self, employees_page, mock_api):
        asyncio.run(employees_page.ensure_loaded())

        assert mock_api.count("GET") == 1

    def test_invalidation_elsewhere_triggers_reload(self, employees_page, mock_api):
        employees_page.cache.invalidate("employees")

        asyncio.run(employees_page.ensure_loaded())

        assert mock_api.count("GET") == 2

    def test_pages_share_the_cache(self, mock_api, sample_employees):
        mock_api.set_collection(EMPLOYEES.path, sample_employees)
        cache = RemoteCollectionCache(make_resource_loader(mock_api, RESOURCES))
        first = make_controller(mock_api, cache=cache)
        second = make_controller(mock_api, cache=cache)

        async def mount_both():
            await asyncio.gather(first.load(), second.load())

        asyncio.run(mount_both())

        assert mock_api.count("GET") == 1
        assert first.records == second.records


# ===================
# FILTERS & PAGING
# ===================

class TestFiltersAndPaging:
    """Tests for filtering and pagination on the page."""

    def test_search(self, employees_page):
        employees_page.set_filter("search", "ana")

        assert [r["fullName"] for r in employees_page.view().data] == ["Ana Pérez"]

    def test_equality_and_status_combined(self, employees_page):
        employees_page.set_filters({"department": "Mantenimiento", "status": "active"})

        assert [r["fullName"] for r in employees_page.view().data] == ["Carmen López"]
        assert employees_page.view().filters == {"department": "Mantenimiento", "status": "active"}

    def test_filter_change_resets_page(self, large_page):
        """On page 3, any filter change goes back to page 1."""
        large_page.go_to_page(3)
        assert large_page.current_page == 3

        large_page.set_filter("department", "Mantenimiento")

        assert large_page.current_page == 1

    def test_unchanged_filter_keeps_page(self, large_page):
        large_page.go_to_page(2)

        changed = large_page.set_filters({"department": "all"})

        assert changed is False
        assert large_page.current_page == 2

    def test_reset_filters(self, large_page):
        large_page.set_filter("department", "Dirección General")

        large_page.reset_filters()

        assert large_page.view().total == 12

    def test_last_page(self, large_page):
        large_page.go_to_page(3)
        view = large_page.view()

        assert [r["id"] for r in view.data] == [11, 12]
        assert view.total_pages == 3

    def test_go_to_page_is_clamped(self, large_page):
        assert large_page.go_to_page(9) == 3

    def test_go_to_page_below_one(self, large_page):
        with pytest.raises(ValidationError) as exc:
            large_page.go_to_page(0)
        assert exc.value.code == "INVALID_PAGE"

    def test_page_clamped_when_collection_shrinks(self, large_page, mock_api, sample_employees):
        large_page.go_to_page(3)
        mock_api.set_collection(EMPLOYEES.path, sample_employees)

        asyncio.run(large_page.refresh())

        assert large_page.current_page == 1
        assert large_page.view().total_pages == 1

    def test_empty_filter_result(self, employees_page):
        employees_page.set_filter("search", "zzz")
        view = employees_page.view()

        assert view.data == []
        assert view.total == 0
        assert view.total_pages == 1


# ===================
# MUTATIONS
# ===================

class TestMutations:
    """Tests for create, update and delete."""

    def test_invalid_payload_never_reaches_the_api(self, employees_page, mock_api):
        with pytest.raises(RecordValidationError) as exc:
            asyncio.run(employees_page.create({"fullName": "Sin correo"}))

        assert mock_api.count("POST") == 0
        assert [e["field"] for e in exc.value.errors] == ["email"]
        assert employees_page.status == PageStatus.READY

    def test_invalid_email_reported(self, employees_page, mock_api):
        with pytest.raises(RecordValidationError) as exc:
            asyncio.run(employees_page.create({"fullName": "Ana", "email": "no-es-correo"}))

        assert exc.value.status_code == 422
        assert mock_api.count("POST") == 0

    def test_create_reloads_and_invalidates_dependents(self, employees_page, mock_api):
        notified = []
        employees_page.cache.subscribe("departments", notified.append)
        employees_page.cache.subscribe("hr-dashboard", notified.append)

        record = asyncio.run(employees_page.create({
            "fullName": "Nuevo Empleado",
            "email": "Nuevo@Parques.mx",
            "department": "Mantenimiento",
        }))

        assert record["email"] == "nuevo@parques.mx"
        assert mock_api.calls[1] == ("POST", "/api/hr/employees", {
            "fullName": "Nuevo Empleado",
            "email": "nuevo@parques.mx",
            "department": "Mantenimiento",
            "status": "active",
        })
        assert mock_api.count("GET") == 2
        assert notified == ["departments", "hr-dashboard"]
        assert employees_page.status == PageStatus.READY
        assert len(employees_page.records) == 4

    def test_update(self, employees_page, mock_api):
        asyncio.run(employees_page.update(2, {
            "fullName": "Luis Gómez",
            "email": "luis@parques.mx",
            "status": "active",
        }))

        luis = next(r for r in employees_page.records if r["id"] == 2)
        assert luis["status"].value == "active"
        assert mock_api.count("PUT") == 1

    def test_delete(self, employees_page, mock_api):
        asyncio.run(employees_page.delete(2))

        assert mock_api.calls[1] == ("DELETE", "/api/hr/employees", 2)
        assert [r["id"] for r in employees_page.records] == [1, 3]

    def test_api_rejection_keeps_page(self, employees_page, mock_api):
        mock_api.mutation_error = MutationError(operation="delete", message="Forbidden", status_code=403)

        with pytest.raises(MutationError) as exc:
            asyncio.run(employees_page.delete(2))

        assert exc.value.status_code == 403
        assert employees_page.status == PageStatus.READY
        assert mock_api.count("GET") == 1
        assert len(employees_page.records) == 3

    def test_mutation_allowed_after_failed_load(self, employees_page, mock_api):
        mock_api.fail_collection(EMPLOYEES.path)
        asyncio.run(employees_page.refresh())
        mock_api.heal_collection(EMPLOYEES.path)

        asyncio.run(employees_page.delete(3))

        assert employees_page.status == PageStatus.READY
        assert len(employees_page.records) == 2

    def test_mutation_not_allowed_while_loading(self, mock_api):
        controller = make_controller(mock_api)

        with pytest.raises(InvalidStateError):
            asyncio.run(controller.delete(1))
        assert mock_api.count("DELETE") == 0


# ===================
# IMPORT
# ===================

class TestImport:
    """Tests for CSV import through the page."""

    ROWS = [
        ["Juan Pérez", "juan@parques.mx", "555-0101", "Mantenimiento"],
        ["María Ruiz", "no-es-correo", "555-0102", "Mantenimiento"],
        ["Pedro Díaz", "pedro@parques.mx", "555-0103", "Dirección General"],
    ]

    def _begin(self, page, rows=None, **kwargs):
        return page.begin_import("empleados.csv", CsvFactory.employees(rows or self.ROWS, **kwargs), "text/csv")

    def test_begin_import_previews(self, employees_page):
        preview = self._begin(employees_page)

        assert employees_page.status == PageStatus.PREVIEWING
        assert preview.total_rows == 3
        assert preview.mapping == {
            "Nombre Completo": "fullName",
            "Correo Electrónico": "email",
            "Teléfono": "phone",
            "Departamento": "department",
        }
        assert preview.sample_records[1].errors

    def test_partial_import(self, employees_page, mock_api):
        """Good rows are kept; each failed row is reported with its reason."""
        mock_api.row_errors["pedro@parques.mx"] = "Email already registered"
        self._begin(employees_page)

        report = asyncio.run(employees_page.confirm_import())

        assert report.total_rows == 3
        assert report.imported == 1
        assert [(f.row, f.error) for f in report.failed][1] == (3, "Email already registered")
        assert report.failed[0].row == 2
        assert "email" in report.failed[0].error
        assert report.success is False

        # only locally valid rows were sent
        _, path, sent = next(c for c in mock_api.calls if c[0] == "IMPORT")
        assert path == "/api/hr/employees/import"
        assert [r["email"] for r in sent] == ["juan@parques.mx", "pedro@parques.mx"]

        assert employees_page.status == PageStatus.READY
        assert employees_page.pending_import is None
        assert len(employees_page.records) == 4

    def test_missing_required_column(self, employees_page):
        with pytest.raises(CsvMissingColumnsError) as exc:
            self._begin(employees_page, rows=[["Juan", "555"]], headers=["Nombre", "Teléfono"])

        assert exc.value.missing == ["email"]
        assert employees_page.status == PageStatus.READY
        assert employees_page.pending_import is None

    def test_wrong_file_type(self, employees_page, mock_api):
        with pytest.raises(CsvParseError):
            employees_page.begin_import("empleados.xlsx", b"PK\x03\x04", "application/octet-stream")

        assert employees_page.status == PageStatus.READY
        assert len(mock_api.calls) == 1

    def test_mapping_overrides_on_upload(self, employees_page):
        preview = employees_page.begin_import(
            "empleados.csv",
            CsvFactory.employees(self.ROWS),
            "text/csv",
            {"Departamento": ""},
        )

        assert "Departamento" in preview.unmapped_headers

    def test_update_mapping(self, employees_page):
        self._begin(employees_page)

        preview = employees_page.update_import_mapping({"Teléfono": None})

        assert "Teléfono" not in preview.mapping
        assert employees_page.pending_import.mapping == preview.mapping

    def test_update_mapping_cannot_drop_required(self, employees_page):
        self._begin(employees_page)

        with pytest.raises(CsvMissingColumnsError):
            employees_page.update_import_mapping({"Correo Electrónico": ""})

        assert employees_page.pending_import.mapping["Correo Electrónico"] == "email"

    def test_cancel(self, employees_page, mock_api):
        self._begin(employees_page)

        employees_page.cancel_import()

        assert employees_page.status == PageStatus.READY
        assert employees_page.pending_import is None
        assert mock_api.count("IMPORT") == 0

    def test_confirm_requires_preview(self, employees_page):
        with pytest.raises(InvalidStateError):
            asyncio.run(employees_page.confirm_import())

    def test_batch_rejected_keeps_preview(self, employees_page, mock_api):
        mock_api.mutation_error = MutationError(operation="import", message="Service down")
        self._begin(employees_page)

        with pytest.raises(MutationError):
            asyncio.run(employees_page.confirm_import())

        assert employees_page.status == PageStatus.PREVIEWING
        assert employees_page.pending_import is not None

    def test_load_while_previewing_keeps_dialog(self, employees_page):
        self._begin(employees_page)

        asyncio.run(employees_page.load())

        assert employees_page.status == PageStatus.PREVIEWING

    def test_per_row_creates_without_import_endpoint(self, mock_api, sample_incomes):
        mock_api.set_collection(INCOMES.path, sample_incomes)
        page = make_controller(mock_api, INCOMES)
        asyncio.run(page.load())
        content = (
            "Concepto,Monto,Fecha,Parque\n"
            "Renta de palapa,1200.50,14/07/2025,1\n"
            "Baile,abc,2025-07-01,1\n"
        ).encode("utf-8")

        page.begin_import("ingresos.csv", content, "text/csv")
        report = asyncio.run(page.confirm_import())

        assert report.imported == 1
        assert [f.row for f in report.failed] == [2]
        assert mock_api.count("POST") == 1
        assert mock_api.calls[1][2] == {
            "parkId": 1,
            "concept": "Renta de palapa",
            "amount": "1200.50",
            "date": "2025-07-14",
        }
        assert len(page.records) == 4

    def test_template(self, employees_page):
        template = employees_page.import_template()

        assert template.filename == "plantilla-empleados.csv"
        assert template.content.decode("utf-8").startswith('"Nombre Completo","Email"')


# ===================
# EXPORT
# ===================

class TestExport:
    """Tests for CSV and Excel downloads."""

    HEADER = '"Nombre Completo","Email","Teléfono","Puesto","Departamento","Salario","Estado"'

    def test_csv_export(self, employees_page):
        export = employees_page.export_csv(on=date(2025, 7, 14))
        lines = export.content.decode("utf-8").split("\n")

        assert export.filename == "empleados-2025-07-14.csv"
        assert export.media_type == "text/csv;charset=utf-8"
        assert lines[0] == self.HEADER
        assert lines[1] == (
            '"Ana Pérez","ana@parques.mx","555-0100","Directora",'
            '"Dirección General","18000.00","Activo"'
        )
        assert employees_page.status == PageStatus.READY

    def test_export_uses_filters(self, employees_page):
        employees_page.set_filter("department", "Mantenimiento")

        filtered = employees_page.export_csv().content.decode("utf-8").split("\n")
        everything = employees_page.export_csv(scope="all").content.decode("utf-8").split("\n")

        assert len(filtered) == 3
        assert len(everything) == 4

    def test_variant(self, employees_page):
        export = employees_page.export_csv(variant="completo", on=date(2025, 7, 14))

        assert export.filename == "empleados-completo-2025-07-14.csv"
        assert export.content.decode("utf-8").startswith('"ID","Nombre Completo"')

    def test_unknown_variant(self, employees_page):
        with pytest.raises(ValidationError) as exc:
            employees_page.export_csv(variant="secreto")
        assert exc.value.code == "INVALID_EXPORT_VARIANT"

    def test_unknown_scope(self, employees_page):
        with pytest.raises(ValidationError) as exc:
            employees_page.export_csv(scope="page")
        assert exc.value.code == "INVALID_EXPORT_SCOPE"

    def test_export_before_load(self, mock_api):
        with pytest.raises(InvalidStateError):
            make_controller(mock_api).export_csv()

    def test_xlsx_export(self, employees_page):
        export = employees_page.export_xlsx(on=date(2025, 7, 14))

        assert export.filename == "empleados-2025-07-14.xlsx"
        ws = load_workbook(BytesIO(export.content)).active
        assert ws.cell(row=4, column=1).value == "Nombre Completo"
        assert ws.cell(row=5, column=1).value == "Ana Pérez"


# ===================
# LIFECYCLE
# ===================

class TestClose:
    """Tests for unmounting a page."""

    def test_response_after_close_is_dropped(self, mock_api, sample_employees):
        holder = {}

        async def loader(key):
            # the page is unmounted while its request is in flight
            holder["page"].close()
            return sample_employees

        holder["page"] = make_controller(mock_api, cache=RemoteCollectionCache(loader))

        status = asyncio.run(holder["page"].load())

        assert status == PageStatus.CLOSED
        assert holder["page"].records == []

    def test_close_unsubscribes(self, employees_page):
        employees_page.close()

        assert employees_page.status == PageStatus.CLOSED
        assert employees_page.cache.subscriber_count("employees") == 0

    def test_closed_page_rejects_operations(self, employees_page):
        employees_page.close()

        with pytest.raises(InvalidStateError):
            employees_page.view()
        with pytest.raises(InvalidStateError):
            asyncio.run(employees_page.load())

    def test_close_is_idempotent(self, employees_page):
        employees_page.close()
        employees_page.close()

        assert employees_page.status == PageStatus.CLOSED
