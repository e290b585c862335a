"""
Tests for export_service - list-page Excel generation.
"""

from datetime import date
from io import BytesIO

import pytest
from openpyxl import load_workbook

from exceptions import ValidationError
from services.export_service import (
    HEADER_ROW,
    MAX_COLUMN_WIDTH,
    ExportService,
    get_export_service,
)
from services.resource_registry import column
from utils.formatting import format_currency, format_date


COLUMNS = (
    column("Concepto", "concept"),
    column("Monto", "amount", format_currency),
    column("Fecha", "date", format_date),
)

RECORDS = [
    {"concept": "Renta de kiosco", "amount": 1200.5, "date": "2025-07-14"},
    {"concept": "Estacionamiento", "amount": 350, "date": "2025-02-10"},
]


def _sheet(output: BytesIO):
    return load_workbook(output).active


class TestGenerateTableExcel:
    """Tests for the list-page workbook."""

    @pytest.fixture
    def service(self):
        return ExportService()

    def test_returns_bytesio(self, service):
        result = service.generate_table_excel("Ingresos", RECORDS, COLUMNS, date(2025, 7, 14))

        assert isinstance(result, BytesIO)
        assert result.tell() == 0

    def test_title_and_date(self, service):
        ws = _sheet(service.generate_table_excel("Ingresos", RECORDS, COLUMNS, date(2025, 7, 14)))

        assert ws.title == "Ingresos"
        assert ws["A1"].value == "Ingresos"
        assert ws["A1"].font.bold
        assert ws["A2"].value == "Fecha de exportación:"
        assert ws["B2"].value == "14/07/2025"

    def test_headers(self, service):
        ws = _sheet(service.generate_table_excel("Ingresos", RECORDS, COLUMNS, date(2025, 7, 14)))

        headers = [ws.cell(row=HEADER_ROW, column=i).value for i in range(1, 4)]
        assert headers == ["Concepto", "Monto", "Fecha"]
        assert ws.cell(row=HEADER_ROW, column=1).font.bold

    def test_rows_use_display_values(self, service):
        ws = _sheet(service.generate_table_excel("Ingresos", RECORDS, COLUMNS, date(2025, 7, 14)))

        first = [ws.cell(row=HEADER_ROW + 1, column=i).value for i in range(1, 4)]
        second = [ws.cell(row=HEADER_ROW + 2, column=i).value for i in range(1, 4)]
        assert first == ["Renta de kiosco", "$1,200.50", "14/07/2025"]
        assert second == ["Estacionamiento", "$350.00", "10/02/2025"]

    def test_total_line(self, service):
        ws = _sheet(service.generate_table_excel("Ingresos", RECORDS, COLUMNS, date(2025, 7, 14)))

        # two data rows, one empty row, then the total
        assert ws.cell(row=HEADER_ROW + 4, column=1).value == "TOTAL: 2 registros"

    def test_empty_records(self, service):
        ws = _sheet(service.generate_table_excel("Ingresos", [], COLUMNS, date(2025, 7, 14)))

        assert ws.cell(row=HEADER_ROW + 2, column=1).value == "TOTAL: 0 registros"

    def test_freeze_panes_below_header(self, service):
        ws = _sheet(service.generate_table_excel("Ingresos", RECORDS, COLUMNS, date(2025, 7, 14)))

        assert ws.freeze_panes == f"A{HEADER_ROW + 1}"

    def test_long_title_is_truncated_for_sheet_name(self, service):
        title = "Inventario de árboles del parque metropolitano"
        ws = _sheet(service.generate_table_excel(title, RECORDS, COLUMNS, date(2025, 7, 14)))

        assert ws.title == title[:31]
        assert ws["A1"].value == title

    def test_column_width_is_capped(self, service):
        records = [{"concept": "x" * 200, "amount": 1, "date": None}]
        ws = _sheet(service.generate_table_excel("Ingresos", records, COLUMNS, date(2025, 7, 14)))

        assert ws.column_dimensions["A"].width == MAX_COLUMN_WIDTH

    def test_no_columns_rejected(self, service):
        with pytest.raises(ValidationError):
            service.generate_table_excel("Ingresos", RECORDS, [])


class TestSingleton:
    """Tests for singleton pattern."""

    def test_get_export_service_returns_instance(self):
        assert isinstance(get_export_service(), ExportService)

    def test_get_export_service_returns_same_instance(self):
        assert get_export_service() is get_export_service()
