"""
Export service: Generate list-page Excel files.

Renders the same column spec used for CSV export into a styled workbook:
title, export date, header row, one row per record and a total line.
"""

from datetime import date
from io import BytesIO
from typing import Iterable, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from openpyxl.utils import get_column_letter
import structlog

from exceptions import ValidationError
from models.table import ColumnSpec, Record

logger = structlog.get_logger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Sheet names are limited to 31 characters
MAX_SHEET_TITLE = 31
MIN_COLUMN_WIDTH = 10
MAX_COLUMN_WIDTH = 50

# First data header row (rows 1-3 hold title and date)
HEADER_ROW = 4


class ExportService:
    """Service for generating list-page export workbooks."""

    def generate_table_excel(
        self,
        title: str,
        records: Iterable[Record],
        columns: Sequence[ColumnSpec],
        export_date: Optional[date] = None,
    ) -> BytesIO:
        """
        Generate Excel file for a list page.

        Args:
            title: Sheet title (e.g. "Empleados")
            records: Records in display order
            columns: Ordered column spec (header + extractor)
            export_date: Date printed under the title (defaults to today)

        Returns:
            BytesIO containing the Excel file

        Raises:
            ValidationError: If no columns are given
        """
        if not columns:
            raise ValidationError("Export needs at least one column", code="EXPORT_NO_COLUMNS")

        if export_date is None:
            export_date = date.today()

        wb = Workbook()
        ws = wb.active
        ws.title = title[:MAX_SHEET_TITLE] or "Export"

        # Styles
        title_font = Font(bold=True, size=14)
        bold_font = Font(bold=True)
        header_fill = PatternFill(start_color="E0E8FF", end_color="E0E8FF", fill_type="solid")
        thin_border = Border(
            bottom=Side(style="thin", color="000000")
        )

        # Row 1: Title
        ws["A1"] = title
        ws["A1"].font = title_font

        # Row 2: Export date
        ws["A2"] = "Fecha de exportación:"
        ws["B2"] = export_date.strftime("%d/%m/%Y")

        # Row 4: Column headers
        widths = []
        for index, column in enumerate(columns, start=1):
            cell = ws.cell(row=HEADER_ROW, column=index, value=column.header)
            cell.font = bold_font
            cell.fill = header_fill
            cell.border = thin_border
            cell.alignment = Alignment(horizontal="center")
            widths.append(len(column.header))

        # Records (starting row 5)
        row = HEADER_ROW + 1
        count = 0
        for record in records:
            for index, column in enumerate(columns, start=1):
                value = column.extract(record)
                text = "" if value is None else str(value)
                ws.cell(row=row, column=index, value=text)
                widths[index - 1] = max(widths[index - 1], len(text))
            row += 1
            count += 1

        # Empty row, then total
        row += 1
        ws[f"A{row}"] = f"TOTAL: {count} registros"
        ws[f"A{row}"].font = bold_font

        for index, width in enumerate(widths, start=1):
            ws.column_dimensions[get_column_letter(index)].width = min(
                max(width + 2, MIN_COLUMN_WIDTH), MAX_COLUMN_WIDTH
            )

        ws.freeze_panes = ws.cell(row=HEADER_ROW + 1, column=1)

        logger.info(
            "table_excel_generated",
            title=title,
            rows=count,
            columns=len(columns),
        )

        # Save to BytesIO
        output = BytesIO()
        wb.save(output)
        output.seek(0)

        return output


# Singleton instance
_export_service: Optional[ExportService] = None


def get_export_service() -> ExportService:
    """Get or create ExportService instance."""
    global _export_service
    if _export_service is None:
        _export_service = ExportService()
    return _export_service
