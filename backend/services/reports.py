"""
Excel exports for the stock reports
"""
import io
from datetime import datetime
from typing import Any, Iterable, Sequence

from openpyxl import Workbook
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
LOW_FILL = PatternFill(start_color="FFE0B2", end_color="FFE0B2", fill_type="solid")
OUT_FILL = PatternFill(start_color="FFCDD2", end_color="FFCDD2", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

INVENTORY_HEADERS = ["Item", "Category", "Quantity", "Threshold", "Status", "Vendor", "Unit Price", "Last Updated"]
INVENTORY_WIDTHS = [30, 20, 12, 12, 10, 25, 12, 20]

ITEMS_OUT_HEADERS = ["Date", "Person", "Item", "Category", "Quantity", "Issued By"]
ITEMS_OUT_WIDTHS = [20, 25, 30, 20, 12, 25]


def build_workbook(
    title: str,
    headers: Sequence[str],
    rows: Iterable[Sequence[Any]],
    widths: Sequence[int],
    status_column: int = None,
) -> Workbook:
    """One styled sheet; rows whose status column says LOW/OUT are highlighted"""
    wb = Workbook()
    ws = wb.active
    ws.title = title

    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = THIN_BORDER

    for row_num, row in enumerate(rows, 2):
        fill = None
        if status_column is not None:
            fill = {"LOW": LOW_FILL, "OUT": OUT_FILL}.get(row[status_column])
        for col, value in enumerate(row, 1):
            cell = ws.cell(row=row_num, column=col, value=value)
            cell.border = THIN_BORDER
            if fill is not None:
                cell.fill = fill

    for col, width in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(col)].width = width
    ws.freeze_panes = "A2"
    return wb


def workbook_bytes(wb: Workbook) -> io.BytesIO:
    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output


def export_filename(prefix: str, now: datetime = None) -> str:
    return f"{prefix}_{(now or datetime.now()).strftime('%Y%m%d')}.xlsx"
