"""
Spreadsheet export for the yearly indicator matrix.

Renders the dict returned by ``report_engine.yearly_matrix`` with openpyxl:
title row, header row, one row per (indicator × unit), and a per-unit
"not achieved" count row after each group. Missed months are written in
bold red, achieved months in green.
"""

import io
import logging
from types import SimpleNamespace

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from quality_indicators.services.achievement import format_target

logger = logging.getLogger(__name__)

MONTH_HEADERS = ["JAN", "FEB", "MAR", "APR", "MEI", "JUN",
                 "JUL", "AGU", "SEP", "OKT", "NOV", "DES"]
HEADERS = ["NO", "JUDUL INDIKATOR MUTU", "UNIT/PIC", "Target", *MONTH_HEADERS]
FIXED_COLUMNS = 4

HEADER_FILL = PatternFill(start_color="E0E0E0", end_color="E0E0E0", fill_type="solid")
SUMMARY_FILL = PatternFill(start_color="F5F5F5", end_color="F5F5F5", fill_type="solid")
HEADER_FONT = Font(bold=True)
ACHIEVED_FONT = Font(color="16A34A")
MISSED_FONT = Font(color="DC2626", bold=True)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
NUMBER_FORMATS = {
    "percentage": '0.00"%"',
    "day": '0.00" hari"',
}
COLUMN_WIDTHS = [6, 50, 25, 12] + [10] * 12


def export_yearly_matrix_xlsx(matrix: dict) -> io.BytesIO:
    """
    Generate a styled workbook from a yearly matrix.
    Returns a BytesIO buffer ready for Flask send_file.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = f"Laporan {matrix['year']}"

    last_col = get_column_letter(len(HEADERS))
    ws.merge_cells(f"A1:{last_col}1")
    ws["A1"] = f"JANUARI - DESEMBER TAHUN {matrix['year']}"
    ws["A1"].font = Font(bold=True, size=14)
    ws["A1"].alignment = Alignment(horizontal="center")

    row = 2
    for col, header in enumerate(HEADERS, 1):
        cell = ws.cell(row=row, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center")

    for group in matrix.get("unit_groups", []):
        for ind in group["indicators"]:
            row += 1
            target = format_target(SimpleNamespace(
                target=ind.get("target"),
                target_comparator=ind.get("target_comparator"),
                target_unit=ind.get("target_unit"),
            ))
            values = [ind["no"], ind["title"], ind["unit_name"], target]
            for col, value in enumerate(values, 1):
                ws.cell(row=row, column=col, value=value).border = THIN_BORDER

            number_format = NUMBER_FORMATS.get(ind.get("target_unit"), "0.00")
            for offset, result in enumerate(ind["monthly_results"]):
                cell = ws.cell(row=row, column=FIXED_COLUMNS + 1 + offset)
                cell.border = THIN_BORDER
                if result["achievement"] is None:
                    cell.value = "-"
                    cell.alignment = Alignment(horizontal="center")
                    continue
                cell.value = result["achievement"]
                cell.number_format = number_format
                cell.font = ACHIEVED_FONT if result["achieved"] else MISSED_FONT

        row += 1
        summary = ["", "Indikator tidak mencapai target", "", ""]
        summary += [count if count > 0 else "-" for count in group["not_achieved_count"]]
        for col, value in enumerate(summary, 1):
            cell = ws.cell(row=row, column=col, value=value)
            cell.fill = SUMMARY_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER
            if col > FIXED_COLUMNS:
                cell.alignment = Alignment(horizontal="center")
                if value != "-":
                    cell.font = MISSED_FONT
        # blank separator row
        row += 1

    for col, width in enumerate(COLUMN_WIDTHS, 1):
        ws.column_dimensions[get_column_letter(col)].width = width

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    logger.debug("Exported yearly matrix %s (%d rows)", matrix["year"], row)
    return output
