"""
Spreadsheet export of one month of ledger rows.

Writes a single worksheet with a styled header row followed by one row per
ExportRow, in the order given.
"""

from pathlib import Path
from typing import Optional, Sequence, Union

import structlog
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from bakery_ledger.ledger.export import export_headers
from bakery_ledger.models.record import ExportRow
from bakery_ledger.taxonomy import CURRENCY


SHEET_TITLE = "收支明细"
AMOUNT_FORMAT = "#,##0.00"


def export_filename(year: int, month: int) -> str:
    return f"烘焙店报表_{year}_{month}.xlsx"


def _style_header(ws, row=1):
    header_font = Font(bold=True, color="FFFFFF")
    fill = PatternFill("solid", fgColor="D97706")
    align = Alignment(horizontal="center", vertical="center")
    thin = Side(style="thin", color="A0A0A0")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    for cell in ws[row]:
        cell.font = header_font
        cell.fill = fill
        cell.alignment = align
        cell.border = border


def _autosize_columns(ws, min_width=10, max_width=45):
    for col in range(1, ws.max_column + 1):
        letter = get_column_letter(col)
        max_len = 0
        for cell in ws[letter]:
            if cell.value is None:
                continue
            max_len = max(max_len, len(str(cell.value)))
        ws.column_dimensions[letter].width = max(min_width, min(max_width, max_len + 2))


class XlsxExporter:
    """Writes month exports as .xlsx workbooks."""

    def __init__(self, currency: str = CURRENCY):
        self._currency = currency
        self._logger = structlog.get_logger(__name__)

    def build_workbook(self, rows: Sequence[ExportRow]) -> Workbook:
        wb = Workbook()
        ws = wb.active
        ws.title = SHEET_TITLE

        headers = export_headers(self._currency)
        ws.append(headers)
        _style_header(ws, 1)
        ws.freeze_panes = "A2"

        amount_column = headers.index(f"金额 ({self._currency})") + 1
        for row in rows:
            ws.append(row.to_cells())
            ws.cell(ws.max_row, amount_column).number_format = AMOUNT_FORMAT

        _autosize_columns(ws)
        return wb

    def export(
        self,
        rows: Sequence[ExportRow],
        year: int,
        month: int,
        directory: Optional[Union[str, Path]] = None,
    ) -> Path:
        """
        Write rows to 烘焙店报表_<year>_<month>.xlsx.

        Args:
            rows: Projected rows, already in display order
            year: Calendar year of the exported month
            month: Calendar month (1-12)
            directory: Target directory, created if missing (default: cwd)

        Returns:
            Path of the written workbook
        """
        target_dir = Path(directory) if directory is not None else Path.cwd()
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / export_filename(year, month)

        self.build_workbook(rows).save(path)
        self._logger.info("export_written", path=str(path), row_count=len(rows))
        return path
