"""Excel report writer: produces the cleaned workbook, plus the QC artifact."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE, Cell
from openpyxl.styles import Alignment, Border, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.filters import AutoFilter
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from passport_cleaner.io import write_json
from passport_cleaner.models import QCReport

logger = logging.getLogger(__name__)

# ── Style constants ──────────────────────────────────────────────

SHEET_NAME = "Cleaned"
TABLE_NAME = "CleanedTable"
TABLE_STYLE = "TableStyleMedium2"

THIN_BLACK = Side(style="thin", color="FF000000")
CELL_BORDER = Border(top=THIN_BLACK, left=THIN_BLACK, bottom=THIN_BLACK, right=THIN_BLACK)
CELL_ALIGN = Alignment(wrap_text=True, vertical="top")

MIN_CONTENT_WIDTH = 10
WIDTH_PADDING = 2
MIN_COLUMN_WIDTH = 12
MAX_COLUMN_WIDTH = 60


# ── Helpers ──────────────────────────────────────────────────────


def _excel_value(val: Any) -> Any:
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        return val

    if isinstance(val, pd.Timestamp):
        dt = val.to_pydatetime()
        return dt.replace(tzinfo=None) if dt.tzinfo else dt

    if isinstance(val, datetime) and val.tzinfo:
        return val.replace(tzinfo=None)

    if isinstance(val, str):
        # Control characters are not allowed in worksheet XML.
        val = ILLEGAL_CHARACTERS_RE.sub("", val)
        return val or None

    return val


def _set_value(ws: Worksheet, row: int, column: int, value: Any) -> Cell:
    cell = ws.cell(row=row, column=column, value=_excel_value(value))
    # openpyxl treats a leading "=" as a formula; report text stays text.
    if cell.data_type == "f":
        cell.data_type = "s"
    return cell


def _longest_line(value: Any) -> int:
    if value is None or value == "":
        return 0
    return max(len(line) for line in str(value).splitlines() or [""])


def column_width(values: list[Any]) -> float:
    """Width for a column holding *values*: longest line plus padding, clamped."""
    longest = MIN_CONTENT_WIDTH
    for value in values:
        longest = max(longest, _longest_line(value))
    return min(max(longest + WIDTH_PADDING, MIN_COLUMN_WIDTH), MAX_COLUMN_WIDTH)


def _apply_sheet_styling(ws: Worksheet) -> None:
    """Wrap + top-align + border every used cell, then size columns."""
    for row in ws.iter_rows(min_row=1, max_row=ws.max_row, max_col=ws.max_column):
        for cell in row:
            cell.alignment = CELL_ALIGN
            cell.border = CELL_BORDER

    for c_idx in range(1, ws.max_column + 1):
        values = [
            row[0].value
            for row in ws.iter_rows(min_row=1, max_row=ws.max_row, min_col=c_idx, max_col=c_idx)
        ]
        ws.column_dimensions[get_column_letter(c_idx)].width = column_width(values)


def _add_excel_table(ws: Worksheet, ncols: int, nrows: int) -> None:
    """Turn the data range into a striped Excel Table with filter buttons."""
    if nrows < 1 or ncols < 1:
        return
    ref = f"A1:{get_column_letter(ncols)}{nrows + 1}"  # +1 for header
    table = Table(displayName=TABLE_NAME, ref=ref)
    table.autoFilter = AutoFilter(ref=ref)
    table.tableStyleInfo = TableStyleInfo(
        name=TABLE_STYLE, showFirstColumn=False,
        showLastColumn=False, showRowStripes=True, showColumnStripes=False,
    )
    ws.add_table(table)


def build_workbook(clean_df: pd.DataFrame) -> Workbook:
    """Lay *clean_df* out as a single styled ``Cleaned`` sheet."""
    wb = Workbook()
    ws = wb.active
    if ws is None:
        ws = wb.create_sheet()
    ws.title = SHEET_NAME

    col_names = [str(c) for c in clean_df.columns]
    if not col_names:
        ws.cell(row=1, column=1, value="No data")
        return wb

    for c_idx, col_name in enumerate(col_names, 1):
        _set_value(ws, 1, c_idx, col_name)
    for r_idx, row_vals in enumerate(clean_df.itertuples(index=False, name=None), 2):
        for c_idx, val in enumerate(row_vals, 1):
            _set_value(ws, r_idx, c_idx, val)

    _add_excel_table(ws, len(col_names), len(clean_df))
    _apply_sheet_styling(ws)
    ws.freeze_panes = "A2"
    return wb


# ── Public API ───────────────────────────────────────────────────


def write_report(report_path: Path, clean_df: pd.DataFrame) -> Path:
    """Write the cleaned workbook to *report_path* and return the path."""
    report_path = Path(report_path)
    report_path.parent.mkdir(parents=True, exist_ok=True)

    wb = build_workbook(clean_df)
    tmp_path = report_path.with_name(f"{report_path.stem}.tmp.xlsx")
    wb.save(tmp_path)
    tmp_path.replace(report_path)
    logger.debug("Wrote %d rows to %s", len(clean_df), report_path)
    return report_path


def write_qc_report(out_dir: Path, qc: QCReport) -> Path:
    """Write ``qc_report.json`` into *out_dir* and return the path."""
    return write_json(Path(out_dir) / "qc_report.json", qc.to_dict())
