from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import openpyxl
import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from bakery_import.importer import ImportResult
from bakery_import.normalize import cell_text
from bakery_import.schemas import RecordType, default_record_types

HEADER_COLORS = {
    "products": "4CAF50",
    "items": "1565C0",
    "bom": "6A1B9A",
    "production": "EF6C00",
    "allocations": "00838F",
}
LOG_COLOR = "546E7A"
LOG_SHEET = "Import Log"


def _style_sheet(ws, col_widths: list[int], header_color: str) -> None:
    """Bold coloured header, frozen first row, column widths."""
    fill = PatternFill("solid", fgColor=header_color)
    font = Font(bold=True, color="FFFFFF")
    for cell in ws[1]:
        cell.font = font
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=False)
    ws.freeze_panes = "A2"
    for i, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def _infer_col_widths(rows: list[list[Any]], min_width: int = 10, max_width: int = 60, sample: int = 300) -> list[int]:
    if not rows:
        return []
    widths = [max(min_width, min(max_width, len(cell_text(v)) + 2)) for v in rows[0]]
    for row in rows[1 : sample + 1]:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], min(max_width, len(cell_text(val)) + 2))
    return widths


def present_fields(record_type: RecordType, records: Sequence[dict[str, Any]]) -> list[str]:
    """Fields in declaration order that appear in at least one record."""
    seen = {name for record in records for name in record}
    return [name for name in record_type.fields if name in seen]


def records_frame(records: Sequence[dict[str, Any]], fields: Sequence[str]) -> pd.DataFrame:
    return pd.DataFrame([[record.get(name, "") for name in fields] for record in records], columns=list(fields))


def _log_rows(result: ImportResult) -> list[list[Any]]:
    rows: list[list[Any]] = [["sheet", "status", "record_type", "orientation", "header_row", "hits", "rows", "message"]]
    for report in result.sheets:
        if not report.tables:
            rows.append([report.name, report.status, "", "", "", "", 0, ""])
        for table in report.tables:
            rows.append(
                [
                    report.name,
                    report.status,
                    table["record_type"],
                    table["orientation"],
                    table["header_index"] + 1,
                    table["hits"],
                    table["rows"],
                    "",
                ]
            )
    for message in result.errors:
        rows.append(["", "error", "", "", "", "", "", message])
    return rows


def write_records_workbook(
    result: ImportResult,
    output_path: Path,
    record_types: Sequence[RecordType] | None = None,
) -> list[str]:
    """Write one sheet per non-empty record type plus an import log; returns the sheet titles."""
    record_types = tuple(record_types or default_record_types())
    wb = openpyxl.Workbook()
    wb.remove(wb.active)

    titles = []
    for record_type in record_types:
        records = result.records(record_type.key)
        if not records:
            continue
        fields = present_fields(record_type, records)
        ws = wb.create_sheet(record_type.label)
        rows = [fields] + [[record.get(name, "") for name in fields] for record in records]
        for row in rows:
            ws.append(row)
        _style_sheet(ws, _infer_col_widths(rows), HEADER_COLORS.get(record_type.key, LOG_COLOR))
        titles.append(record_type.label)

    log = wb.create_sheet(LOG_SHEET)
    log_rows = _log_rows(result)
    for row in log_rows:
        log.append(row)
    _style_sheet(log, _infer_col_widths(log_rows), LOG_COLOR)
    titles.append(LOG_SHEET)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
    return titles


def write_records_csv(
    result: ImportResult,
    output_dir: Path,
    record_types: Sequence[RecordType] | None = None,
) -> dict[str, Path]:
    record_types = tuple(record_types or default_record_types())
    output_dir.mkdir(parents=True, exist_ok=True)
    written: dict[str, Path] = {}
    for record_type in record_types:
        records = result.records(record_type.key)
        if not records:
            continue
        path = output_dir / f"{record_type.key}.csv"
        records_frame(records, present_fields(record_type, records)).to_csv(path, index=False, encoding="utf-8")
        written[record_type.key] = path
    return written
