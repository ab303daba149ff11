"""
Workbook import pipeline.

    result = parse_workbook(load_workbook("Planung.xlsx"))
    result.products, result.items, result.bom, result.production, result.allocations
    result.errors: workbook-level diagnostics
    result.sheets: one SheetReport per sheet

Sheets are processed one after another and merged in sheet order, then row
order, so "first occurrence wins" during deduplication is reproducible.
Content problems never raise: unmatched sheets only lower the yield.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

from bakery_import.classifier import classify_sheet
from bakery_import.dedupe import finalize
from bakery_import.loader import Workbook, open_source
from bakery_import.normalize import is_blank_row
from bakery_import.schemas import RECORD_TYPE_KEYS, RecordType, default_record_types

NO_TABLES_MESSAGE = "No recognisable tables found in workbook. Check that the file has content."

SHEET_EMPTY = "empty"
SHEET_UNMATCHED = "unmatched"
SHEET_MATCHED = "matched"


@dataclass
class SheetReport:
    name: str
    rows: int
    status: str
    scores: dict[str, int] = field(default_factory=dict)
    tables: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "rows": self.rows,
            "status": self.status,
            "scores": dict(self.scores),
            "tables": [dict(table) for table in self.tables],
        }


@dataclass
class ImportResult:
    products: list[dict[str, Any]] = field(default_factory=list)
    items: list[dict[str, Any]] = field(default_factory=list)
    bom: list[dict[str, Any]] = field(default_factory=list)
    production: list[dict[str, Any]] = field(default_factory=list)
    allocations: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    sheets: list[SheetReport] = field(default_factory=list)

    def records(self, key: str) -> list[dict[str, Any]]:
        if key not in RECORD_TYPE_KEYS:
            raise KeyError(f"Unknown record type '{key}'. Supported: {list(RECORD_TYPE_KEYS)}")
        return getattr(self, key)

    def counts(self) -> dict[str, int]:
        return {key: len(self.records(key)) for key in RECORD_TYPE_KEYS}

    @property
    def is_empty(self) -> bool:
        return not any(self.counts().values())

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {key: [dict(record) for record in self.records(key)] for key in RECORD_TYPE_KEYS}
        payload["errors"] = list(self.errors)
        payload["sheets"] = [report.to_dict() for report in self.sheets]
        return payload


def _as_workbook(workbook: Any) -> Any:
    if isinstance(workbook, Mapping):
        return Workbook.from_rows(workbook)
    if not hasattr(workbook, "sheet_names") or not hasattr(workbook, "rows"):
        raise TypeError("workbook must expose sheet_names and rows(name), or be a mapping of sheet name to rows")
    return workbook


def process_sheet(
    name: str,
    grid: Sequence[Sequence[Any]],
    record_types: Sequence[RecordType],
) -> tuple[SheetReport, dict[str, list[dict[str, Any]]]]:
    """Classify one sheet and extract its records, keyed by record type."""
    extracted: dict[str, list[dict[str, Any]]] = {}
    if not grid or all(is_blank_row(row) for row in grid):
        return SheetReport(name=name, rows=len(grid or []), status=SHEET_EMPTY), extracted

    classification = classify_sheet(grid, record_types)
    report = SheetReport(
        name=name,
        rows=len(grid),
        status=SHEET_MATCHED if classification.tables else SHEET_UNMATCHED,
        scores=classification.scores,
    )
    for classified in classification.tables:
        records = classified.records()
        extracted.setdefault(classified.record_type.key, []).extend(records)
        report.tables.append(
            {
                "record_type": classified.record_type.key,
                "orientation": classified.table.orientation,
                "header_index": classified.table.header_index,
                "hits": classified.hits,
                "fields": sorted(classified.table.mapping, key=classified.table.mapping.get),
                "rows": len(records),
            }
        )
    return report, extracted


def parse_workbook(workbook: Any, record_types: Sequence[RecordType] | None = None) -> ImportResult:
    record_types = tuple(record_types or default_record_types())
    workbook = _as_workbook(workbook)
    result = ImportResult()

    for name in workbook.sheet_names:
        report, extracted = process_sheet(name, workbook.rows(name), record_types)
        result.sheets.append(report)
        for key, records in extracted.items():
            result.records(key).extend(records)

    for record_type in record_types:
        setattr(result, record_type.key, finalize(result.records(record_type.key), record_type.key_fields))

    if result.is_empty:
        result.errors.append(NO_TABLES_MESSAGE)
    return result


def import_file(source: "str | Path", record_types: Sequence[RecordType] | None = None) -> tuple[Workbook, ImportResult]:
    """Load a local file or public link and run the pipeline on it."""
    workbook = open_source(source)
    return workbook, parse_workbook(workbook, record_types)
