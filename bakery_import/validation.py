"""
Dry-run validation of extracted records.

Mirrors what the upload handler checks before it upserts anything: text is
trimmed, numbers accept comma decimals, dates become ``YYYY-MM-DD`` and every
record type has required fields. Nothing is looked up in storage; rows that
reference unknown codes pass through untouched.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Sequence

from bakery_import.importer import ImportResult
from bakery_import.normalize import cell_text, is_blank, parse_date_text, parse_number
from bakery_import.schemas import RECORD_TYPE_KEYS, RecordType, record_types_by_key

NUMERIC_FIELDS = {
    "unit_cost",
    "pack_size",
    "waste_pct",
    "yield_qty",
    "qty",
    "total_qty",
    "batch_size",
}
DATE_FIELDS = {"date"}
DEFAULTS: dict[str, dict[str, Any]] = {
    "products": {"unit_cost": 0.0, "waste_pct": 0.0},
    "production": {"status": "planned"},
}


def to_text(value: Any) -> str | None:
    if is_blank(value):
        return None
    return cell_text(value).strip()


def coerce_value(name: str, value: Any) -> Any:
    if name in NUMERIC_FIELDS:
        return parse_number(value)
    if name in DATE_FIELDS:
        return parse_date_text(value)
    return to_text(value)


def _missing(name: str, value: Any) -> bool:
    if value is None:
        return True
    return name in NUMERIC_FIELDS and value == 0


@dataclass
class ValidationReport:
    rows: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    rejected: dict[str, int] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "counts": {key: len(rows) for key, rows in self.rows.items()},
            "rejected": dict(self.rejected),
            "error_count": len(self.errors),
            "errors": list(self.errors),
            "rows": {key: [dict(row) for row in rows] for key, rows in self.rows.items()},
        }


def prepare_record(record_type: RecordType, record: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Coerce one record; returns the prepared row and the required fields it lacks."""
    prepared = {name: coerce_value(name, record.get(name)) for name in record_type.fields}
    for name, default in DEFAULTS.get(record_type.key, {}).items():
        if prepared.get(name) is None:
            prepared[name] = default
    missing = [name for name in record_type.required if _missing(name, prepared.get(name))]
    return prepared, missing


def _describe(record: dict[str, Any]) -> str:
    return json.dumps(record, ensure_ascii=False, default=cell_text, sort_keys=True)


def validate_records(record_type: RecordType, records: Sequence[dict[str, Any]], report: ValidationReport) -> None:
    accepted = report.rows.setdefault(record_type.key, [])
    rejected = 0
    for record in records:
        prepared, missing = prepare_record(record_type, record)
        if missing:
            rejected += 1
            report.errors.append(
                f"{record_type.label}: invalid row ({', '.join(missing)} required): {_describe(record)}"
            )
            continue
        accepted.append(prepared)
    report.rejected[record_type.key] = rejected


def validate_result(result: ImportResult, record_types: Sequence[RecordType] | None = None) -> ValidationReport:
    by_key = record_types_by_key(tuple(record_types) if record_types else None)
    report = ValidationReport()
    for key in RECORD_TYPE_KEYS:
        validate_records(by_key[key], result.records(key), report)
    return report
