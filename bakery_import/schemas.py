"""
Record-type tables for the workbook importer.

The synonym tables are data, not code: they ship as
``bakery_import/data/record_types.json`` and can be replaced by a custom JSON
file of the same shape (``bakery-import schemas export`` writes the defaults).
Field order inside each table is significant: it is the priority in which the
header matcher claims columns.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

DEFAULT_SCHEMA_PATH = Path(__file__).resolve().parent / "data" / "record_types.json"
RECORD_TYPE_KEYS = ("products", "items", "bom", "production", "allocations")
DEFAULT_THRESHOLD = 3


class SchemaConfigError(ValueError):
    """Raised when a record-type table file is missing pieces or malformed."""


@dataclass(frozen=True)
class RecordType:
    key: str
    label: str
    fields: dict[str, tuple[str, ...]]
    threshold: int
    key_fields: tuple[str, ...]
    required: tuple[str, ...] = ()

    @property
    def field_names(self) -> list[str]:
        return list(self.fields)

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "threshold": self.threshold,
            "key_fields": list(self.key_fields),
            "required": list(self.required),
            "fields": {name: list(synonyms) for name, synonyms in self.fields.items()},
        }


def _string_list(value: Any, where: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise SchemaConfigError(f"{where} must be a list of strings")
    return tuple(value)


def _build_record_type(key: str, payload: Any) -> RecordType:
    if not isinstance(payload, dict):
        raise SchemaConfigError(f"Record type '{key}' must be a JSON object")

    raw_fields = payload.get("fields")
    if not isinstance(raw_fields, dict) or not raw_fields:
        raise SchemaConfigError(f"Record type '{key}' needs a non-empty 'fields' object")
    fields = {
        name: _string_list(synonyms, f"'{key}.fields.{name}'")
        for name, synonyms in raw_fields.items()
    }

    threshold = payload.get("threshold", DEFAULT_THRESHOLD)
    if not isinstance(threshold, int) or isinstance(threshold, bool) or threshold < 1:
        raise SchemaConfigError(f"'{key}.threshold' must be a positive integer")

    key_fields = _string_list(payload.get("key_fields", []), f"'{key}.key_fields'")
    required = _string_list(payload.get("required", []), f"'{key}.required'")
    unknown = [name for name in (*key_fields, *required) if name not in fields]
    if unknown:
        raise SchemaConfigError(f"Record type '{key}' references unknown fields: {unknown}")

    return RecordType(
        key=key,
        label=str(payload.get("label") or key.title()),
        fields=fields,
        threshold=threshold,
        key_fields=key_fields,
        required=required,
    )


def parse_record_types(payload: Any) -> tuple[RecordType, ...]:
    if not isinstance(payload, dict):
        raise SchemaConfigError("Record type table root must be a JSON object")
    missing = [key for key in RECORD_TYPE_KEYS if key not in payload]
    if missing:
        raise SchemaConfigError(f"Record type table is missing: {missing}")
    extra = [key for key in payload if key not in RECORD_TYPE_KEYS]
    if extra:
        raise SchemaConfigError(
            f"Unknown record types {extra}. Supported: {list(RECORD_TYPE_KEYS)}"
        )
    return tuple(_build_record_type(key, payload[key]) for key in RECORD_TYPE_KEYS)


def load_record_types(path: "str | Path | None" = None) -> tuple[RecordType, ...]:
    """
    Load record-type tables from ``path`` (JSON) or the packaged defaults.

    Raises:
        FileNotFoundError  if ``path`` does not exist.
        SchemaConfigError  if the file is not valid JSON or misses required keys.
    """
    if path is None:
        return default_record_types()
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")
    if path.suffix.lower() != ".json":
        raise SchemaConfigError("Record type tables must be .json files")
    return _load_json(path)


def _load_json(path: Path) -> tuple[RecordType, ...]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SchemaConfigError(f"Could not read record type table {path}: {exc}") from exc
    return parse_record_types(payload)


@lru_cache(maxsize=1)
def default_record_types() -> tuple[RecordType, ...]:
    return _load_json(DEFAULT_SCHEMA_PATH)


def record_types_by_key(record_types: tuple[RecordType, ...] | None = None) -> dict[str, RecordType]:
    return {record_type.key: record_type for record_type in (record_types or default_record_types())}


def export_record_types(record_types: tuple[RecordType, ...] | None = None) -> dict[str, Any]:
    return {record_type.key: record_type.to_dict() for record_type in (record_types or default_record_types())}
