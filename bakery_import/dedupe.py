from __future__ import annotations

from typing import Any, Iterable, Sequence

from bakery_import.normalize import is_blank, normalize_label

KEY_SEPARATOR = "|"


def drop_blank_records(records: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    return [record for record in records if any(not is_blank(value) for value in record.values())]


def natural_key(record: dict[str, Any], key_fields: Sequence[str]) -> str | None:
    """Normalized composite key, or None when any key field is blank (unkeyable)."""
    parts = [normalize_label(record.get(name)) for name in key_fields]
    if not parts or not all(parts):
        return None
    return KEY_SEPARATOR.join(parts)


def finalize(records: Iterable[dict[str, Any]], key_fields: Sequence[str]) -> list[dict[str, Any]]:
    """
    Drop all-blank records, then remove duplicates by natural key.

    First occurrence wins and input order is kept. Records that cannot be
    keyed are always kept.
    """
    seen: set[str] = set()
    out = []
    for record in drop_blank_records(records):
        key = natural_key(record, key_fields)
        if key is None:
            out.append(record)
            continue
        if key in seen:
            continue
        seen.add(key)
        out.append(record)
    return out
