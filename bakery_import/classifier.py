"""
Per-sheet record-type classification and row extraction.

Every record type is matched against the sheet on its own. The strongest
type that clears its threshold owns the sheet; other types are only kept
when they describe a separate table on the same sheet (a second header row,
or header cells the strong table does not use), which is how "everything"
workbooks stack several small tables on one tab.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Sequence

from bakery_import.matcher import MIN_ORIENTATION_HITS, Grid, TableMatch, match_headers, resolve_orientation
from bakery_import.schemas import RecordType, default_record_types


@dataclass(frozen=True)
class ClassifiedTable:
    record_type: RecordType
    table: TableMatch

    @property
    def hits(self) -> int:
        return self.table.hits

    def records(self) -> list[dict[str, Any]]:
        return rows_to_objects(self.table.rows, self.table.mapping)


@dataclass(frozen=True)
class SheetClassification:
    candidates: tuple[ClassifiedTable, ...]
    tables: tuple[ClassifiedTable, ...]

    @property
    def scores(self) -> dict[str, int]:
        return {candidate.record_type.key: candidate.hits for candidate in self.candidates}


def rows_to_objects(rows: Sequence[Sequence[Any]], mapping: dict[str, int]) -> list[dict[str, Any]]:
    out = []
    for row in rows:
        record = {}
        for name, col in mapping.items():
            record[name] = row[col] if col < len(row) else ""
        out.append(record)
    return out


def passes_threshold(candidate: ClassifiedTable) -> bool:
    return candidate.hits >= candidate.record_type.threshold


def is_independent(table: TableMatch, other: TableMatch) -> bool:
    """Two readings are separate tables when they share orientation but not header cells."""
    if table.orientation != other.orientation:
        return False
    if table.header_index != other.header_index:
        return True
    return not set(table.mapping.values()) & set(other.mapping.values())


def rematch_unclaimed(candidate: ClassifiedTable, chosen: Sequence[ClassifiedTable]) -> ClassifiedTable | None:
    """
    Re-read a candidate's header row without the columns chosen tables already own.

    Substring scoring lets a second table on the same header row borrow a
    neighbour's ``Code`` or ``Name`` column; matching again over the remaining
    cells recovers a side-by-side table. Returns None when the candidate runs
    in another orientation or no longer clears its threshold.
    """
    table = candidate.table
    claimed: set[int] = set()
    for item in chosen:
        if item.table.orientation != table.orientation:
            return None
        if item.table.header_index == table.header_index:
            claimed.update(item.table.mapping.values())

    header = table.grid[table.header_index] or ()
    free_cells = ["" if col in claimed else cell for col, cell in enumerate(header)]
    mapping = match_headers(free_cells, candidate.record_type.fields)
    if len(mapping) < MIN_ORIENTATION_HITS:
        return None
    rematched = ClassifiedTable(candidate.record_type, replace(table, mapping=mapping))
    return rematched if passes_threshold(rematched) else None


def _bound_stacked_tables(chosen: list[ClassifiedTable]) -> list[ClassifiedTable]:
    header_rows = sorted({item.table.header_index for item in chosen})
    bounded = []
    for item in chosen:
        later = [row for row in header_rows if row > item.table.header_index]
        stop = later[0] if later else None
        bounded.append(ClassifiedTable(item.record_type, item.table.bounded(stop)))
    return bounded


def classify_sheet(
    grid: Grid,
    record_types: Sequence[RecordType] | None = None,
) -> SheetClassification:
    """
    Decide which record types a sheet holds.

    Returns every candidate reading (for diagnostics) and the tables to
    extract, in record-type declaration order.
    """
    record_types = tuple(record_types or default_record_types())
    candidates = tuple(
        ClassifiedTable(record_type, resolve_orientation(grid, record_type.fields))
        for record_type in record_types
    )

    strong: ClassifiedTable | None = None
    for candidate in candidates:
        if passes_threshold(candidate) and (strong is None or candidate.hits > strong.hits):
            strong = candidate

    if strong is None:
        return SheetClassification(candidates=candidates, tables=())

    chosen = [strong]
    for candidate in sorted(candidates, key=lambda item: -item.hits):
        if candidate is strong or not passes_threshold(candidate):
            continue
        if all(is_independent(candidate.table, item.table) for item in chosen):
            chosen.append(candidate)
            continue
        rematched = rematch_unclaimed(candidate, chosen)
        if rematched is not None and all(is_independent(rematched.table, item.table) for item in chosen):
            chosen.append(rematched)

    if len(chosen) > 1:
        chosen = _bound_stacked_tables(chosen)
    order = {record_type.key: index for index, record_type in enumerate(record_types)}
    chosen.sort(key=lambda item: order[item.record_type.key])
    return SheetClassification(candidates=candidates, tables=tuple(chosen))
