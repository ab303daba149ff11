"""
Header matching for messy workbooks.

A sheet's header row is unknown: it may sit under a title band, use German
or English labels, or run down a column instead of across a row. For one
record type the matcher scores every candidate header cell against that
type's synonyms, picks the best header row among the first rows of the grid,
and repeats the search on the transposed grid to detect column-oriented
tables.

Scoring per (header cell, synonym), both normalized with ``normalize_label``:
    3    exact match
    2    header contains the synonym
    1.5  synonym contains the header and the header has at least 3 characters
Columns are claimed greedily, one field at a time in declaration order.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterator, Mapping, Sequence

from bakery_import.normalize import is_blank_row, normalize_label

HEADER_SCAN_ROWS = 25
MIN_ORIENTATION_HITS = 2

SCORE_EXACT = 3.0
SCORE_HEADER_CONTAINS = 2.0
SCORE_SYNONYM_CONTAINS = 1.5
MIN_CONTAINED_HEADER_LENGTH = 3

ORIENTATION_ROWS = "rows"
ORIENTATION_COLS = "cols"

Grid = Sequence[Sequence[Any]]
FieldSynonyms = Mapping[str, Sequence[str]]


@dataclass(frozen=True)
class HeaderMatch:
    row_index: int = -1
    mapping: dict[str, int] = field(default_factory=dict)

    @property
    def hits(self) -> int:
        return len(self.mapping)


@dataclass(frozen=True)
class TableMatch:
    """One record type's reading of a sheet in its winning orientation."""

    orientation: str = ORIENTATION_ROWS
    header_index: int = -1
    mapping: dict[str, int] = field(default_factory=dict)
    grid: tuple[tuple[Any, ...], ...] = ()
    stop: int | None = None

    @property
    def hits(self) -> int:
        return len(self.mapping)

    @property
    def headers(self) -> dict[str, int]:
        return self.mapping

    @property
    def matched(self) -> bool:
        return bool(self.mapping)

    def iter_data_rows(self) -> Iterator[tuple[int, tuple[Any, ...]]]:
        if not self.mapping:
            return
        end = len(self.grid) if self.stop is None else min(self.stop, len(self.grid))
        for index in range(self.header_index + 1, end):
            row = self.grid[index]
            if is_blank_row(row):
                continue
            yield index, row

    @property
    def rows(self) -> list[tuple[Any, ...]]:
        return [row for _, row in self.iter_data_rows()]

    def bounded(self, stop: int | None) -> "TableMatch":
        return replace(self, stop=stop)


def score_header(header: Any, synonym: Any) -> float:
    """Tiered similarity between one header cell and one synonym (0 = no match)."""
    nc = normalize_label(header)
    if not nc:
        return 0.0
    return _score_normalized(nc, normalize_label(synonym))


def _score_normalized(nc: str, nk: str) -> float:
    if not nk:
        return 0.0
    if nc == nk:
        return SCORE_EXACT
    if nk in nc:
        return SCORE_HEADER_CONTAINS
    if nc in nk and len(nc) >= MIN_CONTAINED_HEADER_LENGTH:
        return SCORE_SYNONYM_CONTAINS
    return 0.0


def match_headers(header_cells: Sequence[Any], fields: FieldSynonyms) -> dict[str, int]:
    """
    Map canonical fields to column indexes for one candidate header row.

    Fields are processed in declaration order; each takes the unclaimed column
    with the highest score (first column wins ties). A field whose best score
    is 0 stays out of the mapping.
    """
    normalized = [normalize_label(cell) for cell in header_cells or ()]
    mapping: dict[str, int] = {}
    used_cols: set[int] = set()

    for name, synonyms in fields.items():
        keys = [normalize_label(synonym) for synonym in synonyms]
        best_col = -1
        best_score = 0.0
        for col, nc in enumerate(normalized):
            if col in used_cols or not nc:
                continue
            for nk in keys:
                score = _score_normalized(nc, nk)
                if score > best_score:
                    best_col, best_score = col, score
        if best_col >= 0:
            mapping[name] = best_col
            used_cols.add(best_col)
    return mapping


def best_header_row(grid: Grid, fields: FieldSynonyms, max_rows: int = HEADER_SCAN_ROWS) -> HeaderMatch:
    best = HeaderMatch()
    for row_index in range(min(len(grid), max_rows)):
        mapping = match_headers(grid[row_index] or (), fields)
        if len(mapping) > best.hits:
            best = HeaderMatch(row_index=row_index, mapping=mapping)
    return best


def transpose(grid: Grid) -> list[list[Any]]:
    """Swap rows and columns; ragged rows are padded with empty strings and None rows read as empty."""
    if not grid:
        return []
    width = max((len(row or ()) for row in grid), default=0)
    out: list[list[Any]] = [[""] * len(grid) for _ in range(width)]
    for r, row in enumerate(grid):
        for c, value in enumerate(row or ()):
            out[c][r] = value
    return out


def _freeze(grid: Grid) -> tuple[tuple[Any, ...], ...]:
    return tuple(tuple(row or ()) for row in grid)


def resolve_orientation(grid: Grid, fields: FieldSynonyms) -> TableMatch:
    """
    Pick the orientation whose best header row matches more fields.

    ``rows`` (header runs across a row) is tried first and wins ties; the
    transposed reading (``cols``) must be strictly better. Fewer than
    ``MIN_ORIENTATION_HITS`` matched fields means this record type is not on
    the sheet, and the returned table has no mapping and no rows.
    """
    best = best_header_row(grid, fields)
    orientation = ORIENTATION_ROWS
    oriented: Grid = grid

    transposed = transpose(grid)
    best_t = best_header_row(transposed, fields)
    if best_t.hits > best.hits:
        best, orientation, oriented = best_t, ORIENTATION_COLS, transposed

    if best.hits < MIN_ORIENTATION_HITS:
        return TableMatch(orientation=orientation)

    return TableMatch(
        orientation=orientation,
        header_index=best.row_index,
        mapping=dict(best.mapping),
        grid=_freeze(oriented),
    )
