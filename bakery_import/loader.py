"""
loader.py: workbook loader for the bakery importer

Supports: .xlsx .xlsm .xls .ods .csv .tsv .txt, raw upload bytes and public
download links (GitHub, Dropbox, Box, Google Drive / Sheets).

Public API:
    workbook = load_workbook("path/to/file.xlsx")
    workbook.sheet_names      : ordered sheet names
    workbook.rows(name)       : raw 2-D grid for one sheet

Every sheet is read with raw-row semantics: no header inference, empty cells
become "", dates become ISO text, trailing empty cells and trailing blank rows
are dropped. Nothing here guesses which row is the header.
"""

from __future__ import annotations

import csv
import io
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from bakery_import.normalize import cell_text

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS  = {".csv", ".tsv", ".txt"}
OOXML_FORMATS = {".xlsx", ".xlsm"}
LEGACY_FORMATS = {".xls"}
ODS_FORMATS   = {".ods"}
ALL_FORMATS   = TEXT_FORMATS | OOXML_FORMATS | LEGACY_FORMATS | ODS_FORMATS

TEXT_SHEET_NAME = "Sheet1"
MAX_UPLOAD_MB = 20
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024
REMOTE_TIMEOUT_SECONDS = 60

CONTENT_TYPE_SUFFIXES = {
    "text/csv": ".csv",
    "text/tab-separated-values": ".tsv",
    "text/plain": ".csv",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "application/vnd.ms-excel.sheet.macroenabled.12": ".xlsm",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.oasis.opendocument.spreadsheet": ".ods",
}


class WorkbookLoadError(ValueError):
    """The payload could not be decoded as a spreadsheet at all."""


@dataclass
class Workbook:
    sheet_names: list[str]
    sheets: dict[str, list[list[Any]]]
    source: Optional[str] = None
    detected_format: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    def rows(self, name: str) -> list[list[Any]]:
        return [list(row) for row in self.sheets.get(name, [])]

    @classmethod
    def from_rows(
        cls,
        sheets: "Mapping[str, Sequence[Sequence[Any]]] | Iterable[tuple[str, Sequence[Sequence[Any]]]]",
        source: Optional[str] = None,
    ) -> "Workbook":
        pairs = list(sheets.items()) if isinstance(sheets, Mapping) else list(sheets)
        return cls(
            sheet_names=[name for name, _ in pairs],
            sheets={name: [list(row or []) for row in grid or []] for name, grid in pairs},
            source=source,
            detected_format="memory",
        )


# ══════════════════════════════════════════════════════════════════════════════
# CELL / GRID NORMALISATION
# ══════════════════════════════════════════════════════════════════════════════

def cell_value(value: Any) -> Any:
    """Keep numbers and booleans, turn dates into text and empties into ""."""
    if value is None:
        return ""
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        value = value.item()  # numpy scalar
    if isinstance(value, float) and math.isnan(value):
        return ""
    if isinstance(value, (datetime, date, time)):
        if value != value:  # NaT
            return ""
        return cell_text(value)
    if isinstance(value, (bool, int, float)):
        return value
    return str(value).replace("\x00", "")


def _trim_trailing_empty_cells(row: list[Any]) -> list[Any]:
    trimmed = list(row)
    while trimmed and not str(trimmed[-1]).strip():
        trimmed.pop()
    return trimmed


def normalise_grid(rows: Iterable[Iterable[Any]]) -> list[list[Any]]:
    grid = [_trim_trailing_empty_cells([cell_value(value) for value in row]) for row in rows]
    while grid and not grid[-1]:
        grid.pop()
    return grid


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING / DELIMITER DETECTION (text formats)
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    import chardet

    result = chardet.detect(raw[:200_000])
    return result.get("encoding") or "utf-8"


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line: UTF-8, then the detected encoding, then
    latin-1, finally CP1252 with replacement. Null bytes and a leading BOM
    are stripped.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc:
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


def _detect_delimiter(text: str) -> str:
    """
    Infer the delimiter from sample lines.

    csv.Sniffer first; otherwise score each candidate by column-count
    consistency and width. German exports favour ';'.
    """
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=";,\t|").delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in (";", ",", "\t", "|"):
        rows = [
            row
            for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if not rows:
            continue
        widths = Counter(len(row) for row in rows)
        mode_width, mode_count = widths.most_common(1)[0]
        score = mode_width * 2.0 + (mode_count / len(rows)) * mode_width
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score, best_delim = score, delim
    return best_delim


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _load_text(raw: bytes, suffix: str) -> tuple[list[str], dict[str, list[list[Any]]], list[str]]:
    text = _read_text_safely(raw, _detect_encoding(raw))
    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)
    try:
        rows = list(csv.reader(io.StringIO(text), delimiter=delimiter))
    except csv.Error as exc:
        raise WorkbookLoadError(f"Could not parse {suffix} file: {exc}") from exc
    return [TEXT_SHEET_NAME], {TEXT_SHEET_NAME: normalise_grid(rows)}, []


def _load_ooxml(source: Any) -> tuple[list[str], dict[str, list[list[Any]]], list[str]]:
    from openpyxl import load_workbook as open_workbook

    try:
        workbook = open_workbook(source, data_only=True)
    except Exception as exc:
        raise WorkbookLoadError(f"Could not read workbook: {exc}") from exc

    warnings: list[str] = []
    sheets: dict[str, list[list[Any]]] = {}
    names = list(workbook.sheetnames)
    for name in names:
        sheet = workbook[name]
        if sheet.sheet_state != "visible":
            warnings.append(f"Sheet '{name}' is {sheet.sheet_state}; read anyway")
        sheets[name] = normalise_grid(sheet.iter_rows(values_only=True))
    return names, sheets, warnings


def _load_with_pandas(source: Any, suffix: str) -> tuple[list[str], dict[str, list[list[Any]]], list[str]]:
    import pandas as pd

    engine = None
    if suffix == ".xls":
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(".xls files require xlrd; run: pip install xlrd")
        engine = "xlrd"
    elif suffix == ".ods":
        try:
            import odf  # noqa: F401
        except ImportError:
            raise ImportError(".ods files require odfpy; run: pip install odfpy")
        engine = "odf"

    try:
        frames = pd.read_excel(source, sheet_name=None, header=None, dtype=object, engine=engine)
    except Exception as exc:
        raise WorkbookLoadError(f"Could not read workbook: {exc}") from exc

    names = list(frames)
    sheets = {
        name: normalise_grid(frame.itertuples(index=False, name=None))
        for name, frame in frames.items()
    }
    return names, sheets, []


def _load_payload(source: Any, raw: bytes | None, suffix: str) -> tuple[list[str], dict[str, list[list[Any]]], list[str]]:
    if suffix in TEXT_FORMATS:
        if raw is None:
            raw = Path(source).read_bytes()
        return _load_text(raw, suffix)
    if suffix in OOXML_FORMATS:
        return _load_ooxml(source)
    return _load_with_pandas(source, suffix)


def _check_suffix(suffix: str) -> None:
    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise WorkbookLoadError(
            f"Unsupported format '{suffix or '[missing extension]'}'. Supported: {supported}"
        )


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_workbook(path: "str | Path") -> Workbook:
    """
    Load a spreadsheet file into a Workbook of raw grids.

    Raises:
        FileNotFoundError  if the file does not exist.
        WorkbookLoadError  if the format is unsupported or the file is unreadable.
        ImportError        if an optional engine (xlrd, odfpy) is missing.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    _check_suffix(suffix)

    names, sheets, warnings = _load_payload(path, None, suffix)
    return Workbook(
        sheet_names=names,
        sheets=sheets,
        source=str(path),
        detected_format=suffix.lstrip("."),
        warnings=warnings,
    )


def load_workbook_bytes(data: bytes, filename: str, max_bytes: int = MAX_UPLOAD_BYTES) -> Workbook:
    """Load an uploaded payload; ``filename`` only decides the format."""
    suffix = Path(filename).suffix.lower()
    _check_suffix(suffix)
    if len(data) > max_bytes:
        raise WorkbookLoadError(
            f"File is {len(data) / (1024 * 1024):.1f} MB; the limit is {max_bytes // (1024 * 1024)} MB"
        )
    if not data:
        raise WorkbookLoadError("File is empty")

    names, sheets, warnings = _load_payload(io.BytesIO(data), data, suffix)
    return Workbook(
        sheet_names=names,
        sheets=sheets,
        source=filename,
        detected_format=suffix.lstrip("."),
        warnings=warnings,
    )


# Hosts whose share pages turn into downloads with one extra query flag.
# Checked in order: "box.com" is a suffix of "dropbox.com".
DOWNLOAD_FLAGS = (
    ("dropbox.com", "dl"),
    ("box.com", "download"),
    ("1drv.ms", "download"),
    ("onedrive.live.com", "download"),
)
GOOGLE_HOSTS = {"drive.google.com", "docs.google.com"}

_GOOGLE_SHEET_RE = re.compile(r"/spreadsheets/d/([^/]+)")
_GOOGLE_FILE_RE = re.compile(r"/file/d/([^/]+)")
_GID_RE = re.compile(r"(?:^|[&#])gid=(\d+)")


def _github_raw_url(path: str) -> str | None:
    if "/blob/" not in path:
        return None
    owner_repo, blob_path = path.lstrip("/").split("/blob/", 1)
    owner, repo = owner_repo.split("/", 1)
    branch, file_path = blob_path.split("/", 1)
    return f"https://raw.githubusercontent.com/{owner}/{repo}/{branch}/{file_path}"


def _google_download_url(parsed, query: dict[str, list[str]]) -> str | None:
    sheet = _GOOGLE_SHEET_RE.search(parsed.path)
    if sheet:
        url = f"https://docs.google.com/spreadsheets/d/{sheet.group(1)}/export?format=xlsx"
        # Share links carry the tab either as ?gid= or as #gid=.
        gid = query.get("gid", [""])[0]
        if not gid:
            fragment = _GID_RE.search(parsed.fragment)
            gid = fragment.group(1) if fragment else ""
        return f"{url}&gid={gid}" if gid else url

    file_id = _GOOGLE_FILE_RE.search(parsed.path)
    if file_id:
        return f"https://drive.google.com/uc?export=download&id={file_id.group(1)}"
    if query.get("id"):
        return f"https://drive.google.com/uc?export=download&id={query['id'][0]}"
    return None


def normalize_public_url(raw_url: str) -> str:
    """
    Rewrite share links from common file hosts into direct download URLs.

    GitHub blob pages become raw.githubusercontent.com links; Google Sheets
    export as xlsx (keeping the ``gid`` of the linked tab); Drive files,
    Dropbox, Box and OneDrive get their download switches. Anything else is
    returned unchanged apart from surrounding whitespace.
    """
    parsed = urlparse(raw_url.strip())
    if parsed.scheme not in {"http", "https"}:
        raise WorkbookLoadError("URL must start with http:// or https://")

    host = parsed.netloc.lower()
    query = parse_qs(parsed.query, keep_blank_values=True)

    direct: str | None = None
    if host == "github.com":
        direct = _github_raw_url(parsed.path)
    elif host in GOOGLE_HOSTS:
        direct = _google_download_url(parsed, query)
    else:
        for suffix, flag in DOWNLOAD_FLAGS:
            if host.endswith(suffix):
                query[flag] = ["1"]
                direct = urlunparse(parsed._replace(query=urlencode(query, doseq=True)))
                break
    return direct or urlunparse(parsed)


def remote_filename(url: str, content_type: str | None, content_disposition: str | None) -> str:
    if content_disposition:
        match = re.search(r"filename\*?=(?:UTF-8'')?\"?([^\";]+)\"?", content_disposition, re.IGNORECASE)
        if match and Path(match.group(1)).suffix.lower() in ALL_FORMATS:
            return Path(match.group(1)).name

    parsed = urlparse(url)
    name = Path(parsed.path).name or "download"
    if Path(name).suffix.lower() in ALL_FORMATS:
        return name
    if "format=xlsx" in parsed.query:
        return f"{name}.xlsx"

    mime = (content_type or "").split(";", 1)[0].strip().lower()
    suffix = CONTENT_TYPE_SUFFIXES.get(mime)
    if suffix is None:
        raise WorkbookLoadError(f"Could not tell the spreadsheet format of {url} (content type {mime or 'unknown'})")
    return f"{name}{suffix}"


def fetch_remote_workbook(url: str, timeout: int = REMOTE_TIMEOUT_SECONDS, max_bytes: int = MAX_UPLOAD_BYTES) -> Workbook:
    """Download a public spreadsheet link and load it like an upload."""
    import requests

    direct_url = normalize_public_url(url)
    try:
        response = requests.get(direct_url, timeout=timeout, allow_redirects=True, stream=True)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise WorkbookLoadError(f"Could not download {url}: {exc}") from exc

    with response:
        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > max_bytes:
            raise WorkbookLoadError(f"Remote file is larger than {max_bytes // (1024 * 1024)} MB")
        chunks: list[bytes] = []
        size = 0
        for chunk in response.iter_content(chunk_size=64 * 1024):
            size += len(chunk)
            if size > max_bytes:
                raise WorkbookLoadError(f"Remote file is larger than {max_bytes // (1024 * 1024)} MB")
            chunks.append(chunk)
        filename = remote_filename(
            response.url or direct_url,
            response.headers.get("Content-Type"),
            response.headers.get("Content-Disposition"),
        )

    workbook = load_workbook_bytes(b"".join(chunks), filename, max_bytes=max_bytes)
    workbook.source = url
    return workbook


def is_remote_source(value: str) -> bool:
    return value.lower().startswith(("http://", "https://"))


def open_source(source: "str | Path") -> Workbook:
    """Load a local path or a public http(s) link."""
    if isinstance(source, str) and is_remote_source(source):
        return fetch_remote_workbook(source)
    return load_workbook(source)
