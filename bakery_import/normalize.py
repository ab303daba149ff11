"""Text helpers shared by the header matcher, the deduplicator and validation."""

from __future__ import annotations

import math
import re
import unicodedata
from datetime import date, datetime, time, timedelta
from typing import Any

_DROP_RE = re.compile(r"[^\w\s%/.\-]", re.ASCII)
_SPACE_RE = re.compile(r"\s+")
_SLASH_RE = re.compile(r"\s*/\s*")

EXCEL_EPOCH = datetime(1899, 12, 30)
EXCEL_SERIAL_RANGE = (20_000, 80_000)

_NUMBER_NULL = {"", "-", "n/a", "na", "none", "null", "tbd", "k.a.", "ka"}
_DATE_PATTERNS = [
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[ T].*)?$"), "ymd"),
    (re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), "ymd"),
    (re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$"), "dmy"),
    (re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{2})$"), "dmy2"),
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), "dmy"),
]


def normalize_label(value: Any) -> str:
    """
    Canonical form used for every header/synonym comparison and natural key.

    lower-case, NFKD (accents decompose and their marks are dropped), keep only
    ASCII word characters, whitespace and ``% / . -``, collapse whitespace,
    tighten spaces around ``/`` and trim.
    """
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    text = cell_text(value).lower()
    text = unicodedata.normalize("NFKD", text)
    text = _DROP_RE.sub("", text)
    text = _SPACE_RE.sub(" ", text)
    text = _SLASH_RE.sub("/", text)
    return text.strip()


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def is_blank_row(row: list[Any] | None) -> bool:
    return not row or all(is_blank(value) for value in row)


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.strftime("%Y-%m-%d")
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    return str(value).replace("\x00", "")


def parse_number(value: Any) -> float | None:
    """Read a spreadsheet number; tolerates comma decimals, currency symbols and ``1.200,50``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return float(value)
    if value is None:
        return None

    v = str(value).strip()
    if v.lower() in _NUMBER_NULL:
        return None
    v = re.sub(r"[€£$]", "", v)
    v = re.sub(r"\s*(EUR|USD|CHF)\s*$", "", v, flags=re.IGNORECASE).strip()
    v = v.replace(" ", "")

    if "," in v and "." in v:
        if v.index(".") < v.index(","):
            v = v.replace(".", "").replace(",", ".")
        else:
            v = v.replace(",", "")
    elif "," in v:
        v = v.replace(",", ".", 1)

    try:
        number = float(v)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_date_text(value: Any) -> str | None:
    """
    Return ``YYYY-MM-DD`` for ISO text, German ``dd.mm.yyyy``, ``dd/mm/yyyy``
    and Excel serial numbers. Unrecognised text is returned trimmed so the
    caller still sees what was in the cell.
    """
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if is_blank(value):
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        low, high = EXCEL_SERIAL_RANGE
        if low <= value <= high:
            return (EXCEL_EPOCH + timedelta(days=int(value))).strftime("%Y-%m-%d")
        return cell_text(value)

    text = str(value).strip()
    for pattern, order in _DATE_PATTERNS:
        match = pattern.match(text)
        if not match:
            continue
        a, b, c = (int(part) for part in match.groups())
        if order == "ymd":
            year, month, day = a, b, c
        elif order == "dmy2":
            year, month, day = 2000 + c if c < 50 else 1900 + c, b, a
        else:
            year, month, day = c, b, a
        try:
            return date(year, month, day).strftime("%Y-%m-%d")
        except ValueError:
            return text
    return text
