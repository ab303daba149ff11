"""Heuristic importer for messy bakery planning workbooks."""

__version__ = "0.1.0"

from bakery_import.importer import ImportResult, SheetReport, import_file, parse_workbook
from bakery_import.loader import Workbook, WorkbookLoadError, load_workbook, load_workbook_bytes
from bakery_import.schemas import RecordType, SchemaConfigError, load_record_types

__all__ = [
    "ImportResult",
    "RecordType",
    "SchemaConfigError",
    "SheetReport",
    "Workbook",
    "WorkbookLoadError",
    "__version__",
    "import_file",
    "load_record_types",
    "load_workbook",
    "load_workbook_bytes",
    "parse_workbook",
]
