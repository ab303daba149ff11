from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from bakery_import import __version__ as TOOL_VERSION
from bakery_import.contracts import build_contract, build_run_summary
from bakery_import.exporter import write_records_csv, write_records_workbook
from bakery_import.importer import ImportResult, import_file
from bakery_import.loader import Workbook, WorkbookLoadError, is_remote_source
from bakery_import.schemas import (
    DEFAULT_SCHEMA_PATH,
    RECORD_TYPE_KEYS,
    RecordType,
    SchemaConfigError,
    export_record_types,
    load_record_types,
)
from bakery_import.validation import ValidationReport, validate_result

TOOL_NAME = "bakery-import"

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_NOTHING_FOUND = 3
EXIT_VALIDATE_FAILED = 5


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class BakeryImportArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True, default=str)


def timestamp_token() -> str:
    override = os.environ.get("BAKERY_IMPORT_OUTPUT_STAMP")
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def source_stem(source: str) -> str:
    if is_remote_source(source):
        return "remote"
    return Path(source).stem or "input"


def default_output_dir(source: str) -> Path:
    return Path.cwd() / "bakery-import-output" / f"{source_stem(source)}-{timestamp_token()}"


def determine_output_dir(args: argparse.Namespace, source: str) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir(source)


def write_text(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, SchemaConfigError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (WorkbookLoadError, ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def resolve_record_types(args: argparse.Namespace) -> tuple[RecordType, ...]:
    return load_record_types(getattr(args, "schemas", None))


def check_input(source: str) -> None:
    if not is_remote_source(source) and not Path(source).exists():
        raise CliError(f"File not found: {source}", EXIT_COMMAND_ERROR)


def render_parse_text(source: str, result: ImportResult, *, verbose: bool = False) -> str:
    counts = result.counts()
    lines = [
        "bakery-import parse",
        f"Input: {source}",
        "Records: " + ", ".join(f"{key}={counts[key]}" for key in RECORD_TYPE_KEYS),
    ]
    if verbose:
        for report in result.sheets:
            if not report.tables:
                lines.append(f"  [{report.name}] {report.status} (scores: {report.scores or '-'})")
            for table in report.tables:
                lines.append(
                    f"  [{report.name}] {table['record_type']}: {table['rows']} rows, "
                    f"{table['hits']} headers matched ({table['orientation']}, header #{table['header_index'] + 1})"
                )
    for message in result.errors:
        lines.append(f"Warning: {message}")
    return "\n".join(lines) + "\n"


def render_validate_text(payload: dict[str, Any]) -> str:
    lines = [
        "bakery-import validate",
        f"Input: {payload['input']}",
        f"Valid: {'yes' if payload['valid'] else 'no'}",
        "Accepted: " + ", ".join(f"{key}={payload['counts'].get(key, 0)}" for key in RECORD_TYPE_KEYS),
        "Rejected: " + ", ".join(f"{key}={payload['rejected'].get(key, 0)}" for key in RECORD_TYPE_KEYS),
    ]
    for message in payload["errors"][:20]:
        lines.append(f"- {message}")
    if len(payload["errors"]) > 20:
        lines.append(f"... {len(payload['errors']) - 20} more")
    return "\n".join(lines) + "\n"


def build_parse_payload(source: str, workbook: Workbook, result: ImportResult) -> dict[str, Any]:
    contract = build_contract("bakery_import.parse")
    payload = {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "input": source,
        "detected_format": workbook.detected_format,
        "sheet_names": list(workbook.sheet_names),
        "counts": result.counts(),
        **result.to_dict(),
    }
    payload["run_summary"] = build_run_summary(
        tool=TOOL_NAME,
        command="parse",
        input_source=source,
        status="ok" if not result.is_empty else "empty",
        metrics={"records": sum(result.counts().values()), "sheets": len(result.sheets)},
        warnings=list(workbook.warnings) + list(result.errors),
    )
    return payload


def build_validate_payload(source: str, result: ImportResult, report: ValidationReport) -> dict[str, Any]:
    contract = build_contract("bakery_import.validate")
    payload = {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "input": source,
        "extracted": result.counts(),
        "parse_errors": list(result.errors),
        **report.to_dict(),
    }
    payload["run_summary"] = build_run_summary(
        tool=TOOL_NAME,
        command="validate",
        input_source=source,
        status="ok" if report.valid else "invalid",
        metrics={"accepted": sum(len(rows) for rows in report.rows.values()), "rejected": sum(report.rejected.values())},
        warnings=list(result.errors),
    )
    return payload


def build_parser() -> argparse.ArgumentParser:
    parser = BakeryImportArgumentParser(prog=TOOL_NAME, description="Extract bakery records from messy workbooks")
    subparsers = parser.add_subparsers(dest="command", required=True, parser_class=BakeryImportArgumentParser)

    parse = subparsers.add_parser("parse", help="Extract products, items, BOM, production and allocations")
    parse.add_argument("input", help="Input file path or public http(s) link")
    parse.add_argument("--schemas", help="Custom record type table (.json)")
    parse.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    parse.add_argument("--output", help="Explicit output path (file for json/xlsx, directory for csv)")
    parse.add_argument("--format", choices=["json", "xlsx", "csv"], default="json", help="Output format")
    parse.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parse.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parse.add_argument("-v", "--verbose", action="store_true", help="Per-sheet details")

    validate = subparsers.add_parser("validate", help="Dry-run the import and report rows that would be rejected")
    validate.add_argument("input", help="Input file path or public http(s) link")
    validate.add_argument("--schemas", help="Custom record type table (.json)")
    validate.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    validate.add_argument("--output", help="Explicit validation output path")
    validate.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    validate.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    validate.add_argument("-v", "--verbose", action="store_true", help="Per-sheet details")

    schemas = subparsers.add_parser("schemas", help="Inspect or export the header synonym tables")
    schemas_sub = schemas.add_subparsers(dest="schemas_command", required=True, parser_class=BakeryImportArgumentParser)
    show = schemas_sub.add_parser("show", help="Print the active synonym tables")
    show.add_argument("--schemas", help="Custom record type table (.json)")
    show.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    export = schemas_sub.add_parser("export", help="Write the default tables to a JSON file for editing")
    export.add_argument("--path", default="bakery-import-schemas.json", help="Output path")

    subparsers.add_parser("version", help="Print the tool version")
    return parser


def run_parse(args: argparse.Namespace) -> int:
    source = args.input
    try:
        check_input(source)
        record_types = resolve_record_types(args)
        workbook, result = import_file(source, record_types)
        payload = build_parse_payload(source, workbook, result)

        if not args.json or args.out_dir or args.output:
            out_dir = determine_output_dir(args, source)
            if args.format == "xlsx":
                output_path = Path(args.output) if args.output else out_dir / "records.xlsx"
                write_records_workbook(result, output_path, record_types)
            elif args.format == "csv":
                output_path = Path(args.output) if args.output else out_dir
                write_records_csv(result, output_path, record_types)
            else:
                output_path = Path(args.output) if args.output else out_dir / "import.json"
                payload["run_summary"]["output_file"] = str(output_path)
                write_json(output_path, payload)
            emit_human(f"Output written: {output_path}", quiet=args.quiet)

        for warning in workbook.warnings:
            emit_human(f"Note: {warning}", quiet=args.quiet or not args.verbose)
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_parse_text(source, result, verbose=args.verbose).rstrip(), quiet=args.quiet)
        return EXIT_NOTHING_FOUND if result.is_empty else EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_validate(args: argparse.Namespace) -> int:
    source = args.input
    try:
        check_input(source)
        record_types = resolve_record_types(args)
        _, result = import_file(source, record_types)
        report = validate_result(result, record_types)
        payload = build_validate_payload(source, result, report)

        if args.output or args.out_dir:
            out_dir = determine_output_dir(args, source)
            output_path = Path(args.output) if args.output else out_dir / "validation.json"
            payload["run_summary"]["output_file"] = str(output_path)
            write_json(output_path, payload)
            emit_human(f"Validation report: {output_path}", quiet=args.quiet)
        if args.verbose and not args.quiet:
            eprint(render_parse_text(source, result, verbose=True).rstrip())
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_validate_text(payload).rstrip(), quiet=args.quiet)
        if result.is_empty:
            return EXIT_NOTHING_FOUND
        return EXIT_SUCCESS if report.valid else EXIT_VALIDATE_FAILED
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_schemas_show(args: argparse.Namespace) -> int:
    try:
        record_types = resolve_record_types(args)
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)

    if args.json:
        maybe_emit_json_stdout(export_record_types(record_types), True)
        return EXIT_SUCCESS
    lines = [f"Source: {args.schemas or DEFAULT_SCHEMA_PATH}"]
    for record_type in record_types:
        lines.append(
            f"{record_type.label} (threshold {record_type.threshold}, key: {', '.join(record_type.key_fields)})"
        )
        for name, synonyms in record_type.fields.items():
            lines.append(f"  {name}: {', '.join(synonyms)}")
    print("\n".join(lines))
    return EXIT_SUCCESS


def run_schemas_export(args: argparse.Namespace) -> int:
    path = Path(args.path)
    if path.exists():
        eprint(f"Refusing to overwrite existing file: {path}")
        return EXIT_COMMAND_ERROR
    write_json(path, export_record_types())
    emit_human(f"Schemas written: {path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "parse":
            return run_parse(args)
        if args.command == "validate":
            return run_validate(args)
        if args.command == "schemas":
            if args.schemas_command == "show":
                return run_schemas_show(args)
            if args.schemas_command == "export":
                return run_schemas_export(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
