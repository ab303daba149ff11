import io
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest import mock

import openpyxl
import requests

from bakery_import.loader import (
    REMOTE_TIMEOUT_SECONDS,
    Workbook,
    WorkbookLoadError,
    cell_value,
    fetch_remote_workbook,
    load_workbook,
    load_workbook_bytes,
    normalise_grid,
    normalize_public_url,
    open_source,
    remote_filename,
)


class GridNormalisationTests(unittest.TestCase):
    def test_cell_values(self):
        self.assertEqual(cell_value(None), "")
        self.assertEqual(cell_value(float("nan")), "")
        self.assertEqual(cell_value(datetime(2025, 3, 17)), "2025-03-17")
        self.assertEqual(cell_value(48), 48)
        self.assertEqual(cell_value("a\x00b"), "ab")

    def test_trailing_cells_and_rows_are_trimmed(self):
        grid = normalise_grid([["a", None, ""], [None, None], ["b", "c"], [None], []])
        self.assertEqual(grid, [["a"], [], ["b", "c"]])


class TextLoaderTests(unittest.TestCase):
    def test_semicolon_csv_with_bom(self):
        data = "\ufeffCode;Bezeichnung;Preis\nR-1;Mehl;0,90\nR-2;Butter;8,90\n".encode("utf-8")
        workbook = load_workbook_bytes(data, "rohwaren.csv")
        self.assertEqual(workbook.sheet_names, ["Sheet1"])
        self.assertEqual(workbook.detected_format, "csv")
        self.assertEqual(workbook.rows("Sheet1")[0], ["Code", "Bezeichnung", "Preis"])
        self.assertEqual(workbook.rows("Sheet1")[2], ["R-2", "Butter", "8,90"])

    def test_latin1_csv_from_disk(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "plan.csv"
            path.write_bytes("Datum,Artikel,Menge\n17.03.2025,Brötchen,240\n".encode("latin-1"))
            workbook = load_workbook(path)
            row = workbook.rows("Sheet1")[1]
            self.assertEqual(len(row), 3)
            self.assertEqual(row[0], "17.03.2025")
            self.assertTrue(row[1].startswith("Br"))

    def test_tsv(self):
        workbook = load_workbook_bytes(b"Filiale\tMenge\nF01\t20\n", "alloc.tsv")
        self.assertEqual(workbook.rows("Sheet1"), [["Filiale", "Menge"], ["F01", "20"]])


class OoxmlLoaderTests(unittest.TestCase):
    def test_sheet_order_values_and_hidden_sheet_warning(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "plan.xlsx"
            wb = openpyxl.Workbook()
            ws = wb.active
            ws.title = "Plan"
            ws.append(["Datum", "Artikel", "Menge"])
            ws.append([datetime(2025, 3, 17), "I-BROT", 48])
            hidden = wb.create_sheet("Archiv")
            hidden.append(["alt"])
            hidden.sheet_state = "hidden"
            wb.save(path)

            workbook = load_workbook(path)
            self.assertEqual(workbook.sheet_names, ["Plan", "Archiv"])
            self.assertEqual(workbook.rows("Plan")[1], ["2025-03-17", "I-BROT", 48])
            self.assertEqual(len(workbook.warnings), 1)
            self.assertIn("Archiv", workbook.warnings[0])

    def test_corrupt_workbook(self):
        with self.assertRaises(WorkbookLoadError) as ctx:
            load_workbook_bytes(b"PK\x03\x04 not really a zip", "broken.xlsx")
        self.assertIn("Could not read workbook", str(ctx.exception))


class LoaderErrorTests(unittest.TestCase):
    def test_unsupported_suffix(self):
        with self.assertRaises(WorkbookLoadError) as ctx:
            load_workbook_bytes(b"%PDF", "plan.pdf")
        self.assertIn("Unsupported format", str(ctx.exception))

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_workbook("/nonexistent/plan.xlsx")

    def test_size_limit_and_empty_payload(self):
        with self.assertRaises(WorkbookLoadError):
            load_workbook_bytes(b"a,b\n" * 10, "big.csv", max_bytes=8)
        with self.assertRaises(WorkbookLoadError):
            load_workbook_bytes(b"", "empty.csv")

    def test_open_source_reads_local_paths(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "a.csv"
            path.write_text("x,y\n1,2\n", encoding="utf-8")
            self.assertEqual(open_source(str(path)).rows("Sheet1"), [["x", "y"], ["1", "2"]])


class WorkbookTests(unittest.TestCase):
    def test_from_rows_keeps_sheet_order(self):
        workbook = Workbook.from_rows({"B": [["x"]], "A": [["y"]]})
        self.assertEqual(workbook.sheet_names, ["B", "A"])
        self.assertEqual(workbook.rows("A"), [["y"]])
        self.assertEqual(workbook.rows("missing"), [])

    def test_from_rows_tolerates_none_rows_and_sheets(self):
        workbook = Workbook.from_rows({"A": [["x"], None], "B": None})
        self.assertEqual(workbook.rows("A"), [["x"], []])
        self.assertEqual(workbook.rows("B"), [])


class PublicUrlTests(unittest.TestCase):
    def test_share_links_become_downloads(self):
        self.assertEqual(
            normalize_public_url("https://github.com/acme/plans/blob/main/data/kw12.xlsx"),
            "https://raw.githubusercontent.com/acme/plans/main/data/kw12.xlsx",
        )
        self.assertEqual(
            normalize_public_url("https://docs.google.com/spreadsheets/d/abc123/edit"),
            "https://docs.google.com/spreadsheets/d/abc123/export?format=xlsx",
        )
        self.assertEqual(
            normalize_public_url("https://drive.google.com/file/d/xyz/view"),
            "https://drive.google.com/uc?export=download&id=xyz",
        )
        self.assertIn("dl=1", normalize_public_url("https://www.dropbox.com/s/k/plan.xlsx?dl=0"))

    def test_google_sheet_keeps_linked_tab(self):
        self.assertEqual(
            normalize_public_url("https://docs.google.com/spreadsheets/d/abc123/edit#gid=918273"),
            "https://docs.google.com/spreadsheets/d/abc123/export?format=xlsx&gid=918273",
        )
        self.assertEqual(
            normalize_public_url("https://docs.google.com/spreadsheets/d/abc123/edit?gid=42#gid=42"),
            "https://docs.google.com/spreadsheets/d/abc123/export?format=xlsx&gid=42",
        )

    def test_download_flags(self):
        self.assertIn("download=1", normalize_public_url("https://app.box.com/s/abc"))
        self.assertIn("download=1", normalize_public_url("https://onedrive.live.com/view?resid=1"))
        self.assertNotIn("download=1", normalize_public_url("https://www.dropbox.com/s/k/plan.xlsx"))
        self.assertEqual(
            normalize_public_url("  https://example.test/files/plan.xlsx "),
            "https://example.test/files/plan.xlsx",
        )

    def test_non_http_url_is_rejected(self):
        with self.assertRaises(WorkbookLoadError):
            normalize_public_url("ftp://example.com/plan.xlsx")

    def test_remote_filename(self):
        self.assertEqual(remote_filename("https://x.test/files/plan.xlsx", None, None), "plan.xlsx")
        self.assertEqual(
            remote_filename("https://x.test/dl", "text/csv; charset=utf-8", None),
            "dl.csv",
        )
        self.assertEqual(
            remote_filename("https://x.test/dl", None, 'attachment; filename="Planung KW12.xlsx"'),
            "Planung KW12.xlsx",
        )
        with self.assertRaises(WorkbookLoadError):
            remote_filename("https://x.test/dl", "application/pdf", None)


XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def xlsx_bytes() -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Filialen"
    ws.append(["Filiale", "Menge"])
    ws.append(["F01", 20])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def fake_response(data: bytes, url: str, status: int = 200, headers=None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.url = url
    response.raw = io.BytesIO(data)
    response.headers.update(headers or {})
    return response


class RemoteFetchTests(unittest.TestCase):
    def test_share_link_is_downloaded_and_loaded(self):
        url = "https://github.com/acme/plans/blob/main/filialen.xlsx"
        raw_url = "https://raw.githubusercontent.com/acme/plans/main/filialen.xlsx"
        with mock.patch("requests.get", return_value=fake_response(xlsx_bytes(), raw_url)) as mock_get:
            workbook = fetch_remote_workbook(url)

        mock_get.assert_called_once_with(raw_url, timeout=REMOTE_TIMEOUT_SECONDS, allow_redirects=True, stream=True)
        self.assertEqual(workbook.source, url)
        self.assertEqual(workbook.detected_format, "xlsx")
        self.assertEqual(workbook.rows("Filialen"), [["Filiale", "Menge"], ["F01", 20]])

    def test_content_type_names_extensionless_download(self):
        response = fake_response(xlsx_bytes(), "https://example.test/download", headers={"Content-Type": XLSX_MIME})
        with mock.patch("requests.get", return_value=response):
            workbook = fetch_remote_workbook("https://example.test/download")
        self.assertEqual(workbook.sheet_names, ["Filialen"])

    def test_declared_length_over_limit(self):
        response = fake_response(b"x" * 64, "https://example.test/plan.csv", headers={"Content-Length": "4096"})
        with mock.patch("requests.get", return_value=response):
            with self.assertRaises(WorkbookLoadError) as ctx:
                fetch_remote_workbook("https://example.test/plan.csv", max_bytes=1024)
        self.assertIn("larger than", str(ctx.exception))

    def test_streamed_payload_over_limit(self):
        response = fake_response(b"a,b\n" * 512, "https://example.test/plan.csv")
        with mock.patch("requests.get", return_value=response):
            with self.assertRaises(WorkbookLoadError) as ctx:
                fetch_remote_workbook("https://example.test/plan.csv", max_bytes=1024)
        self.assertIn("larger than", str(ctx.exception))

    def test_http_error_status(self):
        response = fake_response(b"not found", "https://example.test/plan.xlsx", status=404)
        with mock.patch("requests.get", return_value=response):
            with self.assertRaises(WorkbookLoadError) as ctx:
                fetch_remote_workbook("https://example.test/plan.xlsx")
        self.assertIn("Could not download", str(ctx.exception))

    def test_connection_failure(self):
        with mock.patch("requests.get", side_effect=requests.ConnectionError("refused")):
            with self.assertRaises(WorkbookLoadError) as ctx:
                fetch_remote_workbook("https://example.test/plan.xlsx")
        self.assertIn("refused", str(ctx.exception))

    def test_open_source_routes_links_to_download(self):
        sentinel = Workbook.from_rows({"Sheet1": []})
        with mock.patch("bakery_import.loader.fetch_remote_workbook", return_value=sentinel) as fetch:
            self.assertIs(open_source("HTTPS://example.test/plan.xlsx"), sentinel)
        fetch.assert_called_once_with("HTTPS://example.test/plan.xlsx")


if __name__ == "__main__":
    unittest.main()
