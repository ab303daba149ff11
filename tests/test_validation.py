import unittest

from bakery_import.importer import ImportResult
from bakery_import.schemas import record_types_by_key
from bakery_import.validation import (
    ValidationReport,
    coerce_value,
    prepare_record,
    validate_records,
    validate_result,
)


RECORD_TYPES = record_types_by_key()


class CoerceValueTests(unittest.TestCase):
    def test_numeric_date_and_text_fields(self):
        self.assertEqual(coerce_value("qty", "1,5"), 1.5)
        self.assertEqual(coerce_value("date", "17.03.2025"), "2025-03-17")
        self.assertEqual(coerce_value("code", "  R-1 "), "R-1")
        self.assertEqual(coerce_value("code", 100.0), "100")
        self.assertIsNone(coerce_value("name", "   "))


class PrepareRecordTests(unittest.TestCase):
    def test_product_defaults(self):
        prepared, missing = prepare_record(
            RECORD_TYPES["products"],
            {"code": "R-1", "name": "Mehl", "unit": "Sack", "base_unit": "g"},
        )
        self.assertEqual(missing, [])
        self.assertEqual(prepared["unit_cost"], 0.0)
        self.assertEqual(prepared["waste_pct"], 0.0)
        self.assertIsNone(prepared["supplier"])

    def test_production_status_defaults_to_planned(self):
        prepared, missing = prepare_record(
            RECORD_TYPES["production"],
            {"date": "2025-03-17", "item_code": "I-1", "total_qty": "48"},
        )
        self.assertEqual(missing, [])
        self.assertEqual(prepared["status"], "planned")
        self.assertEqual(prepared["total_qty"], 48.0)

    def test_zero_quantity_counts_as_missing(self):
        _, missing = prepare_record(
            RECORD_TYPES["bom"],
            {"item_code": "I-1", "product_code": "R-1", "qty": 0, "unit": "g"},
        )
        self.assertEqual(missing, ["qty"])


class ValidateTests(unittest.TestCase):
    def test_rejected_rows_are_described(self):
        report = ValidationReport()
        validate_records(
            RECORD_TYPES["items"],
            [
                {"code": "I-1", "name": "Brot", "yield_qty": 12, "yield_unit": "Stk"},
                {"code": "I-2", "name": "Semmel", "yield_qty": "", "yield_unit": "Stk"},
            ],
            report,
        )
        self.assertEqual(len(report.rows["items"]), 1)
        self.assertEqual(report.rejected["items"], 1)
        self.assertFalse(report.valid)
        self.assertTrue(report.errors[0].startswith("Items: invalid row (yield_qty required): "))
        self.assertIn('"code": "I-2"', report.errors[0])

    def test_validate_result_covers_every_record_type(self):
        result = ImportResult(
            allocations=[{"date": "17.03.2025", "item_code": "I-1", "shop_code": "F01", "qty": "20"}]
        )
        report = validate_result(result)
        self.assertTrue(report.valid)
        self.assertEqual(set(report.rows), {"products", "items", "bom", "production", "allocations"})
        self.assertEqual(
            report.rows["allocations"],
            [{"date": "2025-03-17", "item_code": "I-1", "shop_code": "F01", "qty": 20.0}],
        )
        payload = report.to_dict()
        self.assertEqual(payload["counts"]["allocations"], 1)
        self.assertEqual(payload["error_count"], 0)


if __name__ == "__main__":
    unittest.main()
