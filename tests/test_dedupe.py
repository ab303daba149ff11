import unittest

from bakery_import.dedupe import drop_blank_records, finalize, natural_key


class NaturalKeyTests(unittest.TestCase):
    def test_key_is_normalized(self):
        record = {"code": " R-100 ", "name": "Weizenmehl  Typ 550"}
        self.assertEqual(natural_key(record, ["code", "name"]), "r-100|weizenmehl typ 550")

    def test_numbers_use_their_text_form(self):
        record = {"item_code": "I-1", "product_code": "R-1", "qty": 1250.0, "unit": "g"}
        self.assertEqual(natural_key(record, ["item_code", "product_code", "qty", "unit"]), "i-1|r-1|1250|g")

    def test_any_blank_key_field_makes_record_unkeyable(self):
        self.assertIsNone(natural_key({"code": "R-1", "name": ""}, ["code", "name"]))
        self.assertIsNone(natural_key({"code": "R-1"}, ["code", "name"]))
        self.assertIsNone(natural_key({"code": "R-1", "name": "Mehl"}, []))


class FinalizeTests(unittest.TestCase):
    def test_first_occurrence_wins(self):
        records = [
            {"code": "R-1", "name": "Mehl", "unit": "kg"},
            {"code": "r-1", "name": "MEHL", "unit": "Sack"},
            {"code": "R-2", "name": "Butter", "unit": "g"},
        ]
        out = finalize(records, ["code", "name"])
        self.assertEqual([record["unit"] for record in out], ["kg", "g"])

    def test_unkeyable_records_are_all_kept(self):
        records = [
            {"code": "R-1", "name": ""},
            {"code": "R-1", "name": ""},
            {"code": "", "name": "Mehl"},
        ]
        self.assertEqual(finalize(records, ["code", "name"]), records)

    def test_all_blank_records_are_dropped(self):
        records = [{"code": "", "name": None}, {"code": "R-1", "name": "Mehl"}]
        self.assertEqual(finalize(records, ["code", "name"]), [{"code": "R-1", "name": "Mehl"}])
        self.assertEqual(drop_blank_records([{}]), [])

    def test_order_is_preserved(self):
        records = [{"code": str(i), "name": "x"} for i in range(5, 0, -1)]
        self.assertEqual([record["code"] for record in finalize(records, ["code", "name"])], ["5", "4", "3", "2", "1"])


if __name__ == "__main__":
    unittest.main()
