#!/usr/bin/env python3
"""
Generates sample-data/messy_bakery.xlsx, a planning workbook in the shape
bakeries actually send: German labels, title rows, a transposed sheet and
repeated rows.

Run from the repo root:
    python sample-data/generate_bakery_workbook.py

Sheets:
  "Rohwaren"     products, title row above the header, one exact duplicate
  "Rezepte"      items with English/German mixed labels
  "Stückliste"   BOM rows, one repeated line
  "Plan KW12"    production plan laid out sideways (labels down column A)
  "Filialen"     shop allocations under a two-line title band
  "Notizen"      free text only, nothing to import
  "Leer"         empty
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import openpyxl

OUTPUT = Path(__file__).parent / "messy_bakery.xlsx"

PRODUCTS = [
    ["R-100", "Weizenmehl Type 550", "Sack 25kg", "g", 0.0009, "Mühle Krause"],
    ["R-101", "Roggenmehl Type 1150", "Sack 25kg", "g", 0.0011, "Mühle Krause"],
    ["R-200", "Butter", "Block", "g", 0.0089, "Molkerei Nord"],
    ["R-300", "Hefe frisch", "Würfel", "g", 0.004, "Backring"],
]

ITEMS = [
    ["I-BROT", "Bauernbrot", 12, "Stk", "Brot"],
    ["I-CROI", "Buttercroissant", 40, "Stk", "Feingebäck"],
    ["I-BRÖ", "Kaiserbrötchen", 60, "Stk", "Brötchen"],
]

BOM = [
    ["I-BROT", "R-101", 6000, "g"],
    ["I-BROT", "R-300", 120, "g"],
    ["I-CROI", "R-100", 2500, "g"],
    ["I-CROI", "R-200", 1250, "g"],
    ["I-CROI", "R-200", 1250, "g"],
]

PRODUCTION = [
    (datetime(2025, 3, 17), "I-BROT", 48, 12, "Ofen 1"),
    (datetime(2025, 3, 17), "I-CROI", 160, 40, "Feinback"),
    (datetime(2025, 3, 18), "I-BRÖ", 240, 60, "Ofen 2"),
]

ALLOCATIONS = [
    [datetime(2025, 3, 17), "I-BROT", "F01", 20],
    [datetime(2025, 3, 17), "I-BROT", "F02", 28],
    [datetime(2025, 3, 17), "I-CROI", "F01", 80],
]


def build_workbook(output: Path = OUTPUT) -> Path:
    wb = openpyxl.Workbook()

    ws = wb.active
    ws.title = "Rohwaren"
    ws.append(["Rohwaren Liste 2025"])
    ws.append(["Code", "Bezeichnung", "Einheit", "Grundeinheit", "Preis", "Lieferant"])
    for row in PRODUCTS:
        ws.append(row)
    ws.append([])
    ws.append(PRODUCTS[0])

    ws = wb.create_sheet("Rezepte")
    ws.append(["Artikelcode", "Produktname", "Ausbeute", "Einheit", "Kategorie"])
    for row in ITEMS:
        ws.append(row)

    ws = wb.create_sheet("Stückliste")
    ws.append(["Rezept", "Rohcode", "Menge", "Einheit"])
    for row in BOM:
        ws.append(row)

    ws = wb.create_sheet("Plan KW12")
    labels = ["Datum", "Artikel", "Menge", "Charge", "Linie"]
    for index, label in enumerate(labels):
        ws.append([label] + [entry[index] for entry in PRODUCTION])

    ws = wb.create_sheet("Filialen")
    ws.append(["Verteilung an Filialen"])
    ws.append(["Stand: KW12"])
    ws.append(["Datum", "Artikel", "Filiale", "Menge"])
    for row in ALLOCATIONS:
        ws.append(row)

    ws = wb.create_sheet("Notizen")
    ws.append(["Bitte Mehlbestellung bis Donnerstag abschließen."])
    ws.append(["Ofen 2 wird am Mittwoch gewartet."])

    wb.create_sheet("Leer")

    output.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output)
    return output


if __name__ == "__main__":
    print(f"Created: {build_workbook()}")
