import csv
import json
import os
import sys
from decimal import Decimal

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from config_loader import merge_config
from data_importer import ReconcileDataImporter, parse_ledger_row


def write_csv(path, fieldnames, rows):
    with open(path, "w", encoding="utf-8-sig", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)


def test_import_page_rows_skips_blank_lines(tmp_path):
    path = tmp_path / "pages.csv"
    payload = json.dumps({"meta_source_page": 1, "vendor_name": "Acme, Inc."})
    write_csv(path, ["Number", "File ID", "OCR"], [
        {"Number": "1", "File ID": "f1", "OCR": payload},
        {"Number": "", "File ID": "", "OCR": ""},
    ])
    rows = ReconcileDataImporter(merge_config({})).import_page_rows(path)

    assert len(rows) == 1
    assert rows[0]["Number"] == "1"
    assert json.loads(rows[0]["OCR"])["vendor_name"] == "Acme, Inc."


def test_import_ledger(tmp_path):
    path = tmp_path / "ledger.csv"
    write_csv(path, ["Document Type", "Invoice Number", "Vendor", "Invoice Date", "Debit", "Credit", "Memo"], [
        {"Document Type": "Invoice", "Invoice Number": "R35086148", "Vendor": "Acme Staffing",
         "Invoice Date": "9/8/2024", "Debit": "$2,240.00", "Credit": "", "Memo": "weekly"},
        {"Document Type": "Journal Entry", "Invoice Number": "", "Vendor": "Acme Hotels",
         "Invoice Date": "9/9/2024", "Debit": "oops", "Credit": "10", "Memo": ""},
    ])
    entries = ReconcileDataImporter(merge_config({})).import_ledger(path)

    assert [e.entry_id for e in entries] == ["ledger-1", "ledger-2"]
    first, second = entries
    assert first.entry_kind == "Invoice"
    assert first.document_number == "R35086148"
    assert first.party_name == "Acme Staffing"
    assert first.debit_amount == Decimal("2240.00")
    assert first.extra == {"Memo": "weekly"}
    assert second.document_number is None
    assert second.debit_amount == Decimal("0")
    assert second.credit_amount == Decimal("10")
    assert second.extra["coercion_flags"] == ["debit_amount"]


def test_parse_ledger_row_uses_fallback_columns():
    columns = merge_config({})["ledger_columns"]
    row = {"Document Type": "Invoice", "Invoice": "INV-9", "address book name": "Acme", "Address Book #": "1020857"}
    entry = parse_ledger_row(row, columns, 3)
    assert entry.entry_id == "ledger-3"
    assert entry.document_number == "INV-9"
    assert entry.party_name == "Acme"
    assert entry.party_identifier == "1020857"
