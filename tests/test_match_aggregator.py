import json
import os
import sys
import unittest
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from ledger_matcher import MatchOutcome, match_documents
from match_aggregator import assert_at_most_one, build_report, report_to_dict, unified_view
from recon_models import (
    MATCH_BY_DOCUMENT_NUMBER,
    MATCH_BY_PARTY_DATE_AMOUNT,
    MATCH_LEDGER_ONLY,
    AssembledDocument,
    DroppedRow,
    LedgerEntry,
    MatchResult,
)


def make_doc(key, pages=(0,), **kw):
    return AssembledDocument(
        document_key=key,
        source_page_index=pages[0],
        member_pages=list(pages),
        was_multi_page=len(pages) > 1,
        merge_rationale="test",
        source_provenance=[],
        **kw,
    )


class TestBuildReport(unittest.TestCase):

    def setUp(self):
        self.documents = [
            make_doc("doc-1", pages=(1, 2, 3), document_number="R35086148", party_name="Acme Staffing",
                     total_amount=Decimal("1500.00")),
            make_doc("doc-4", pages=(4,), party_name="Acme Hotels", entry_date="2024-09-08",
                     total_amount=Decimal("2240.00")),
            make_doc("doc-5", pages=(5,), party_name="Zeta Logistcs", total_amount=Decimal("75.50")),
        ]
        self.ledger = [
            LedgerEntry("ledger-1", "Invoice", document_number="R35086148", party_name="Acme Staffing",
                        debit_amount=Decimal("1500.00")),
            LedgerEntry("ledger-2", "Invoice", party_name="Acme Hotels", entry_date="9/8/2024",
                        debit_amount=Decimal("2240.00")),
            LedgerEntry("ledger-3", "Invoice", party_name="Zeta Logistics", debit_amount=Decimal("80.00")),
            LedgerEntry("ledger-4", "Journal Entry", party_name="Payroll", debit_amount=Decimal("10.00")),
        ]
        self.dropped = [DroppedRow("9", "f1", "unparseable_payload")]
        outcome = match_documents(self.documents, self.ledger)
        self.report = build_report(6, self.dropped, self.documents, outcome)

    def test_summary_counts(self):
        s = self.report.summary
        self.assertEqual(s["total_pages_in"], 6)
        self.assertEqual(s["pages_dropped"], 1)
        self.assertEqual(s["pages_assembled"], 5)
        self.assertEqual(s["documents_assembled"], 3)
        self.assertEqual(s["multi_page_documents"], 1)
        self.assertEqual(s["pages_in_multi_page_documents"], 3)
        self.assertEqual(s["matched_pairs"], 2)
        self.assertEqual(s["matched_by_kind"], {MATCH_BY_DOCUMENT_NUMBER: 1, MATCH_BY_PARTY_DATE_AMOUNT: 1})
        self.assertEqual(s["ledger_invoice_entries"], 3)
        self.assertEqual(s["unmatched_ledger_invoices"], 1)
        self.assertEqual(s["unmatched_documents"], 1)
        self.assertEqual(s["passthrough_entries"], 1)
        self.assertEqual(s["match_rate_ledger"], "66.7%")
        self.assertEqual(s["ledger_invoice_total"], "3820.00")
        self.assertEqual(s["passthrough_total"], "10.00")
        self.assertEqual(s["document_total"], "3815.50")

    def test_alias_suggestions_for_unmatched_parties(self):
        self.assertEqual(len(self.report.alias_suggestions), 1)
        suggestion = self.report.alias_suggestions[0]
        self.assertEqual(suggestion["alias"], "Zeta Logistcs")
        self.assertEqual(suggestion["canonical"], "Zeta Logistics")

    def test_report_to_dict_is_json_ready(self):
        data = report_to_dict(self.report)
        json.dumps(data)
        self.assertEqual(data["matched"][0]["document_key"], "doc-1")
        self.assertEqual(data["matched"][0]["ledger_entry_id"], "ledger-1")
        self.assertEqual(data["matched"][0]["document"]["total_amount"], "1500.00")
        self.assertIsNone(data["ledger_only"][0]["document"])
        self.assertEqual(data["passthrough"][0]["entry_id"], "ledger-4")
        self.assertEqual(data["dropped"][0]["reason"], "unparseable_payload")

    def test_vendor_breakdown(self):
        s = self.report.summary
        self.assertEqual(s["ledger_vendors"], ["Acme Hotels", "Acme Staffing", "Zeta Logistics"])
        self.assertEqual(s["document_vendors"], ["Acme Hotels", "Acme Staffing", "Zeta Logistcs"])
        self.assertEqual(
            s["vendor_breakdown"]["ledger"], {"Acme Hotels": 1, "Acme Staffing": 1, "Zeta Logistics": 1}
        )
        self.assertEqual(
            s["vendor_breakdown"]["documents"], {"Acme Hotels": 1, "Acme Staffing": 1, "Zeta Logistcs": 1}
        )

    def test_unified_view_prefers_ledger_then_document(self):
        data = report_to_dict(self.report)
        matched = data["matched"][0]["unified"]
        self.assertEqual(matched["party_name"], "Acme Staffing")
        self.assertEqual(matched["document_number"], "R35086148")
        self.assertEqual(matched["amount"], "1500.00")

        doc_only = data["document_only"][0]["unified"]
        self.assertEqual(doc_only["party_name"], "Zeta Logistcs")
        self.assertEqual(doc_only["amount"], "75.50")
        self.assertEqual(doc_only["line_items"], [])

        ledger_only = data["ledger_only"][0]["unified"]
        self.assertEqual(ledger_only["party_name"], "Zeta Logistics")
        self.assertEqual(ledger_only["amount"], "80.00")
        self.assertEqual(ledger_only["service_period"], "")


def test_empty_inputs():
    report = build_report(0, [], [], MatchOutcome())
    assert report.summary["documents_assembled"] == 0
    assert report.summary["match_rate_ledger"] is None
    assert report.summary["ledger_invoice_total"] == "0"


def test_assert_at_most_one_detects_duplicates():
    doc = make_doc("doc-1")
    a = LedgerEntry("ledger-1", "Invoice")
    b = LedgerEntry("ledger-2", "Invoice")
    results = [
        MatchResult(MATCH_BY_DOCUMENT_NUMBER, 0.95, "x", doc, a),
        MatchResult(MATCH_BY_PARTY_DATE_AMOUNT, 0.85, "y", doc, b),
    ]
    with pytest.raises(ValueError):
        assert_at_most_one(results)


def test_unified_view_fills_from_document():
    doc = make_doc("doc-7", entry_date="2024-09-01", document_number="INV-7", total_amount=Decimal("42.00"),
                   service_start="2024-08-01", service_end="2024-08-31", document_type="Lodging",
                   confirmation_numbers=["C-1"], party_member_names=["J. Doe"])
    entry = LedgerEntry("ledger-7", "Invoice", party_name="Acme Hotels")
    view = unified_view(MatchResult(MATCH_BY_DOCUMENT_NUMBER, 0.95, "x", doc, entry))
    assert view["party_name"] == "Acme Hotels"
    assert view["document_number"] == "INV-7"
    assert view["entry_date"] == "2024-09-01"
    assert view["amount"] == Decimal("42.00")
    assert view["category"] == "Lodging"
    assert view["confirmation_numbers"] == ["C-1"]
    assert view["party_member_names"] == ["J. Doe"]
    assert view["service_period"] == "2024-08-01 to 2024-08-31"


def test_vendor_breakdown_counts_missing_party_as_unknown():
    outcome = MatchOutcome(ledger_only=[MatchResult(MATCH_LEDGER_ONLY, 1.0, "x", None, LedgerEntry("l-1", "Invoice"))])
    report = build_report(1, [], [make_doc("doc-1")], outcome)
    assert report.summary["vendor_breakdown"] == {"ledger": {"unknown": 1}, "documents": {"unknown": 1}}
    assert report.summary["ledger_vendors"] == []
