import json
import os
import sys
from decimal import Decimal

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from config_loader import merge_config
from ocr_payload import normalize_page, normalize_page_rows, parse_ocr_payload, repair_truncated_json
from recon_models import ROLE_CONTINUATION, ROLE_FULL, ROLE_NONE, ROLE_UNKNOWN

CFG = merge_config({})
FIELDS = CFG["page_fields"]


def test_parse_strips_image_prefix_and_code_fence():
    text = 'Image 2 of 5\n```json\n{"meta_source_page": 2, "vendor_name": "Acme Hotels"}\n```'
    assert parse_ocr_payload(text) == {"meta_source_page": 2, "vendor_name": "Acme Hotels"}


def test_parse_repairs_truncated_payload():
    text = '{"meta_source_page": 3, "line_items": [{"amount": 10}, {"amount": 2'
    data = parse_ocr_payload(text)
    assert data == {"meta_source_page": 3, "line_items": [{"amount": 10}]}


def test_repair_ignores_delimiters_inside_strings():
    text = '{"note": "a [b] {c}", "items": [{"x": 1}, {"y'
    assert json.loads(repair_truncated_json(text)) == {"note": "a [b] {c}", "items": [{"x": 1}]}


def test_parse_rejects_garbage_and_non_objects():
    assert parse_ocr_payload("not json at all") is None
    assert parse_ocr_payload("[1, 2, 3]") is None
    assert parse_ocr_payload("") is None
    assert parse_ocr_payload(None) is None


def test_normalize_page_maps_fields_and_amounts():
    payload = {
        "meta_source_page": "12",
        "vendor_name": " Acme Hotels ",
        "invoice_number": 9700274853,
        "invoice_total": "$1,542.87",
        "meta_has_grand_total": "true",
        "meta_is_full_invoice": True,
        "employee_names": ["A. Smith", "B. Jones", "A. Smith"],
        "property_name": "Downtown",
    }
    page = normalize_page(payload, FIELDS, source_file_id="f-1", source_row_id="7")

    assert page.source_page_index == 12
    assert page.party_name == "Acme Hotels"
    assert page.document_number == "9700274853"
    assert page.total_amount == Decimal("1542.87")
    assert page.has_grand_total is True
    assert page.declared_role == ROLE_FULL
    assert page.party_member_names == ["A. Smith", "B. Jones"]
    assert page.extra == {"property_name": "Downtown"}
    assert page.source_file_id == "f-1"
    assert page.source_row_id == "7"
    assert page.coercion_flags == []


def test_normalize_page_flags_malformed_values():
    payload = {"invoice_total": "twelve", "meta_is_continuation_page": "maybe", "line_items": [{"amount": "x"}]}
    page = normalize_page(payload, FIELDS)

    assert page.source_page_index == 0
    assert page.total_amount == Decimal("0")
    assert page.declared_role == ROLE_UNKNOWN
    assert "source_page_index" in page.coercion_flags
    assert "total_amount" in page.coercion_flags
    assert "line_items.amount" in page.coercion_flags


def test_declared_roles():
    assert normalize_page({"meta_is_continuation_page": True}, FIELDS).declared_role == ROLE_CONTINUATION
    assert normalize_page({"meta_is_continuation_page": "false"}, FIELDS).declared_role == ROLE_NONE


def test_normalize_page_rows_drops_unparseable_rows():
    rows = [
        {"Number": "1", "File ID": "a", "OCR": json.dumps({"meta_source_page": 1, "vendor_name": "Acme"})},
        {"Number": "2", "File ID": "a", "OCR": "garbage"},
        {"Number": "3", "File ID": "a", "OCR": "   "},
    ]
    pages, dropped = normalize_page_rows(rows, CFG)

    assert [p.source_page_index for p in pages] == [1]
    assert [(d.source_row_id, d.reason) for d in dropped] == [("2", "unparseable_payload"), ("3", "empty_payload")]
