import os
import yaml


DEFAULTS = {
    "classifier": {
        "folio_pattern": r"^97\d+$",
        "document_number_placeholders": ["n/a", "null", "string", "unknown", "none"],
        "unknown_party_names": ["unknown"],
        "date_placeholders": ["null", "yyyy-mm-dd", "n/a", "none"],
    },
    "payload": {
        "prefix_patterns": [r"^Image \d+ of \d+\s*\n?"],
    },
    "page_columns": {"row_id": "Number", "file_id": "File ID", "payload": "OCR"},
    # PageRecordの項目名 -> OCRペイロードのキー
    "page_fields": {
        "source_page_index": "meta_source_page",
        "document_number": "invoice_number",
        "party_name": "vendor_name",
        "party_identifier": "vendor_id",
        "business_code": "bu_code",
        "entry_date": "invoice_date",
        "due_date": "due_date",
        "is_continuation": "meta_is_continuation_page",
        "is_full": "meta_is_full_invoice",
        "has_grand_total": "meta_has_grand_total",
        "total_amount": "invoice_total",
        "amount_paid": "amount_paid",
        "amount_due": "amount_due",
        "taxes": "taxes",
        "line_items": "line_items",
        "confirmation_numbers": "confirmation_numbers",
        "reference_numbers": "reference_numbers",
        "party_member_names": "employee_names",
        "service_start": "service_start",
        "service_end": "service_end",
        "unit_count": "unit_count",
        "document_type": "meta_invoice_type",
        "processor_name": "processor_name",
        "processor_date": "processor_date",
        "extraction_confidence": "meta_confidence",
        "notes": "meta_notes",
    },
    "ledger_columns": {
        "entry_kind": ["Document Type"],
        "document_number": ["Invoice Number", "Invoice"],
        "party_name": ["Vendor", "address book name"],
        "party_identifier": ["Address Book #"],
        "entry_date": ["Invoice Date"],
        "debit_amount": ["Debit"],
        "credit_amount": ["Credit"],
    },
    "ledger": {"invoice_kinds": ["Invoice"]},
    "party_aliases": {},
    "party_alias_substrings": {},
    "party_alias_file": None,
    "suggestions": {"min_score": 0.85, "limit": 20},
}


def _default_config_path() -> str:
    return os.path.join(os.path.dirname(os.path.dirname(__file__)), "config", "reconcile.yml")


def load_reconcile_config(path: str = None) -> dict:
    path = path or os.getenv("RECONCILE_CONFIG") or _default_config_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return merge_config({})

    merged = merge_config(cfg)
    alias_file = merged.get("party_alias_file")
    if alias_file and not os.path.isabs(alias_file):
        # 設定ファイルからの相対パス
        merged["party_alias_file"] = os.path.join(os.path.dirname(os.path.abspath(path)), alias_file)
    return merged


def merge_config(cfg: dict) -> dict:
    # shallow merge defaults
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in DEFAULTS.items()}
    for k, v in (cfg or {}).items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            mv = dict(merged[k])
            mv.update(v)
            merged[k] = mv
        else:
            merged[k] = v
    return merged
