#!/usr/bin/env python3
"""
OCRペイロードの正規化
ページ単位のOCR抽出結果（JSON文字列）を PageRecord に変換する。
途中で切れたJSONは、最後の閉じ括弧まで切り詰めて括弧を補完して再パースする。
"""

import json
import math
import re
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from recon_models import (
    DroppedRow,
    LineItem,
    PageRecord,
    ROLE_CONTINUATION,
    ROLE_FULL,
    ROLE_NONE,
    ROLE_UNKNOWN,
)
from value_normalizers import to_decimal, unique_in_order

DEFAULT_PREFIX_PATTERNS = [r"^Image \d+ of \d+\s*\n?"]

_CODE_FENCE = re.compile(r"```(?:json)?\n?", re.IGNORECASE)
_CLOSERS = {"{": "}", "[": "]"}
_INVALID = object()


def strip_boilerplate(text: str, prefix_patterns: Iterable[str] = DEFAULT_PREFIX_PATTERNS) -> str:
    cleaned = text
    for pattern in prefix_patterns:
        cleaned = re.sub(pattern, "", cleaned, count=1, flags=re.IGNORECASE)
    cleaned = _CODE_FENCE.sub("", cleaned)
    return cleaned.strip()


def repair_truncated_json(text: str) -> Optional[str]:
    """最後の閉じ括弧までで切り詰め、閉じていない括弧を補完する"""
    last = max(text.rfind("}"), text.rfind("]"))
    if last <= 0:
        return None
    head = text[: last + 1]

    stack: List[str] = []
    in_string = False
    escaped = False
    for ch in head:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in ("}", "]"):
            if not stack or _CLOSERS[stack[-1]] != ch:
                return None
            stack.pop()

    if in_string:
        return None
    return head + "".join(_CLOSERS[c] for c in reversed(stack))


def parse_ocr_payload(text: Optional[str], prefix_patterns: Iterable[str] = DEFAULT_PREFIX_PATTERNS) -> Optional[Dict]:
    """OCR文字列をdictにする。修復できなければNone"""
    if not text or not str(text).strip():
        return None
    cleaned = strip_boilerplate(str(text), prefix_patterns)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        repaired = repair_truncated_json(cleaned)
        if repaired is None:
            return None
        try:
            data = json.loads(repaired)
        except json.JSONDecodeError:
            return None
    return data if isinstance(data, dict) else None


def _read_flag(value):
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        low = value.strip().lower()
        if low in ("true", "yes", "1"):
            return True
        if low in ("false", "no", "0", "", "null"):
            return False
    return _INVALID


def _text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number)


def _string_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    items = []
    for v in value:
        if isinstance(v, (dict, list)):
            items.append(json.dumps(v, sort_keys=True, ensure_ascii=False))
        else:
            t = _text(v)
            if t:
                items.append(t)
    return unique_in_order(items)


def _optional_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    d, ok = to_decimal(value)
    return d if ok else None


def _line_items(value, flags: List[str]) -> List[LineItem]:
    if value is None:
        return []
    if not isinstance(value, list):
        flags.append("line_items")
        return []
    items = []
    for raw in value:
        if not isinstance(raw, dict):
            flags.append("line_items")
            continue
        amount, ok = to_decimal(raw.get("amount"))
        if not ok:
            flags.append("line_items.amount")
        items.append(
            LineItem(
                date=_text(raw.get("date")),
                description=_text(raw.get("description")) or "",
                quantity=_optional_decimal(raw.get("quantity")),
                unit_price=_optional_decimal(raw.get("unit_price")),
                amount=amount,
                category=_text(raw.get("category")),
            )
        )
    return items


def normalize_page(
    payload: Dict,
    field_map: Dict[str, str],
    source_file_id: Optional[str] = None,
    source_row_id: Optional[str] = None,
) -> PageRecord:
    """OCRペイロード（dict）を PageRecord に変換する"""
    flags: List[str] = []

    def get(name):
        return payload.get(field_map.get(name, name))

    index = _int(get("source_page_index"))
    if index is None:
        flags.append("source_page_index")
        index = 0

    amounts = {}
    for name in ("total_amount", "amount_paid", "amount_due", "taxes"):
        value, ok = to_decimal(get(name))
        if not ok:
            flags.append(name)
        amounts[name] = value

    continuation = _read_flag(get("is_continuation"))
    full = _read_flag(get("is_full"))
    if continuation is True:
        role = ROLE_CONTINUATION
    elif full is True:
        role = ROLE_FULL
    elif continuation is _INVALID or full is _INVALID:
        role = ROLE_UNKNOWN
    else:
        role = ROLE_NONE

    unit_count = _int(get("unit_count"))
    if unit_count is None:
        if get("unit_count") is not None:
            flags.append("unit_count")
        unit_count = 0

    try:
        confidence = float(get("extraction_confidence") or 0)
    except (TypeError, ValueError):
        flags.append("extraction_confidence")
        confidence = 0.0
    if not math.isfinite(confidence):
        flags.append("extraction_confidence")
        confidence = 0.0

    line_items = _line_items(get("line_items"), flags)
    mapped_keys = set(field_map.values())

    return PageRecord(
        source_page_index=index,
        document_number=_text(get("document_number")),
        party_name=_text(get("party_name")),
        party_identifier=_text(get("party_identifier")),
        business_code=_text(get("business_code")),
        entry_date=_text(get("entry_date")),
        due_date=_text(get("due_date")),
        declared_role=role,
        has_grand_total=_read_flag(get("has_grand_total")) is True,
        total_amount=amounts["total_amount"],
        amount_paid=amounts["amount_paid"],
        amount_due=amounts["amount_due"],
        taxes=amounts["taxes"],
        line_items=line_items,
        confirmation_numbers=_string_list(get("confirmation_numbers")),
        reference_numbers=_string_list(get("reference_numbers")),
        party_member_names=_string_list(get("party_member_names")),
        service_start=_text(get("service_start")),
        service_end=_text(get("service_end")),
        unit_count=unit_count,
        document_type=_text(get("document_type")),
        processor_name=_text(get("processor_name")),
        processor_date=_text(get("processor_date")),
        extraction_confidence=confidence,
        notes=_string_list(get("notes")),
        coercion_flags=unique_in_order(flags),
        source_file_id=source_file_id,
        source_row_id=source_row_id,
        extra={k: v for k, v in payload.items() if k not in mapped_keys},
    )


def normalize_page_rows(rows: Iterable[Dict], cfg: Dict) -> Tuple[List[PageRecord], List[DroppedRow]]:
    """CSV行ごとにOCRをパースして PageRecord を作る。パースできない行は除外する"""
    columns = cfg["page_columns"]
    prefixes = cfg["payload"].get("prefix_patterns") or DEFAULT_PREFIX_PATTERNS
    field_map = cfg["page_fields"]

    pages: List[PageRecord] = []
    dropped: List[DroppedRow] = []
    for row in rows:
        row_id = _text(row.get(columns["row_id"]))
        file_id = _text(row.get(columns["file_id"]))
        raw = row.get(columns["payload"])
        if not raw or not str(raw).strip():
            dropped.append(DroppedRow(row_id, file_id, "empty_payload"))
            continue
        payload = parse_ocr_payload(raw, prefixes)
        if payload is None:
            dropped.append(DroppedRow(row_id, file_id, "unparseable_payload"))
            continue
        pages.append(normalize_page(payload, field_map, source_file_id=file_id, source_row_id=row_id))
    return pages, dropped
