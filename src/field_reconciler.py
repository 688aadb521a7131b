"""
文書グループの項目統合
1グループ（1〜複数ページ）から AssembledDocument を1件作る。
"""

from dataclasses import fields, replace
from typing import Dict, Iterable, List, Optional

from page_classifier import DEFAULT_SETTINGS, ClassifierSettings, is_header_like
from recon_models import (
    AssembledDocument,
    LineItem,
    PageGroup,
    PageRecord,
    Provenance,
    ROLE_CONTINUATION,
    ROLE_FULL,
)
from value_normalizers import is_blank, normalize_date, unique_in_order

HEADER_FIELDS = (
    "document_number",
    "party_name",
    "party_identifier",
    "business_code",
    "entry_date",
    "due_date",
    "processor_name",
    "processor_date",
    "document_type",
)
FINANCIAL_FIELDS = ("total_amount", "amount_paid", "amount_due", "taxes")

_DOCUMENT_FIELDS = {f.name for f in fields(AssembledDocument)}


def _page_values(page: PageRecord) -> Dict:
    return {f.name: getattr(page, f.name) for f in fields(PageRecord) if f.name in _DOCUMENT_FIELDS}


def document_key(page: PageRecord) -> str:
    if page.source_row_id:
        return f"doc-{page.source_page_index}-r{page.source_row_id}"
    return f"doc-{page.source_page_index}"


def select_total_page(pages: List[PageRecord]) -> Optional[PageRecord]:
    """総合計ページのうち金額が最大のもの（同額なら先に出たもの）"""
    best = None
    for p in pages:
        if not (p.has_grand_total and p.total_amount > 0):
            continue
        if best is None or p.total_amount > best.total_amount:
            best = p
    return best


def dedupe_line_items(items: Iterable[LineItem]) -> List[LineItem]:
    """(日付, 摘要, 金額) が同じ明細は重複OCRとして1件にまとめる"""
    seen = set()
    out = []
    for item in items:
        key = item.dedup_key()
        if key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


def _first_value(pages: List[PageRecord], name: str, placeholders=()):
    for p in pages:
        value = getattr(p, name)
        if not is_blank(value, placeholders):
            return value
    return None


def _service_period(pages: List[PageRecord]):
    starts = [s for s in (p.service_start for p in pages) if s]
    ends = [e for e in (p.service_end for p in pages) if e]
    start = min(starts, key=normalize_date) if starts else None
    end = max(ends, key=normalize_date) if ends else None
    return start, end


def _is_empty_extra(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return value == {} or value == []


def merge_extra(pages: List[PageRecord]) -> Dict:
    """未定義項目をキー単位で統合する。

    先に来たページの値を優先し、空値は後続ページの値で埋める。
    リスト値は順序を保って和集合にする。
    """
    merged: Dict = {}
    for p in pages:
        for key, value in p.extra.items():
            current = merged.get(key)
            if isinstance(value, list) and (current is None or isinstance(current, list)):
                merged[key] = unique_in_order((current or []) + value)
            elif key not in merged or (_is_empty_extra(current) and not _is_empty_extra(value)):
                merged[key] = value
    return merged


def _rationale(pages: List[PageRecord], total_page: Optional[PageRecord], signals: List[str]) -> str:
    parts = []
    if any(p.declared_role == ROLE_CONTINUATION for p in pages):
        parts.append("Contains continuation pages")
    if total_page is not None:
        parts.append(f"Grand total on page {total_page.source_page_index}")
    else:
        parts.append(f"No grand total page, totals from page {pages[0].source_page_index}")
    if signals:
        parts.append("Merge signals: " + "; ".join(signals))
    parts.append("Pages " + ", ".join(str(p.source_page_index) for p in pages))
    return " | ".join(parts)


def reconcile_group(group: PageGroup, settings: ClassifierSettings = DEFAULT_SETTINGS) -> AssembledDocument:
    if not group.pages:
        raise ValueError("空のグループからは文書を作れません")

    pages = sorted(group.pages, key=lambda p: p.source_page_index)
    first = pages[0]
    provenance = [Provenance(p.source_file_id, p.source_row_id) for p in pages]

    if len(pages) == 1:
        return AssembledDocument(
            document_key=document_key(first),
            member_pages=[first.source_page_index],
            was_multi_page=False,
            merge_rationale="Single-page document",
            source_provenance=provenance,
            **_page_values(first),
        )

    total_page = select_total_page(pages)
    money_page = total_page or first
    header_page = next((p for p in pages if is_header_like(p)), first)
    search_order = [header_page] + ([money_page] if money_page is not header_page else [])
    search_order += [p for p in pages if p is not header_page and p is not money_page]

    values = {}
    for name in HEADER_FIELDS:
        placeholders = settings.document_number_placeholders if name == "document_number" else ()
        values[name] = _first_value(search_order, name, placeholders)
    if values["document_number"] is None:
        values["document_number"] = header_page.document_number
    for name in FINANCIAL_FIELDS:
        values[name] = getattr(money_page, name)

    service_start, service_end = _service_period(pages)

    return AssembledDocument(
        document_key=document_key(first),
        source_page_index=first.source_page_index,
        member_pages=[p.source_page_index for p in pages],
        was_multi_page=True,
        merge_rationale=_rationale(pages, total_page, group.signals),
        source_provenance=provenance,
        declared_role=ROLE_FULL,
        has_grand_total=any(p.has_grand_total for p in pages),
        line_items=dedupe_line_items(item for p in pages for item in p.line_items),
        confirmation_numbers=unique_in_order(c for p in pages for c in p.confirmation_numbers),
        reference_numbers=unique_in_order(r for p in pages for r in p.reference_numbers),
        party_member_names=unique_in_order(n for p in pages for n in p.party_member_names),
        service_start=service_start,
        service_end=service_end,
        unit_count=max(p.unit_count for p in pages),
        extraction_confidence=max(p.extraction_confidence for p in pages),
        notes=[n for p in pages for n in p.notes],
        coercion_flags=unique_in_order(f for p in pages for f in p.coercion_flags),
        extra=merge_extra(search_order),
        **values,
    )


def reconcile_groups(groups: Iterable[PageGroup], settings: ClassifierSettings = DEFAULT_SETTINGS) -> List[AssembledDocument]:
    documents = []
    seen: Dict[str, int] = {}
    for group in groups:
        doc = reconcile_group(group, settings)
        if doc.document_key in seen:
            # 同じページ番号の重複行
            seen[doc.document_key] += 1
            doc = replace(doc, document_key=f"{doc.document_key}#{seen[doc.document_key]}")
        else:
            seen[doc.document_key] = 0
        documents.append(doc)
    return documents
