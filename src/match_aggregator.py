"""
突合結果の集計
マッチ済み / 元帳のみ / 文書のみ のバケットと件数サマリーをまとめる。
"""

from collections import Counter
from dataclasses import asdict, is_dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from ledger_matcher import MatchOutcome
from party_aliases import PartyAliasRegistry, suggest_aliases
from recon_models import (
    MATCH_BY_DOCUMENT_NUMBER,
    MATCH_BY_PARTY_DATE_AMOUNT,
    AssembledDocument,
    DroppedRow,
    MatchResult,
    ReconciliationReport,
)


def assert_at_most_one(matched: Iterable[MatchResult]):
    """1つの文書・元帳エントリが2件以上のマッチに現れないことを確認する"""
    matched = list(matched)
    doc_counts = Counter(id(m.document) for m in matched if m.is_two_sided)
    ledger_counts = Counter(id(m.ledger_entry) for m in matched if m.is_two_sided)
    if any(c > 1 for c in doc_counts.values()) or any(c > 1 for c in ledger_counts.values()):
        raise ValueError("同じ文書または元帳エントリが複数のマッチに含まれています")


def _rate(numerator: int, denominator: int) -> Optional[str]:
    if not denominator:
        return None
    return f"{numerator / denominator * 100:.1f}%"


def _vendor_counts(names: Iterable[Optional[str]]) -> Dict[str, int]:
    counts = Counter((n or "").strip() or "unknown" for n in names)
    return dict(sorted(counts.items()))


def build_summary(
    total_rows: int,
    dropped: List[DroppedRow],
    documents: List[AssembledDocument],
    outcome: MatchOutcome,
) -> Dict:
    by_kind = Counter(m.match_kind for m in outcome.matched)
    invoice_count = len(outcome.matched) + len(outcome.ledger_only)
    multi = [d for d in documents if d.was_multi_page]

    invoice_entries = [m.ledger_entry for m in outcome.matched] + [m.ledger_entry for m in outcome.ledger_only]
    ledger_vendors = [e.party_name.strip() for e in invoice_entries if e.party_name and e.party_name.strip()]
    document_vendors = [d.party_name.strip() for d in documents if d.party_name and d.party_name.strip()]

    return {
        "total_pages_in": total_rows,
        "pages_dropped": len(dropped),
        "pages_assembled": sum(len(d.member_pages) for d in documents),
        "documents_assembled": len(documents),
        "multi_page_documents": len(multi),
        "pages_in_multi_page_documents": sum(len(d.member_pages) for d in multi),
        "matched_pairs": len(outcome.matched),
        "matched_by_kind": {
            MATCH_BY_DOCUMENT_NUMBER: by_kind.get(MATCH_BY_DOCUMENT_NUMBER, 0),
            MATCH_BY_PARTY_DATE_AMOUNT: by_kind.get(MATCH_BY_PARTY_DATE_AMOUNT, 0),
        },
        "ledger_invoice_entries": invoice_count,
        "unmatched_ledger_invoices": len(outcome.ledger_only),
        "unmatched_documents": len(outcome.document_only),
        "passthrough_entries": len(outcome.passthrough),
        "match_rate_ledger": _rate(len(outcome.matched), invoice_count),
        "match_rate_documents": _rate(len(outcome.matched), len(documents)),
        "ledger_invoice_total": str(sum((e.debit_amount for e in invoice_entries), Decimal("0"))),
        "passthrough_total": str(sum((e.debit_amount for e in outcome.passthrough), Decimal("0"))),
        "document_total": str(sum((d.total_amount for d in documents), Decimal("0"))),
        "ledger_vendors": sorted(set(ledger_vendors)),
        "document_vendors": sorted(set(document_vendors)),
        "vendor_breakdown": {
            "ledger": _vendor_counts(e.party_name for e in invoice_entries),
            "documents": _vendor_counts(d.party_name for d in documents),
        },
    }


def build_report(
    total_rows: int,
    dropped: List[DroppedRow],
    documents: List[AssembledDocument],
    outcome: MatchOutcome,
    registry: Optional[PartyAliasRegistry] = None,
    suggestion_cfg: Optional[Dict] = None,
) -> ReconciliationReport:
    assert_at_most_one(outcome.matched)
    registry = registry or PartyAliasRegistry()
    suggestion_cfg = suggestion_cfg or {}

    suggestions = suggest_aliases(
        (m.document.party_name for m in outcome.document_only),
        (m.ledger_entry.party_name for m in outcome.ledger_only),
        registry,
        min_score=suggestion_cfg.get("min_score", 0.85),
        limit=suggestion_cfg.get("limit", 20),
    )

    return ReconciliationReport(
        documents=list(documents),
        matched=list(outcome.matched),
        ledger_only=list(outcome.ledger_only),
        document_only=list(outcome.document_only),
        passthrough=list(outcome.passthrough),
        dropped=list(dropped),
        summary=build_summary(total_rows, dropped, documents, outcome),
        alias_suggestions=suggestions,
    )


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    if is_dataclass(value):
        return _jsonable(asdict(value))
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def unified_view(result: MatchResult) -> Dict:
    """元帳側を優先し、足りない項目を文書側で補った1件分のビュー。

    明細・確認番号・利用者名・サービス期間は文書側にしかない。
    """
    doc = result.document
    entry = result.ledger_entry

    def pick(name):
        for source in (entry, doc):
            value = getattr(source, name, None) if source is not None else None
            if value and str(value).strip():
                return value
        return ""

    if entry is not None and entry.debit_amount:
        amount = entry.debit_amount
    elif doc is not None:
        amount = doc.total_amount
    else:
        amount = Decimal("0")

    service_period = ""
    if doc is not None and (doc.service_start or doc.service_end):
        service_period = f"{doc.service_start or ''} to {doc.service_end or ''}".strip()

    return {
        "party_name": pick("party_name"),
        "document_number": pick("document_number"),
        "entry_date": pick("entry_date"),
        "amount": amount,
        "category": (doc.document_type if doc is not None else None) or "",
        "line_items": list(doc.line_items) if doc is not None else [],
        "confirmation_numbers": list(doc.confirmation_numbers) if doc is not None else [],
        "party_member_names": list(doc.party_member_names) if doc is not None else [],
        "service_period": service_period,
    }


def _result_to_dict(result: MatchResult) -> Dict:
    return {
        "match_kind": result.match_kind,
        "confidence": result.confidence,
        "rationale": result.rationale,
        "document_key": result.document.document_key if result.document else None,
        "ledger_entry_id": result.ledger_entry.entry_id if result.ledger_entry else None,
        "document": _jsonable(result.document),
        "ledger_entry": _jsonable(result.ledger_entry),
        "unified": _jsonable(unified_view(result)),
    }


def report_to_dict(report: ReconciliationReport) -> Dict:
    """JSON出力用の辞書（Decimalは文字列）"""
    return {
        "matched": [_result_to_dict(m) for m in report.matched],
        "ledger_only": [_result_to_dict(m) for m in report.ledger_only],
        "document_only": [_result_to_dict(m) for m in report.document_only],
        "passthrough": _jsonable(report.passthrough),
        "dropped": _jsonable(report.dropped),
        "alias_suggestions": report.alias_suggestions,
        "summary": report.summary,
    }
