"""
元帳エントリと組み立て済み文書の突合
2段階の貪欲マッチ（大域最適ではない）:
  1. 文書番号一致 + 取引先一致          (confidence 0.95)
  2. 取引先 + 日付 + 金額（セント単位）一致 (confidence 0.85)
どちらも1対1。取得済みの文書・元帳エントリは ClaimRegistry で管理する。
"""

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

from party_aliases import PartyAliasRegistry
from recon_models import (
    CONFIDENCE,
    MATCH_BY_DOCUMENT_NUMBER,
    MATCH_BY_PARTY_DATE_AMOUNT,
    MATCH_DOCUMENT_ONLY,
    MATCH_LEDGER_ONLY,
    AssembledDocument,
    LedgerEntry,
    MatchResult,
)
from value_normalizers import (
    DEFAULT_DOCUMENT_NUMBER_PLACEHOLDERS,
    format_amount,
    is_blank,
    normalize_date,
    normalize_document_number,
    to_cents,
)


class ClaimRegistry:
    """取得済みキーの集合。try_claim は compare-and-set で、同じキーは1回しか取れない"""

    def __init__(self):
        self._claimed = set()
        self._lock = threading.Lock()

    def try_claim(self, key: Hashable) -> bool:
        with self._lock:
            if key in self._claimed:
                return False
            self._claimed.add(key)
            return True

    def is_claimed(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._claimed

    def __len__(self):
        with self._lock:
            return len(self._claimed)


@dataclass
class MatcherSettings:
    invoice_kinds: Tuple[str, ...] = ("invoice",)
    document_number_placeholders: Tuple[str, ...] = DEFAULT_DOCUMENT_NUMBER_PLACEHOLDERS
    unknown_party_names: Tuple[str, ...] = ("unknown",)
    aliases: PartyAliasRegistry = field(default_factory=PartyAliasRegistry)

    def __post_init__(self):
        self.invoice_kinds = tuple(k.strip().casefold() for k in self.invoice_kinds)
        self.document_number_placeholders = tuple(p.lower() for p in self.document_number_placeholders)
        self.unknown_party_names = tuple(p.lower() for p in self.unknown_party_names)

    @classmethod
    def from_config(cls, cfg: Dict, aliases: Optional[PartyAliasRegistry] = None) -> "MatcherSettings":
        classifier = cfg.get("classifier", {})
        return cls(
            invoice_kinds=tuple(cfg.get("ledger", {}).get("invoice_kinds") or ("Invoice",)),
            document_number_placeholders=tuple(
                classifier.get("document_number_placeholders") or DEFAULT_DOCUMENT_NUMBER_PLACEHOLDERS
            ),
            unknown_party_names=tuple(classifier.get("unknown_party_names") or ("unknown",)),
            aliases=aliases or PartyAliasRegistry.from_config(cfg),
        )


@dataclass
class MatchOutcome:
    matched: List[MatchResult] = field(default_factory=list)
    ledger_only: List[MatchResult] = field(default_factory=list)
    document_only: List[MatchResult] = field(default_factory=list)
    passthrough: List[LedgerEntry] = field(default_factory=list)


def is_invoice_entry(entry: LedgerEntry, settings: MatcherSettings) -> bool:
    return (entry.entry_kind or "").strip().casefold() in settings.invoice_kinds


def is_match_eligible(doc: AssembledDocument, settings: MatcherSettings) -> bool:
    """金額0・取引先なし・文書番号なしの文書は突合候補にしない"""
    no_party = is_blank(doc.party_name, settings.unknown_party_names)
    no_number = not normalize_document_number(doc.document_number, settings.document_number_placeholders)
    return not (doc.total_amount == 0 and no_party and no_number)


def _party_matches(doc: AssembledDocument, entry: LedgerEntry, settings: MatcherSettings) -> bool:
    doc_key = settings.aliases.key(doc.party_name)
    return bool(doc_key) and doc_key == settings.aliases.key(entry.party_name)


def _match_by_document_number(
    invoices: Sequence[Tuple[int, LedgerEntry]],
    pool: Sequence[Tuple[int, AssembledDocument]],
    doc_claims: ClaimRegistry,
    ledger_claims: ClaimRegistry,
    settings: MatcherSettings,
) -> List[MatchResult]:
    by_number: Dict[str, List[Tuple[int, AssembledDocument]]] = defaultdict(list)
    for j, doc in pool:
        number = normalize_document_number(doc.document_number, settings.document_number_placeholders)
        if number:
            by_number[number].append((j, doc))

    results = []
    for i, entry in invoices:
        number = normalize_document_number(entry.document_number, settings.document_number_placeholders)
        if not number or ledger_claims.is_claimed(i):
            continue
        for j, doc in by_number.get(number, []):
            if doc_claims.is_claimed(j) or not _party_matches(doc, entry, settings):
                continue
            if not doc_claims.try_claim(j):
                continue
            ledger_claims.try_claim(i)
            results.append(
                MatchResult(
                    match_kind=MATCH_BY_DOCUMENT_NUMBER,
                    confidence=CONFIDENCE[MATCH_BY_DOCUMENT_NUMBER],
                    rationale=f"Matched by document number: {str(entry.document_number).strip()}",
                    document=doc,
                    ledger_entry=entry,
                )
            )
            break
    return results


def _match_by_party_date_amount(
    invoices: Sequence[Tuple[int, LedgerEntry]],
    pool: Sequence[Tuple[int, AssembledDocument]],
    doc_claims: ClaimRegistry,
    ledger_claims: ClaimRegistry,
    settings: MatcherSettings,
) -> List[MatchResult]:
    results = []
    for i, entry in invoices:
        if ledger_claims.is_claimed(i):
            continue
        ledger_date = normalize_date(entry.entry_date)
        if not ledger_date:
            continue
        ledger_cents = to_cents(entry.debit_amount)

        for j, doc in pool:
            if doc_claims.is_claimed(j):
                continue
            if not _party_matches(doc, entry, settings):
                continue
            if normalize_date(doc.entry_date) != ledger_date:
                continue
            if to_cents(doc.total_amount) != ledger_cents:
                continue
            if not doc_claims.try_claim(j):
                continue
            ledger_claims.try_claim(i)
            results.append(
                MatchResult(
                    match_kind=MATCH_BY_PARTY_DATE_AMOUNT,
                    confidence=CONFIDENCE[MATCH_BY_PARTY_DATE_AMOUNT],
                    rationale=(
                        f"Matched by party ({entry.party_name}), date ({ledger_date}), "
                        f"and amount ({format_amount(entry.debit_amount)})"
                    ),
                    document=doc,
                    ledger_entry=entry,
                )
            )
            break
    return results


def match_documents(
    documents: Sequence[AssembledDocument],
    ledger_entries: Sequence[LedgerEntry],
    settings: Optional[MatcherSettings] = None,
) -> MatchOutcome:
    """文書と元帳を突合する。請求書以外の元帳エントリはそのまま passthrough に入る"""
    settings = settings or MatcherSettings()

    invoices = [(i, e) for i, e in enumerate(ledger_entries) if is_invoice_entry(e, settings)]
    passthrough = [e for e in ledger_entries if not is_invoice_entry(e, settings)]
    pool = [(j, d) for j, d in enumerate(documents) if is_match_eligible(d, settings)]

    doc_claims = ClaimRegistry()
    ledger_claims = ClaimRegistry()

    matched = _match_by_document_number(invoices, pool, doc_claims, ledger_claims, settings)
    # 2段目は1段目が全件終わってから、残りだけを対象にする
    matched += _match_by_party_date_amount(invoices, pool, doc_claims, ledger_claims, settings)

    ledger_only = [
        MatchResult(
            match_kind=MATCH_LEDGER_ONLY,
            confidence=CONFIDENCE[MATCH_LEDGER_ONLY],
            rationale="No matching document found",
            ledger_entry=entry,
        )
        for i, entry in invoices
        if not ledger_claims.is_claimed(i)
    ]

    eligible = {j for j, _ in pool}
    document_only = []
    for j, doc in enumerate(documents):
        if doc_claims.is_claimed(j):
            continue
        if j in eligible:
            rationale = "Not found in ledger"
        else:
            rationale = "Excluded from matching: no total, party or document number"
        document_only.append(
            MatchResult(
                match_kind=MATCH_DOCUMENT_ONLY,
                confidence=CONFIDENCE[MATCH_DOCUMENT_ONLY],
                rationale=rationale,
                document=doc,
            )
        )

    return MatchOutcome(matched=matched, ledger_only=ledger_only, document_only=document_only, passthrough=passthrough)
