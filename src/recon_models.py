from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional


# 宣言されたページの役割
ROLE_NONE = "none"
ROLE_CONTINUATION = "continuation"
ROLE_FULL = "full"
ROLE_UNKNOWN = "unknown"

# マッチ種別
MATCH_BY_DOCUMENT_NUMBER = "by-document-number"
MATCH_BY_PARTY_DATE_AMOUNT = "by-party-date-amount"
MATCH_DOCUMENT_ONLY = "document-only"
MATCH_LEDGER_ONLY = "ledger-only"

TWO_SIDED_KINDS = (MATCH_BY_DOCUMENT_NUMBER, MATCH_BY_PARTY_DATE_AMOUNT)

CONFIDENCE = {
    MATCH_BY_DOCUMENT_NUMBER: 0.95,
    MATCH_BY_PARTY_DATE_AMOUNT: 0.85,
    MATCH_LEDGER_ONLY: 1.0,  # 元帳が正
    MATCH_DOCUMENT_ONLY: 0.5,  # 未検証
}


@dataclass(frozen=True)
class LineItem:
    date: Optional[str] = None
    description: str = ""
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    amount: Decimal = Decimal("0")
    category: Optional[str] = None

    def dedup_key(self) -> tuple:
        return (self.date or "", self.description or "", self.amount)


@dataclass(frozen=True)
class PageRecord:
    source_page_index: int
    document_number: Optional[str] = None
    party_name: Optional[str] = None
    party_identifier: Optional[str] = None
    business_code: Optional[str] = None
    entry_date: Optional[str] = None
    due_date: Optional[str] = None
    declared_role: str = ROLE_NONE
    has_grand_total: bool = False
    total_amount: Decimal = Decimal("0")
    amount_paid: Decimal = Decimal("0")
    amount_due: Decimal = Decimal("0")
    taxes: Decimal = Decimal("0")
    line_items: List[LineItem] = field(default_factory=list)
    confirmation_numbers: List[str] = field(default_factory=list)
    reference_numbers: List[str] = field(default_factory=list)
    party_member_names: List[str] = field(default_factory=list)
    service_start: Optional[str] = None
    service_end: Optional[str] = None
    unit_count: int = 0
    document_type: Optional[str] = None
    processor_name: Optional[str] = None
    processor_date: Optional[str] = None
    extraction_confidence: float = 0.0
    notes: List[str] = field(default_factory=list)
    coercion_flags: List[str] = field(default_factory=list)
    source_file_id: Optional[str] = None
    source_row_id: Optional[str] = None
    extra: Dict = field(default_factory=dict)


@dataclass
class PageGroup:
    """アセンブラが出力する1文書分のページ列"""
    pages: List[PageRecord] = field(default_factory=list)
    signals: List[str] = field(default_factory=list)

    @property
    def head(self) -> PageRecord:
        return self.pages[0]

    @property
    def last(self) -> PageRecord:
        return self.pages[-1]


@dataclass(frozen=True)
class Provenance:
    file_id: Optional[str]
    row_id: Optional[str]


@dataclass(frozen=True)
class AssembledDocument:
    document_key: str
    source_page_index: int
    member_pages: List[int]
    was_multi_page: bool
    merge_rationale: str
    source_provenance: List[Provenance]
    document_number: Optional[str] = None
    party_name: Optional[str] = None
    party_identifier: Optional[str] = None
    business_code: Optional[str] = None
    entry_date: Optional[str] = None
    due_date: Optional[str] = None
    declared_role: str = ROLE_NONE
    has_grand_total: bool = False
    total_amount: Decimal = Decimal("0")
    amount_paid: Decimal = Decimal("0")
    amount_due: Decimal = Decimal("0")
    taxes: Decimal = Decimal("0")
    line_items: List[LineItem] = field(default_factory=list)
    confirmation_numbers: List[str] = field(default_factory=list)
    reference_numbers: List[str] = field(default_factory=list)
    party_member_names: List[str] = field(default_factory=list)
    service_start: Optional[str] = None
    service_end: Optional[str] = None
    unit_count: int = 0
    document_type: Optional[str] = None
    processor_name: Optional[str] = None
    processor_date: Optional[str] = None
    extraction_confidence: float = 0.0
    notes: List[str] = field(default_factory=list)
    coercion_flags: List[str] = field(default_factory=list)
    extra: Dict = field(default_factory=dict)


@dataclass(frozen=True)
class LedgerEntry:
    entry_id: str
    entry_kind: str
    document_number: Optional[str] = None
    party_name: Optional[str] = None
    party_identifier: Optional[str] = None
    entry_date: Optional[str] = None
    debit_amount: Decimal = Decimal("0")
    credit_amount: Decimal = Decimal("0")
    extra: Dict = field(default_factory=dict)


@dataclass
class MatchResult:
    match_kind: str
    confidence: float
    rationale: str
    document: Optional[AssembledDocument] = None
    ledger_entry: Optional[LedgerEntry] = None

    @property
    def is_two_sided(self) -> bool:
        return self.match_kind in TWO_SIDED_KINDS


@dataclass
class DroppedRow:
    source_row_id: Optional[str]
    source_file_id: Optional[str]
    reason: str


@dataclass
class ReconciliationReport:
    documents: List[AssembledDocument]
    matched: List[MatchResult]
    ledger_only: List[MatchResult]
    document_only: List[MatchResult]
    passthrough: List[LedgerEntry]
    dropped: List[DroppedRow]
    summary: Dict
    alias_suggestions: List[Dict] = field(default_factory=list)
