#!/usr/bin/env python3
"""
複数ページ文書の組み立て
ページ番号順に1回だけ走査し、連続するページを1つの文書グループにまとめる。

判定ルールは MERGE_RULES（結合候補）と SPLIT_RULES（分割優先）の表で宣言し、
evaluate_transition() が表を評価する。結合候補が1つでも成立し、かつ分割ルールが
1つも成立しないときだけ結合する（迷ったら分割側に倒す）。
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from page_classifier import (
    DEFAULT_SETTINGS,
    ClassifierSettings,
    has_document_number,
    has_positive_grand_total,
    is_declared_continuation,
    is_effective_continuation,
    is_folio,
    is_header,
    is_unknown_party,
)
from recon_models import PageGroup, PageRecord
from value_normalizers import normalize_document_number


@dataclass
class AssemblyContext:
    """判定対象ページ・グループ内の直前ページ・グループ先頭ページ"""
    current: PageRecord
    previous: PageRecord
    head: PageRecord
    settings: ClassifierSettings = field(default_factory=lambda: DEFAULT_SETTINGS)

    @property
    def adjacent(self) -> bool:
        return self.current.source_page_index == self.previous.source_page_index + 1

    @property
    def page_gap(self) -> bool:
        return self.current.source_page_index > self.previous.source_page_index + 1

    @property
    def same_party_as_previous(self) -> bool:
        return self.settings.aliases.same_party(self.current.party_name, self.previous.party_name)

    @property
    def same_party_as_head(self) -> bool:
        return self.settings.aliases.same_party(self.current.party_name, self.head.party_name)

    @property
    def unknown_party(self) -> bool:
        return is_unknown_party(self.current, self.settings)

    @property
    def declared_continuation(self) -> bool:
        return is_declared_continuation(self.current)

    @property
    def effective_continuation(self) -> bool:
        return is_effective_continuation(self.current, self.settings)

    @property
    def folio(self) -> bool:
        return is_folio(self.current, self.settings)

    @property
    def current_is_header(self) -> bool:
        return is_header(self.current, self.settings)

    @property
    def head_is_header(self) -> bool:
        return is_header(self.head, self.settings)

    @property
    def shares_business_code(self) -> bool:
        return _shares_business_code(self.current, self.head)

    @property
    def lacks_header_fields(self) -> bool:
        return not self.current.party_identifier and not self.current.business_code

    def document_number_matches_previous(self) -> bool:
        if not has_document_number(self.current, self.settings):
            return False
        return self._doc_key(self.current) == self._doc_key(self.previous)

    def document_number_conflicts_with_head(self) -> bool:
        if not has_document_number(self.current, self.settings) or not has_document_number(self.head, self.settings):
            return False
        return self._doc_key(self.current) != self._doc_key(self.head)

    def _doc_key(self, p: PageRecord) -> str:
        return normalize_document_number(p.document_number, self.settings.document_number_placeholders)


def _shares_business_code(a: PageRecord, b: PageRecord) -> bool:
    return bool(a.business_code) and bool(b.business_code) and a.business_code.strip() == b.business_code.strip()


@dataclass(frozen=True)
class AssemblyRule:
    name: str
    description: str
    predicate: Callable[[AssemblyContext], bool]

    def applies(self, ctx: AssemblyContext) -> bool:
        return bool(self.predicate(ctx))


MERGE_RULES: List[AssemblyRule] = [
    AssemblyRule(
        "explicit-continuation",
        "継続フラグあり + 連番 + 直前ページと同一取引先",
        lambda c: c.declared_continuation and c.adjacent and c.same_party_as_previous,
    ),
    AssemblyRule(
        "blank-middle-page",
        "連番 + 直前ページと同一取引先 + 合計なし + 金額0（中間ページ）",
        lambda c: (
            c.adjacent
            and c.same_party_as_previous
            and not c.current.has_grand_total
            and c.current.total_amount == 0
        ),
    ),
    AssemblyRule(
        "same-document-number",
        "直前ページと同じ文書番号 + 同一取引先",
        lambda c: c.document_number_matches_previous() and c.same_party_as_previous,
    ),
    AssemblyRule(
        "continuation-without-header-fields",
        "実質継続ページ + 取引先ID・部門コードなし + 連番 + (先頭と同一取引先 or 取引先不明)",
        lambda c: (
            c.effective_continuation
            and c.lacks_header_fields
            and c.adjacent
            and (c.same_party_as_head or c.unknown_party)
        ),
    ),
    AssemblyRule(
        "continuation-after-header",
        "実質継続ページ + 連番 + 先頭と同一取引先 + 先頭がヘッダーページ",
        lambda c: c.effective_continuation and c.adjacent and c.same_party_as_head and c.head_is_header,
    ),
    AssemblyRule(
        "folio-after-header",
        "フォリオ + 連番 + 先頭と同一取引先 + 先頭がヘッダーページ + 自身の取引先IDなし",
        lambda c: (
            c.folio
            and c.adjacent
            and c.same_party_as_head
            and c.head_is_header
            and not c.current.party_identifier
        ),
    ),
    AssemblyRule(
        "folio-shared-business-code",
        "フォリオ + 連番 + 先頭と同じ部門コード + 自身の取引先IDなし + 同一取引先",
        lambda c: (
            c.folio
            and c.adjacent
            and c.shares_business_code
            and not c.current.party_identifier
            and c.same_party_as_head
        ),
    ),
    AssemblyRule(
        "unknown-party-continuation",
        "実質継続ページ + 連番 + 取引先不明 + 先頭と同じ文書種別 + ヘッダー項目なし",
        lambda c: (
            c.effective_continuation
            and c.adjacent
            and c.unknown_party
            and c.current.document_type == c.head.document_type
            and c.lacks_header_fields
        ),
    ),
]

SPLIT_RULES: List[AssemblyRule] = [
    AssemblyRule(
        "new-header",
        "ヘッダーページは常に新しい文書を開始する",
        lambda c: c.current_is_header and not c.declared_continuation,
    ),
    AssemblyRule(
        "document-number-conflict",
        "先頭と文書番号が異なる（継続ページ・フォリオは除く）",
        lambda c: (
            not c.declared_continuation
            and not c.effective_continuation
            and not c.folio
            and c.document_number_conflicts_with_head()
        ),
    ),
    AssemblyRule(
        "double-grand-total",
        "直前ページと両方に正の総合計がある（継続ページ・同部門コードのフォリオは除く）",
        lambda c: (
            not c.declared_continuation
            and not c.effective_continuation
            and has_positive_grand_total(c.current)
            and has_positive_grand_total(c.previous)
            and not (c.folio and c.shares_business_code)
        ),
    ),
    AssemblyRule(
        "party-change",
        "先頭と取引先が異なる（取引先不明のページは除く）",
        lambda c: not c.same_party_as_head and not c.unknown_party,
    ),
    AssemblyRule(
        "page-gap",
        "ページ番号が飛んでいる",
        lambda c: c.page_gap,
    ),
]


@dataclass
class TransitionDecision:
    merge: bool
    candidates: List[str] = field(default_factory=list)
    overrides: List[str] = field(default_factory=list)


def evaluate_transition(
    ctx: AssemblyContext,
    merge_rules: Iterable[AssemblyRule] = MERGE_RULES,
    split_rules: Iterable[AssemblyRule] = SPLIT_RULES,
) -> TransitionDecision:
    candidates = [r.name for r in merge_rules if r.applies(ctx)]
    if not candidates:
        return TransitionDecision(merge=False)
    overrides = [r.name for r in split_rules if r.applies(ctx)]
    return TransitionDecision(merge=not overrides, candidates=candidates, overrides=overrides)


def closes_after_append(page: PageRecord, settings: ClassifierSettings = DEFAULT_SETTINGS) -> bool:
    """総合計ページを追加したらグループを閉じる候補になる"""
    return has_positive_grand_total(page) and not is_effective_continuation(page, settings)


def holds_open(
    head: PageRecord,
    current: PageRecord,
    next_page: Optional[PageRecord],
    settings: ClassifierSettings = DEFAULT_SETTINGS,
) -> bool:
    """1ページ先読み: 次ページが同じ文書の継続・フォリオならまだ閉じない"""
    if next_page is None:
        return False
    if next_page.source_page_index != current.source_page_index + 1:
        return False
    if not settings.aliases.same_party(next_page.party_name, head.party_name):
        return False
    if is_effective_continuation(next_page, settings):
        return True
    return (
        is_folio(next_page, settings)
        and _shares_business_code(next_page, head)
        and not is_header(next_page, settings)
        and not next_page.party_identifier
    )


def assemble_pages(pages: Iterable[PageRecord], settings: ClassifierSettings = DEFAULT_SETTINGS) -> List[PageGroup]:
    """ページ列を文書グループに分割する。

    入力はページ番号で安定ソートしてから処理する（順序依存のアルゴリズム）。
    戻り値のグループは入力ページをちょうど1回ずつ含む。
    """
    ordered = sorted(pages, key=lambda p: p.source_page_index)
    groups: List[PageGroup] = []
    current: Optional[PageGroup] = None

    for i, page in enumerate(ordered):
        if current is None:
            current = PageGroup(pages=[page])
            continue

        ctx = AssemblyContext(current=page, previous=current.last, head=current.head, settings=settings)
        decision = evaluate_transition(ctx)

        if not decision.merge:
            groups.append(current)
            current = PageGroup(pages=[page])
            continue

        current.pages.append(page)
        current.signals.append(f"page {page.source_page_index}: {', '.join(decision.candidates)}")

        if closes_after_append(page, settings):
            next_page = ordered[i + 1] if i + 1 < len(ordered) else None
            if not holds_open(current.head, page, next_page, settings):
                groups.append(current)
                current = None

    if current is not None:
        groups.append(current)
    return groups
