"""
ページ役割の判定（ヘッダー / 継続ページ / フォリオ）
いずれもページ単体の項目だけを見る純粋関数。欠損値は例外にせず偽として扱う。
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from party_aliases import PartyAliasRegistry
from recon_models import PageRecord, ROLE_CONTINUATION
from value_normalizers import (
    DEFAULT_DATE_PLACEHOLDERS,
    DEFAULT_DOCUMENT_NUMBER_PLACEHOLDERS,
    is_blank,
    parse_date,
)


@dataclass
class ClassifierSettings:
    folio_pattern: str = r"^97\d+$"
    document_number_placeholders: Tuple[str, ...] = DEFAULT_DOCUMENT_NUMBER_PLACEHOLDERS
    unknown_party_names: Tuple[str, ...] = ("unknown",)
    date_placeholders: Tuple[str, ...] = DEFAULT_DATE_PLACEHOLDERS
    aliases: PartyAliasRegistry = field(default_factory=PartyAliasRegistry)

    def __post_init__(self):
        self.document_number_placeholders = tuple(p.lower() for p in self.document_number_placeholders)
        self.unknown_party_names = tuple(p.lower() for p in self.unknown_party_names)
        self.date_placeholders = tuple(p.lower() for p in self.date_placeholders)
        self._folio_re = re.compile(self.folio_pattern)

    @classmethod
    def from_config(cls, cfg: Dict, aliases: Optional[PartyAliasRegistry] = None) -> "ClassifierSettings":
        c = cfg.get("classifier", {})
        return cls(
            folio_pattern=c.get("folio_pattern", r"^97\d+$"),
            document_number_placeholders=tuple(c.get("document_number_placeholders") or DEFAULT_DOCUMENT_NUMBER_PLACEHOLDERS),
            unknown_party_names=tuple(c.get("unknown_party_names") or ("unknown",)),
            date_placeholders=tuple(c.get("date_placeholders") or DEFAULT_DATE_PLACEHOLDERS),
            aliases=aliases or PartyAliasRegistry.from_config(cfg),
        )

    def matches_folio(self, text: str) -> bool:
        return bool(self._folio_re.match(text))


DEFAULT_SETTINGS = ClassifierSettings()


def has_entry_date(p: PageRecord, settings: ClassifierSettings = DEFAULT_SETTINGS) -> bool:
    return not is_blank(p.entry_date, settings.date_placeholders)


def has_parseable_entry_date(p: PageRecord, settings: ClassifierSettings = DEFAULT_SETTINGS) -> bool:
    return has_entry_date(p, settings) and parse_date(p.entry_date) is not None


def has_document_number(p: PageRecord, settings: ClassifierSettings = DEFAULT_SETTINGS) -> bool:
    return not is_blank(p.document_number, settings.document_number_placeholders)


def is_unknown_party(p: PageRecord, settings: ClassifierSettings = DEFAULT_SETTINGS) -> bool:
    return is_blank(p.party_name, settings.unknown_party_names)


def same_party(a: PageRecord, b: PageRecord, settings: ClassifierSettings = DEFAULT_SETTINGS) -> bool:
    return settings.aliases.same_party(a.party_name, b.party_name)


def is_declared_continuation(p: PageRecord) -> bool:
    return p.declared_role == ROLE_CONTINUATION


def is_header(p: PageRecord, settings: ClassifierSettings = DEFAULT_SETTINGS) -> bool:
    """取引先ID・部門コード・日付がそろった、継続ページでないページ"""
    return (
        bool(p.party_identifier)
        and bool(p.business_code)
        and has_parseable_entry_date(p, settings)
        and not is_declared_continuation(p)
    )


def is_folio(p: PageRecord, settings: ClassifierSettings = DEFAULT_SETTINGS) -> bool:
    """明細（フォリオ）番号体系の文書番号を持つページ"""
    if not p.document_number:
        return False
    return settings.matches_folio(p.document_number.strip())


def is_effective_continuation(p: PageRecord, settings: ClassifierSettings = DEFAULT_SETTINGS) -> bool:
    """継続フラグがなくても、ヘッダー情報を欠くページは継続ページとみなす"""
    if is_declared_continuation(p):
        return True

    no_date = not has_entry_date(p, settings)
    no_number = not has_document_number(p, settings)
    no_identifier = not p.party_identifier

    if no_date and (no_number or no_identifier):
        return True

    # 取引先不明の請求サマリーページ
    if is_unknown_party(p, settings) and no_date and no_identifier and not p.business_code:
        return True

    return False


def has_positive_grand_total(p: PageRecord) -> bool:
    return p.has_grand_total and p.total_amount > 0


def is_header_like(p: PageRecord) -> bool:
    return bool(p.party_identifier or p.business_code or p.processor_name)
