#!/usr/bin/env python
"""
OCRページ・元帳突合のメイン処理
正規化 -> 文書組み立て -> 項目統合 -> 元帳突合 -> 集計 の順に実行する。
"""

from typing import Dict, Iterable, List, Optional

from config_loader import merge_config
from document_assembler import assemble_pages
from field_reconciler import reconcile_groups
from ledger_matcher import MatcherSettings, match_documents
from match_aggregator import build_report
from ocr_payload import normalize_page_rows
from page_classifier import ClassifierSettings
from party_aliases import PartyAliasRegistry
from recon_models import DroppedRow, LedgerEntry, PageRecord, ReconciliationReport


def reconcile_records(
    pages: Iterable[PageRecord],
    ledger_entries: Iterable[LedgerEntry],
    cfg: Optional[Dict] = None,
    dropped: Optional[List[DroppedRow]] = None,
    total_rows: Optional[int] = None,
    verbose: bool = False,
) -> ReconciliationReport:
    """正規化済みの PageRecord と LedgerEntry から突合レポートを作る"""
    cfg = merge_config(cfg or {})
    pages = list(pages)
    ledger_entries = list(ledger_entries)
    dropped = list(dropped or [])

    aliases = PartyAliasRegistry.from_config(cfg)
    classifier_settings = ClassifierSettings.from_config(cfg, aliases=aliases)
    matcher_settings = MatcherSettings.from_config(cfg, aliases=aliases)

    groups = assemble_pages(pages, classifier_settings)
    documents = reconcile_groups(groups, classifier_settings)
    if verbose:
        multi = sum(1 for d in documents if d.was_multi_page)
        print(f"📄 文書組み立て: {len(pages)}ページ -> {len(documents)}文書（複数ページ {multi}件）")

    outcome = match_documents(documents, ledger_entries, matcher_settings)
    if verbose:
        print(
            f"🔗 突合: マッチ {len(outcome.matched)}件 / 元帳のみ {len(outcome.ledger_only)}件 / "
            f"文書のみ {len(outcome.document_only)}件 / 対象外 {len(outcome.passthrough)}件"
        )

    if total_rows is None:
        total_rows = len(pages) + len(dropped)
    return build_report(total_rows, dropped, documents, outcome, aliases, cfg.get("suggestions"))


def run_reconciliation(
    page_rows: Iterable[Dict],
    ledger_entries: Iterable[LedgerEntry],
    cfg: Optional[Dict] = None,
    verbose: bool = True,
) -> ReconciliationReport:
    """CSVから読んだページ行をそのまま受け取って突合まで行う"""
    cfg = merge_config(cfg or {})
    page_rows = list(page_rows)

    pages, dropped = normalize_page_rows(page_rows, cfg)
    if verbose:
        print(f"🧾 OCRページ読み込み: {len(page_rows)}行（有効 {len(pages)}件）")
        if dropped:
            print(f"  ⚠️ OCRを解析できなかった行: {len(dropped)}件")
        flagged = sum(1 for p in pages if p.coercion_flags)
        if flagged:
            print(f"  ⚠️ 値を補正したページ: {flagged}件")

    report = reconcile_records(pages, ledger_entries, cfg, dropped=dropped, total_rows=len(page_rows), verbose=verbose)
    if verbose:
        print_summary(report)
    return report


def print_summary(report: ReconciliationReport):
    s = report.summary
    print("\n" + "=" * 50)
    print("📊 突合結果サマリー")
    print("=" * 50)
    print(f"  入力ページ: {s['total_pages_in']}（除外 {s['pages_dropped']}）")
    print(f"  組み立て文書: {s['documents_assembled']}（複数ページ {s['multi_page_documents']}）")
    print(f"  マッチ: {s['matched_pairs']}")
    for kind, count in s["matched_by_kind"].items():
        print(f"    - {kind}: {count}")
    print(f"  元帳のみ: {s['unmatched_ledger_invoices']}")
    print(f"  文書のみ: {s['unmatched_documents']}")
    if s["match_rate_ledger"]:
        print(f"  元帳マッチ率: {s['match_rate_ledger']}")
    if report.alias_suggestions:
        print(f"\n💡 別名登録の候補: {len(report.alias_suggestions)}件")
        for suggestion in report.alias_suggestions[:5]:
            print(f"    {suggestion['alias']} -> {suggestion['canonical']} ({suggestion['score']})")
