#!/usr/bin/env python
"""
OCRページと元帳の突合スクリプト
ページCSV（Number, File ID, OCR）と元帳CSVを読み込み、突合結果をJSONで出力する
"""

import argparse
import json
import os
import sys
from datetime import datetime

from dotenv import load_dotenv

# Add src to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from config_loader import load_reconcile_config
from data_importer import ReconcileDataImporter
from match_aggregator import report_to_dict
from reconcile_pipeline import run_reconciliation


def write_json(path: str, data):
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="OCRページと元帳の突合")
    parser.add_argument("--pages", required=True, help="OCRページCSV")
    parser.add_argument("--ledger", required=True, help="元帳CSV")
    parser.add_argument("--config", help="設定ファイル（省略時は RECONCILE_CONFIG または config/reconcile.yml）")
    parser.add_argument("--output", default="output/reconciliation.json", help="突合結果JSON")
    parser.add_argument("--summary", help="サマリーJSON（省略時は出力しない）")
    parser.add_argument("--env-file", help=".envファイル")
    args = parser.parse_args(argv)

    if args.env_file:
        load_dotenv(args.env_file)
    else:
        load_dotenv()

    print("=== OCRページ・元帳突合を開始 ===")
    print(f"実行時刻: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    missing = [p for p in (args.pages, args.ledger) if not os.path.exists(p)]
    if missing:
        for path in missing:
            print(f"❌ ファイルが見つかりません: {path}")
        return 1

    try:
        cfg = load_reconcile_config(args.config)
        importer = ReconcileDataImporter(cfg)
        page_rows = importer.import_page_rows(args.pages)
        ledger_entries = importer.import_ledger(args.ledger)
        print(f"📥 元帳エントリ: {len(ledger_entries)}件")
        # 別名ファイルはここで読み込まれる
        report = run_reconciliation(page_rows, ledger_entries, cfg)
    except FileNotFoundError as e:
        print(f"❌ {e}")
        return 1

    result = report_to_dict(report)

    write_json(args.output, result)
    print(f"\n💾 突合結果を保存しました: {args.output}")
    if args.summary:
        write_json(args.summary, report.summary)
        print(f"💾 サマリーを保存しました: {args.summary}")

    print("🎉 突合処理完了")
    return 0


if __name__ == "__main__":
    sys.exit(main())
