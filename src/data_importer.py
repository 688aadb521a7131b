import csv
from pathlib import Path
from typing import Dict, List, Optional

from recon_models import LedgerEntry
from value_normalizers import to_decimal


class ReconcileDataImporter:
    """OCRページCSVと元帳CSVを読み込むクラス"""

    def __init__(self, cfg: Dict, encoding: str = "utf-8-sig"):
        self.cfg = cfg
        self.encoding = encoding

    def read_rows(self, path) -> List[Dict]:
        """CSVを辞書のリストとして読む（BOM付きUTF-8も可）"""
        file_path = Path(path)
        with open(file_path, "r", encoding=self.encoding, newline="") as f:
            reader = csv.DictReader(f)
            rows = []
            for row in reader:
                # 空行は無視
                if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
                    continue
                rows.append({(k or "").strip(): (v if v is not None else "") for k, v in row.items()})
        return rows

    def import_page_rows(self, path) -> List[Dict]:
        return self.read_rows(path)

    def import_ledger(self, path) -> List[LedgerEntry]:
        """元帳CSVを LedgerEntry のリストにする"""
        columns = self.cfg["ledger_columns"]
        return [parse_ledger_row(row, columns, n) for n, row in enumerate(self.read_rows(path), start=1)]


def _pick(row: Dict, names) -> Optional[str]:
    if isinstance(names, str):
        names = [names]
    for name in names:
        value = row.get(name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def parse_ledger_row(row: Dict, columns: Dict, number: int) -> LedgerEntry:
    flags = []
    amounts = {}
    for name in ("debit_amount", "credit_amount"):
        value, ok = to_decimal(_pick(row, columns.get(name, [])))
        if not ok:
            flags.append(name)
        amounts[name] = value

    used = set()
    for names in columns.values():
        used.update([names] if isinstance(names, str) else names)
    extra = {k: v for k, v in row.items() if k not in used}
    if flags:
        extra["coercion_flags"] = flags

    return LedgerEntry(
        entry_id=f"ledger-{number}",
        entry_kind=_pick(row, columns.get("entry_kind", [])) or "",
        document_number=_pick(row, columns.get("document_number", [])),
        party_name=_pick(row, columns.get("party_name", [])),
        party_identifier=_pick(row, columns.get("party_identifier", [])),
        entry_date=_pick(row, columns.get("entry_date", [])),
        debit_amount=amounts["debit_amount"],
        credit_amount=amounts["credit_amount"],
        extra=extra,
    )
