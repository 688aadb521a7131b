#!/usr/bin/env python
"""
取引先名の別名レジストリ
OCR上の表記ゆれ（別名）を元帳の正式名称に寄せる。
別名テーブルはコードに埋め込まず、設定ファイルから読み込む。
"""

import os
from typing import Dict, Iterable, List, Optional

import yaml
from rapidfuzz import process
from rapidfuzz.distance import JaroWinkler


class PartyAliasRegistry:
    """別名 -> 正式名称 の対応を保持するクラス"""

    def __init__(self, aliases: Optional[Dict[str, str]] = None, substrings: Optional[Dict[str, str]] = None):
        self.aliases: Dict[str, str] = {}
        self.substrings: Dict[str, str] = {}
        for alias, canonical in (aliases or {}).items():
            self.add_alias(alias, canonical)
        for fragment, canonical in (substrings or {}).items():
            if fragment and canonical:
                self.substrings[str(fragment).strip().casefold()] = str(canonical).strip()

    @classmethod
    def from_config(cls, cfg: Dict) -> "PartyAliasRegistry":
        registry = cls(cfg.get("party_aliases") or {}, cfg.get("party_alias_substrings") or {})
        alias_file = cfg.get("party_alias_file")
        if alias_file:
            for alias, canonical in load_alias_file(alias_file).items():
                registry.add_alias(alias, canonical)
        return registry

    def add_alias(self, alias: str, canonical: str):
        if not alias or not canonical:
            return
        self.aliases[str(alias).strip().casefold()] = str(canonical).strip()

    def canonical(self, name: Optional[str]) -> str:
        """正式名称を返す。登録がなければ元の表記（前後空白除去）"""
        if not name:
            return ""
        text = str(name).strip()
        folded = text.casefold()
        if folded in self.aliases:
            return self.aliases[folded]
        for fragment, canonical in self.substrings.items():
            if fragment in folded:
                return canonical
        return text

    def key(self, name: Optional[str]) -> str:
        return self.canonical(name).casefold()

    def same_party(self, a: Optional[str], b: Optional[str]) -> bool:
        return self.key(a) == self.key(b)

    def __len__(self):
        return len(self.aliases) + len(self.substrings)


def load_alias_file(path: str) -> Dict[str, str]:
    """別名ファイルを読み込む（YAML/JSONどちらも可）

    形式:
      vendors:
        - name: ESA MANAGEMENT LLC
          aliases: [extended stay america, esa suites]
    もしくは単純な {別名: 正式名称} の辞書
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"別名ファイルが見つかりません: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    mapping: Dict[str, str] = {}
    if isinstance(data, dict) and isinstance(data.get("vendors"), list):
        for vendor in data["vendors"]:
            name = vendor.get("name")
            if not name:
                continue
            mapping[name] = name
            for alias in vendor.get("aliases") or []:
                mapping[alias] = name
    elif isinstance(data, dict):
        mapping.update({str(k): str(v) for k, v in data.items() if v})
    return mapping


def suggest_aliases(
    document_parties: Iterable[str],
    ledger_parties: Iterable[str],
    registry: PartyAliasRegistry,
    min_score: float = 0.85,
    limit: int = 20,
) -> List[Dict]:
    """未マッチ取引先名の別名登録候補を類似度から提案する（マッチ判定には使わない）"""
    ledger_names = sorted({p.strip() for p in ledger_parties if p and p.strip()})
    if not ledger_names:
        return []
    ledger_keys = [n.casefold() for n in ledger_names]
    known = set(ledger_keys)

    suggestions: List[Dict] = []
    seen = set()
    for party in document_parties:
        if not party:
            continue
        query = registry.key(party)
        if not query or query in known or query in seen:
            continue
        seen.add(query)
        best = process.extractOne(query, ledger_keys, scorer=JaroWinkler.normalized_similarity, score_cutoff=min_score)
        if best is None:
            continue
        _, score, idx = best
        suggestions.append({"alias": party.strip(), "canonical": ledger_names[idx], "score": round(float(score), 3)})

    suggestions.sort(key=lambda s: (-s["score"], s["alias"]))
    return suggestions[:limit]
