"""
値の正規化ユーティリティ
金額・日付・文書番号の表記ゆれを吸収する
"""

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Iterable, List, Optional, Tuple

DEFAULT_DOCUMENT_NUMBER_PLACEHOLDERS = ("n/a", "null", "string", "unknown", "none")
DEFAULT_DATE_PLACEHOLDERS = ("null", "yyyy-mm-dd", "n/a", "none")

_DATE_FORMATS = [
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%Y/%m/%d",
    "%B %d, %Y",
    "%b %d, %Y",
]

_AMOUNT_NOISE = re.compile(r"[$,\s]")


def to_decimal(value) -> Tuple[Decimal, bool]:
    """金額をDecimalに変換する。

    Returns:
        (値, 変換できたか)。変換できない・非有限の場合は (0, False)
    """
    if value is None or value == "":
        return Decimal("0"), True
    if isinstance(value, bool):
        return Decimal("0"), False
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, (int, float)):
        d = Decimal(str(value))
    else:
        text = _AMOUNT_NOISE.sub("", str(value))
        negative = text.startswith("(") and text.endswith(")")
        text = text.strip("()")
        if not text:
            return Decimal("0"), True
        try:
            d = Decimal(text)
        except InvalidOperation:
            return Decimal("0"), False
        if negative:
            d = -d
    if not d.is_finite():
        return Decimal("0"), False
    return d, True


def to_cents(amount: Decimal) -> int:
    """浮動小数点比較を避けるためセント単位の整数にする"""
    with localcontext() as ctx:
        # 桁数の多い誤読値でも quantize が溢れないよう精度を広げる
        ctx.prec = max(ctx.prec, amount.adjusted() + 4)
        return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_amount(amount: Decimal) -> str:
    return f"${amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,}"


def is_blank(value, placeholders: Iterable[str] = ()) -> bool:
    if value is None:
        return True
    text = str(value).strip()
    if not text:
        return True
    return text.lower() in placeholders


def parse_date(value) -> Optional[datetime]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def normalize_date(value) -> str:
    """日付をYYYY-MM-DDに揃える。認識できない場合は元の文字列を返す"""
    if value is None:
        return ""
    parsed = parse_date(value)
    if parsed:
        return parsed.strftime("%Y-%m-%d")
    return str(value).strip()


def normalize_document_number(value, placeholders: Iterable[str] = DEFAULT_DOCUMENT_NUMBER_PLACEHOLDERS) -> str:
    """文書番号の比較キー: 前後空白除去・先頭ゼロ除去・大文字小文字無視"""
    if is_blank(value, placeholders):
        return ""
    return str(value).strip().lstrip("0").casefold()


def unique_in_order(values: Iterable) -> List:
    seen = set()
    out = []
    for v in values:
        if v is None:
            continue
        key = v if isinstance(v, str) else repr(v)
        if key in seen:
            continue
        seen.add(key)
        out.append(v)
    return out
