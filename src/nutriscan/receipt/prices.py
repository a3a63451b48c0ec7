from __future__ import annotations

import re
from datetime import date

MIN_PRICE = 0.0
MAX_PRICE = 1000.0

_NON_NUMERIC = re.compile(r"[^0-9.,\-]")
_DECIMAL_TAIL = re.compile(r"[.,](\d{1,2})$")
_SEPARATORS = re.compile(r"[.,\-]")

_DATE_PATTERNS = [
    (re.compile(r"TSE-Start:\s*(\d{4})-(\d{2})-(\d{2})"), "ymd"),
    (re.compile(r"\b(\d{2})[./-](\d{2})[./-](\d{4})\b"), "dmy"),
    (re.compile(r"\b(\d{4})[./-](\d{2})[./-](\d{2})\b"), "ymd"),
    (re.compile(r"\b(\d{2})\.(\d{2})\.(\d{2})\b"), "dmy2"),
]


def parse_price(raw: str | None) -> float | None:
    """Parse a locale-formatted price token.

    ``"3,98"`` and ``"3.98"`` both give ``3.98``; ``"1.234,5"`` collapses the
    grouping separator. Values outside ``(0, 1000)`` are divided by 100 once
    (OCR frequently drops the decimal separator) and rejected if still out of
    range. Returns ``None`` for anything that is not a usable price.
    """
    if not raw:
        return None

    cleaned = _NON_NUMERIC.sub("", raw)
    if not any(ch.isdigit() for ch in cleaned):
        return None

    negative = cleaned.startswith("-") or cleaned.endswith("-")
    cleaned = cleaned.strip("-")
    tail = _DECIMAL_TAIL.search(cleaned)
    if tail:
        integer_part = _SEPARATORS.sub("", cleaned[: tail.start()])
        digits = f"{integer_part or '0'}.{tail.group(1)}"
    else:
        digits = _SEPARATORS.sub("", cleaned)

    try:
        value = float(digits)
    except ValueError:
        return None
    if negative:
        value = -value

    if value >= MAX_PRICE:
        value = value / 100
    if MIN_PRICE < value < MAX_PRICE:
        return round(value, 2)
    return None


def parse_number(raw: str | None) -> float | None:
    """Parse a plain decimal such as a weight (``"0,486"``); no range check."""
    if not raw:
        return None
    value = raw.strip().replace(" ", "")
    if "," in value:
        value = value.replace(".", "").replace(",", ".")
    try:
        return float(value)
    except ValueError:
        return None


def parse_receipt_date(text: str) -> date | None:
    for pattern, order in _DATE_PATTERNS:
        for match in pattern.finditer(text):
            a, b, c = (int(g) for g in match.groups())
            if order == "ymd":
                year, month, day = a, b, c
            elif order == "dmy":
                day, month, year = a, b, c
            else:
                day, month, year = a, b, 2000 + c
            try:
                return date(year, month, day)
            except ValueError:
                continue
    return None
