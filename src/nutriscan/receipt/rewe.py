from __future__ import annotations

import re

from ..models import ParsedReceipt
from .base import ReceiptDraft, contains_any, match_tax_line, split_lines
from .prices import parse_price, parse_receipt_date

VENDOR = "rewe"
SIGNATURES = ("rewe",)

_SUMMARY_MARKERS = ("summe", "geg.", "steuer", "gesamtbetrag", "gesantbetrag")
_SKIP_MARKERS = ("e-bon", "bonus", "payback")
_HEADER = re.compile(r"^(?:EUR|€)$", re.IGNORECASE)
_AMOUNT = re.compile(r"\d+[.,]\d{2}")


def _address(lines: list[str]) -> tuple[str, int]:
    """Lines above the ``UID`` line or the ``EUR`` column header form the address."""
    address: list[str] = []
    for index, line in enumerate(lines):
        if "UID" in line or _HEADER.match(line):
            return ", ".join(address), index + 1
        if "rewe" not in line.casefold():
            address.append(line)
    return "", 0


def parse(text: str) -> ParsedReceipt:
    lines = split_lines(text)
    address, start = _address(lines)

    draft = ReceiptDraft(
        vendor=VENDOR,
        store_name="REWE",
        store_address=address,
        purchase_date=parse_receipt_date(text),
    )

    in_summary = False
    for line in lines[start:]:
        if _HEADER.match(line):
            continue

        if not in_summary and contains_any(line, _SUMMARY_MARKERS):
            in_summary = True

        if not in_summary:
            if contains_any(line, _SKIP_MARKERS):
                continue
            draft.consume_item_line(line, require_tax_class=True)
            continue

        draft.summary_lines.append(line)

        bucket = match_tax_line(line, draft.rate_classes)
        if bucket is not None:
            draft.add_tax_bucket(bucket)
            continue

        lower = line.casefold()
        if contains_any(line, ("summe",)) and draft.declared_total is None:
            amounts = _AMOUNT.findall(line)
            if amounts:
                draft.declared_total = parse_price(amounts[-1])
        elif "gesamtbetrag" in lower or "gesantbetrag" in lower:
            # Gesamtbetrag prints net, tax and gross; gross is the grand total.
            amounts = _AMOUNT.findall(line)
            if len(amounts) >= 3 and draft.declared_total is None:
                draft.declared_total = parse_price(amounts[-1])

    return draft.finish()
