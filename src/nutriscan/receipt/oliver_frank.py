from __future__ import annotations

import re

from ..models import ParsedReceipt
from .base import ReceiptDraft, contains_any, split_lines
from .prices import parse_price, parse_receipt_date

VENDOR = "oliver_frank"
SIGNATURES = ("oliver frank",)

_SUMMARY_MARKERS = ("summe", "gesamt", "gesamtsumme")
_HEADER = re.compile(r"(?:^|\s)(?:EUR|€)$", re.IGNORECASE)
_AMOUNT = re.compile(r"\d+[.,]\d{2}")


def parse(text: str) -> ParsedReceipt:
    lines = split_lines(text)
    body = [ln for ln in lines if "oliver frank" not in ln.casefold()]

    # The two lines under the shop name carry the address.
    draft = ReceiptDraft(
        vendor=VENDOR,
        store_name="Oliver Frank",
        store_address=", ".join(body[:2]),
        purchase_date=parse_receipt_date(text),
        rate_classes={},
    )

    header = next((i for i, ln in enumerate(body) if _HEADER.search(ln) and not _AMOUNT.search(ln)), None)
    start = header + 1 if header is not None else 2

    for line in body[start:]:
        if contains_any(line, _SUMMARY_MARKERS):
            draft.summary_lines.append(line)
            amounts = _AMOUNT.findall(line)
            if amounts and draft.declared_total is None:
                draft.declared_total = parse_price(amounts[-1])
            continue
        if draft.summary_lines:
            draft.summary_lines.append(line)
            continue
        draft.consume_item_line(line)

    return draft.finish()
