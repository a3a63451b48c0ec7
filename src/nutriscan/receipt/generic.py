from __future__ import annotations

import logging
import re

from ..models import UNKNOWN_STORE, ParsedReceipt
from .base import ReceiptDraft, contains_any, match_tax_line, split_lines
from .prices import parse_price, parse_receipt_date

logger = logging.getLogger(__name__)

VENDOR = "generic"

_SUMMARY_MARKERS = ("summe", "gesamt", "gesamtsumme", "total", "zu zahlen")
_AMOUNT = re.compile(r"\d+[.,]\d{2}")
_WORD = re.compile(r"[^\W\d_]+")

# Payment, header and footer vocabulary that never names a product.
LINE_NOISE_WORDS = frozenset(
    {
        "beleg",
        "datum",
        "ec",
        "filiale",
        "kasse",
        "karte",
        "kartenzahlung",
        "kunden",
        "mwst",
        "nr",
        "quittung",
        "rechnung",
        "rückgeld",
        "steuer",
        "uhrzeit",
        "ust",
        "visa",
        "wechselgeld",
        "zahlung",
    }
)
# Only for model output, which repeats "Bar" and "Bon" payment lines as items.
NOISE_WORDS = LINE_NOISE_WORDS | {"bar", "bon"}


def is_noise_name(name: str, vocabulary: frozenset[str] = NOISE_WORDS) -> bool:
    words = {w.casefold() for w in _WORD.findall(name)}
    return bool(words & vocabulary)


def parse(text: str) -> ParsedReceipt:
    lines = split_lines(text)
    draft = ReceiptDraft(
        vendor=VENDOR,
        store_name=UNKNOWN_STORE,
        purchase_date=parse_receipt_date(text),
    )

    in_summary = False
    for line in lines:
        if not in_summary and contains_any(line, _SUMMARY_MARKERS):
            in_summary = True

        if not in_summary:
            if match_tax_line(line, draft.rate_classes) is not None or is_noise_name(line, LINE_NOISE_WORDS):
                continue
            draft.consume_item_line(line)
            continue

        draft.summary_lines.append(line)
        bucket = match_tax_line(line, draft.rate_classes)
        if bucket is not None:
            draft.add_tax_bucket(bucket)
            continue
        if draft.declared_total is None and contains_any(line, _SUMMARY_MARKERS):
            amounts = _AMOUNT.findall(line)
            if amounts:
                draft.declared_total = parse_price(amounts[-1])

    receipt = draft.finish()
    logger.info("Store not recognised, %d items parsed with the generic grammar", len(receipt.items))
    return receipt
