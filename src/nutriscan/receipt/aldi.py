from __future__ import annotations

import logging
import re

from ..models import UNKNOWN_STORE, ParsedReceipt, TaxBucket
from .base import ReceiptDraft, contains_any, match_tax_line, split_lines
from .prices import parse_price, parse_receipt_date

logger = logging.getLogger(__name__)

VENDOR = "aldi"
SIGNATURES = ("aldi",)

_SUMMARY_MARKERS = ("summe", "zu zahlen")
_TOTAL_MARKERS = ("summe", "zu zahlen", "betrag", "gesamtbetrag", "kartenbetrag")
_STREET = re.compile(r"stra(?:ß|ss|b)e|str\.", re.IGNORECASE)
_POSTCODE = re.compile(r"^\d{5}\s+\S")
_AMOUNT = re.compile(r"\d+[.,]\d{2}")
_SINGLE_TAX = re.compile(r"(?P<rate>\d{1,2})(?:[.,]\d)?\s*%\s+(?P<tax>\d+[.,]\d{2})\s*(?:EUR|€)?\s*$")


def _store_name(text: str) -> str:
    lower = text.casefold()
    if "aldi süd" in lower or "aldi sued" in lower or "aldi sud" in lower:
        return "ALDI Süd"
    if "aldi nord" in lower:
        return "ALDI Nord"
    logger.warning("ALDI receipt without regional branding, store name needs confirmation")
    return UNKNOWN_STORE


def parse(text: str) -> ParsedReceipt:
    lines = split_lines(text)
    draft = ReceiptDraft(
        vendor=VENDOR,
        store_name=_store_name(text),
        purchase_date=parse_receipt_date(text),
    )

    in_summary = False
    previous_was_street = False
    for line in lines:
        if not draft.store_address and _STREET.search(line) and not _AMOUNT.search(line):
            draft.store_address = line
            previous_was_street = True
            continue
        if previous_was_street and _POSTCODE.match(line):
            draft.store_address = f"{draft.store_address}, {line}"
            previous_was_street = False
            continue
        previous_was_street = False

        if "aldi" in line.casefold():
            continue

        if not in_summary and contains_any(line, _SUMMARY_MARKERS):
            in_summary = True

        if not in_summary:
            draft.consume_item_line(line)
            continue

        draft.summary_lines.append(line)

        bucket = match_tax_line(line, draft.rate_classes)
        if bucket is not None:
            draft.add_tax_bucket(bucket)
            continue

        single = _SINGLE_TAX.search(line)
        if single and "mwst" in line.casefold():
            _apply_single_tax(draft, int(single.group("rate")), parse_price(single.group("tax")))
            continue

        if draft.declared_total is None and contains_any(line, _TOTAL_MARKERS):
            amounts = _AMOUNT.findall(line)
            if amounts:
                draft.declared_total = parse_price(amounts[0])

    return draft.finish()


def _apply_single_tax(draft: ReceiptDraft, rate: int, tax: float | None) -> None:
    # Short-form "MwSt 19% 0,32 EUR": only the tax amount is printed.
    if tax is None:
        return
    rate_class = next((cls for cls, known in draft.rate_classes.items() if known == rate), None)
    if rate_class is None:
        return
    gross = round(
        sum(item.total_price for item in draft.items if item.tax_rate in (rate_class, None)), 2
    )
    draft.add_tax_bucket(
        TaxBucket(
            rate_class=rate_class,
            rate=float(rate),
            net=round(gross - tax, 2),
            tax=tax,
            gross=gross,
        )
    )
