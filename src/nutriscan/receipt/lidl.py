from __future__ import annotations

import re

from ..models import ParsedReceipt
from .base import ReceiptDraft, contains_any, match_tax_line, split_lines
from .prices import parse_price, parse_receipt_date

VENDOR = "lidl"
SIGNATURES = ("lidl",)

# Lidl prints the reduced rate as class A.
RATE_CLASSES = {"A": 7.0, "B": 19.0}

_SUMMARY_MARKERS = ("zu zahlen", "summe")
_TEL = re.compile(r"^tel\b\.?", re.IGNORECASE)
_HEADER = re.compile(r"^(?:EUR|€)$", re.IGNORECASE)
_AMOUNT = re.compile(r"\d+[.,]\d{2}")


def _address(lines: list[str]) -> tuple[str, int]:
    """Everything above the ``Tel.`` line except the company lines is the address."""
    for index, line in enumerate(lines):
        if _TEL.match(line):
            address = [ln for ln in lines[:index] if "lidl" not in ln.casefold()]
            return ", ".join(address), index + 1
    return "", 0


def parse(text: str) -> ParsedReceipt:
    lines = split_lines(text)
    address, start = _address(lines)

    draft = ReceiptDraft(
        vendor=VENDOR,
        store_name="Lidl",
        store_address=address,
        purchase_date=parse_receipt_date(text),
        rate_classes=dict(RATE_CLASSES),
    )

    in_summary = False
    for line in lines[start:]:
        if _HEADER.match(line):
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

        if draft.declared_total is None and contains_any(line, _SUMMARY_MARKERS):
            amounts = _AMOUNT.findall(line)
            if amounts:
                draft.declared_total = parse_price(amounts[-1])

    return draft.finish()
