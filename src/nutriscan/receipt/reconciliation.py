from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from ..models import ReceiptItem, TotalMethod
from .errors import ReceiptValidationError
from .prices import parse_price

logger = logging.getLogger(__name__)

TOLERANCE = 0.01

# Ordered from most to least specific; OCR regularly mangles "Gesamt".
_TOTAL_PATTERNS = [
    re.compile(r"Gesam?[mn]?t\w*\s*(?:EUR|€)?\s*(\d+[.,]\d+)", re.IGNORECASE),
    re.compile(r"Total\w*\s*(?:EUR|€)?\s*(\d+[.,]\d+)", re.IGNORECASE),
    re.compile(r"Summ?[ae]\w*\s*(?:EUR|€)?\s*(\d+[.,]\d+)", re.IGNORECASE),
    re.compile(r"(?:VISA|EC|Geg\.)\s*(?:EUR|€)?\s*(\d+[.,]\d+)", re.IGNORECASE),
]
_TAX_SUMMARY = re.compile(r"steuer|tax|mwst|gesamtbetrag", re.IGNORECASE)
_AMOUNT = re.compile(r"\d+[.,]\d+")
_OCR_NOISE = re.compile(r"[|>©_]")


@dataclass(frozen=True, slots=True)
class Reconciliation:
    total: float
    method: TotalMethod
    items_total: float
    difference: float
    discrepancy_detected: bool


def items_total(items: Sequence[ReceiptItem]) -> float:
    return round(sum(item.total_price for item in items), 2)


def has_discrepancy(declared_total: float, calculated_total: float) -> bool:
    return round(abs(declared_total - calculated_total), 2) > TOLERANCE


def reconcile(items: Sequence[ReceiptItem], declared_total: float | None) -> Reconciliation:
    calculated = items_total(items)

    if declared_total is None or declared_total <= 0:
        if not items:
            raise ReceiptValidationError("Extracted data contains no valid items and no total")
        logger.debug("No explicit total found, using calculated total %.2f", calculated)
        return Reconciliation(
            total=calculated,
            method="calculated",
            items_total=calculated,
            difference=0.0,
            discrepancy_detected=False,
        )

    difference = round(abs(declared_total - calculated), 2)
    discrepancy = has_discrepancy(declared_total, calculated)
    if discrepancy:
        logger.info(
            "Total discrepancy: declared %.2f, items %.2f (difference %.2f)",
            declared_total,
            calculated,
            difference,
        )
    return Reconciliation(
        total=round(declared_total, 2),
        method="explicit",
        items_total=calculated,
        difference=difference,
        discrepancy_detected=discrepancy,
    )


def find_explicit_total(lines: Sequence[str], calculated_total: float) -> float | None:
    """Best-effort search for a declared total when a vendor grammar found none.

    A tax summary line with three or more amounts yields its last amount.
    Keyword candidates more than 50% away from the item sum are ignored.
    """
    for line in lines:
        clean = _OCR_NOISE.sub("", line).strip()

        if _TAX_SUMMARY.search(clean):
            amounts = _AMOUNT.findall(clean)
            if len(amounts) >= 3:
                total = parse_price(amounts[-1])
                if total is not None:
                    return total

        for pattern in _TOTAL_PATTERNS:
            match = pattern.search(clean)
            if not match:
                continue
            total = parse_price(match.group(1))
            if total is None:
                continue
            if calculated_total == 0 or abs(total - calculated_total) / calculated_total <= 0.5:
                return total
    return None
