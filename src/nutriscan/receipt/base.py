from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from functools import lru_cache

from ..models import ParsedReceipt, ReceiptItem, TaxBucket
from .errors import ReceiptValidationError
from .prices import parse_number, parse_price
from .reconciliation import find_explicit_total, items_total, reconcile

logger = logging.getLogger(__name__)

DEFAULT_RATE_CLASSES = {"A": 19.0, "B": 7.0}

_EDGE_NOISE = "|>©_ \t"
_PRICE = r"-?\d+(?:\.\d{3})*[.,]\d{2}-?"
_ITEM = re.compile(
    rf"^(?P<name>.*?\S)\s+(?P<price>{_PRICE})\s*(?:EUR|€)?\s*(?P<tax>[A-D])?\s*\*?\s*$"
)
_TRAILING_PRICE = re.compile(rf"^\s*(?P<price>{_PRICE})\s*(?:EUR|€)?\s*(?P<tax>[A-D])?\s*\*?\s*$")
_WEIGHT = re.compile(
    r"(?P<qty>\d+[.,]\d+)\s*kg\s*[xX*]\s*(?P<unit_price>\d+[.,]\d{2})\s*(?:EUR|€)?\s*/\s*kg",
    re.IGNORECASE,
)
_PIECES = re.compile(
    r"^(?P<qty>\d{1,3})\s*(?:Stk\.?|St\.?)?\s*[xX*]\s*(?P<unit_price>\d+[.,]\d{2})",
    re.IGNORECASE,
)
_TAX_LINE = re.compile(
    r"(?:^|\s)(?:(?P<cls>[A-D])\s*=?\s*)?(?P<rate>\d{1,2}(?:[.,]\d{1,2})?)\s*%\s+"
    r"(?P<a>\d+[.,]\d{2})\s+(?P<b>\d+[.,]\d{2})\s+(?P<c>\d+[.,]\d{2})"
)


@dataclass(frozen=True, slots=True)
class ItemLine:
    name: str
    price: float
    tax_class: str | None
    quantity: float | None = None
    unit: str | None = None
    unit_price: float | None = None


@dataclass(frozen=True, slots=True)
class QuantityLine:
    quantity: float
    unit: str | None
    unit_price: float
    price: float | None = None
    tax_class: str | None = None


def split_lines(text: str) -> list[str]:
    lines = [ln.strip(_EDGE_NOISE) for ln in text.splitlines()]
    return [ln for ln in lines if ln]


@lru_cache(maxsize=64)
def _marker_pattern(markers: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(marker) for marker in markers)
    return re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)", re.IGNORECASE)


def contains_any(line: str, markers: tuple[str, ...]) -> bool:
    """True when one of ``markers`` occurs as a whole word (``SUMMER`` is not ``summe``)."""
    return _marker_pattern(markers).search(line) is not None


def _is_credit(raw_price: str) -> bool:
    return raw_price.startswith("-") or raw_price.endswith("-")


def match_item_line(line: str, *, require_tax_class: bool = False) -> ItemLine | None:
    """Match ``<name> <price> [tax class]``, including an embedded weight clause."""
    m = _ITEM.match(line)
    if not m:
        return None
    tax_class = m.group("tax")
    if require_tax_class and not tax_class:
        return None

    price = None if _is_credit(m.group("price")) else parse_price(m.group("price"))
    if price is None:
        logger.debug("Dropping line without usable price: %r", line)
        return None

    name = m.group("name").strip()
    quantity = unit_price = None
    unit = None
    weight = _WEIGHT.search(name)
    if weight:
        quantity = parse_number(weight.group("qty"))
        unit_price = parse_number(weight.group("unit_price"))
        unit = "kg"
        name = name[: weight.start()].strip()

    name = name.strip(" .:-*")
    if not any(ch.isalpha() for ch in name):
        logger.debug("Dropping line without item name: %r", line)
        return None

    return ItemLine(
        name=name,
        price=price,
        tax_class=tax_class,
        quantity=quantity,
        unit=unit,
        unit_price=unit_price,
    )


def match_quantity_line(line: str) -> QuantityLine | None:
    """Match ``0,486 kg x 3,98 EUR/kg`` or ``2 Stk x 0,99``, optionally followed by a price."""
    stripped = line.strip()
    unit = None
    m = _WEIGHT.match(stripped)
    if m:
        unit = "kg"
    else:
        m = _PIECES.match(stripped)
    if not m:
        return None

    quantity = parse_number(m.group("qty"))
    unit_price = parse_number(m.group("unit_price"))
    if not quantity or not unit_price:
        return None

    rest = stripped[m.end():].strip()
    if not rest:
        return QuantityLine(quantity=quantity, unit=unit, unit_price=unit_price)
    trailing = _TRAILING_PRICE.match(rest)
    if not trailing or _is_credit(trailing.group("price")):
        return None
    return QuantityLine(
        quantity=quantity,
        unit=unit,
        unit_price=unit_price,
        price=parse_price(trailing.group("price")),
        tax_class=trailing.group("tax"),
    )


def match_tax_line(line: str, rate_classes: dict[str, float]) -> TaxBucket | None:
    """Match a rate marker followed by three amounts.

    Vendors print net/tax/gross in different orders, so the amounts are
    assigned by magnitude: tax is the smallest and gross the largest.
    """
    m = _TAX_LINE.search(line)
    if not m:
        return None
    rate = parse_number(m.group("rate"))
    if rate is None:
        return None

    rate_class = m.group("cls")
    if not rate_class:
        rate_class = next(
            (cls for cls, known in rate_classes.items() if abs(known - rate) < 0.05),
            f"{rate:g}%",
        )

    tax, net, gross = sorted(parse_number(m.group(g)) or 0.0 for g in ("a", "b", "c"))
    return TaxBucket(rate_class=rate_class, rate=rate, net=net, tax=tax, gross=gross)


@dataclass(slots=True)
class ReceiptDraft:
    """Mutable accumulator a vendor grammar fills while walking the lines."""

    vendor: str
    store_name: str
    store_address: str = ""
    purchase_date: date | None = None
    declared_total: float | None = None
    rate_classes: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_RATE_CLASSES))
    items: list[ReceiptItem] = field(default_factory=list)
    tax_details: dict[str, TaxBucket] = field(default_factory=dict)
    summary_lines: list[str] = field(default_factory=list)
    pending_name: str | None = None

    def consume_item_line(self, line: str, *, require_tax_class: bool = False) -> bool:
        """Feed one line seen in item mode; returns True if it produced or enriched an item."""
        quantity = match_quantity_line(line)
        if quantity is not None:
            pending, self.pending_name = self.pending_name, None
            if quantity.price is not None and pending:
                self.add_item(
                    ItemLine(
                        name=pending,
                        price=quantity.price,
                        tax_class=quantity.tax_class,
                        quantity=quantity.quantity,
                        unit=quantity.unit,
                        unit_price=quantity.unit_price,
                    )
                )
                return True
            return self.attach_quantity(quantity)

        item = match_item_line(line, require_tax_class=require_tax_class)
        if item is not None:
            self.add_item(item)
            self.pending_name = None
            return True

        if any(ch.isalpha() for ch in line) and not any(ch.isdigit() for ch in line):
            self.pending_name = line.strip(" .:-*")
        else:
            self.pending_name = None
        return False

    def add_item(self, line: ItemLine) -> None:
        self.items.append(
            ReceiptItem(
                name=line.name,
                total_price=line.price,
                quantity=line.quantity,
                unit=line.unit,
                unit_price=line.unit_price,
                tax_rate=line.tax_class,
            )
        )

    def attach_quantity(self, quantity: QuantityLine) -> bool:
        if not self.items or self.items[-1].quantity is not None:
            return False
        self.items[-1] = self.items[-1].model_copy(
            update={
                "quantity": quantity.quantity,
                "unit": quantity.unit,
                "unit_price": quantity.unit_price,
            }
        )
        return True

    def add_tax_bucket(self, bucket: TaxBucket) -> None:
        self.tax_details[bucket.rate_class] = bucket

    def finish(self) -> ParsedReceipt:
        if not self.items:
            raise ReceiptValidationError(
                f"No valid items found in {self.vendor} receipt", vendor=self.vendor
            )

        declared = self.declared_total
        if declared is None and self.summary_lines:
            declared = find_explicit_total(self.summary_lines, items_total(self.items))
        result = reconcile(self.items, declared)

        logger.debug(
            "Parsed %s receipt: %d items, total %.2f (%s)",
            self.vendor,
            len(self.items),
            result.total,
            result.method,
        )
        return ParsedReceipt(
            vendor=self.vendor,
            store_name=self.store_name,
            store_address=self.store_address,
            purchase_date=self.purchase_date,
            items=list(self.items),
            total_amount=result.total,
            total_method=result.method,
            tax_details=self._complete_tax_details(),
            discrepancy_detected=result.discrepancy_detected,
        )

    def _complete_tax_details(self) -> dict[str, TaxBucket]:
        # Buckets missing from the print-out are derived from the item gross sums.
        details = dict(self.tax_details)
        for rate_class, rate in self.rate_classes.items():
            if rate_class in details:
                continue
            gross = round(
                sum(item.total_price for item in self.items if item.tax_rate == rate_class), 2
            )
            if gross <= 0:
                continue
            net = round(gross / (1 + rate / 100), 2)
            details[rate_class] = TaxBucket(
                rate_class=rate_class, rate=rate, net=net, tax=round(gross - net, 2), gross=gross
            )
        return dict(sorted(details.items()))
