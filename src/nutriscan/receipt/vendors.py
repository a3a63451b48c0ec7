from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from ..models import ParsedReceipt
from . import aldi, generic, lidl, oliver_frank, rewe

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VendorParser:
    id: str
    signatures: tuple[str, ...]
    parse: Callable[[str], ParsedReceipt]

    def matches(self, text: str) -> bool:
        lower = text.casefold()
        return any(signature in lower for signature in self.signatures)


# Checked in this order; the first signature hit wins.
VENDOR_PARSERS: tuple[VendorParser, ...] = (
    VendorParser(aldi.VENDOR, aldi.SIGNATURES, aldi.parse),
    VendorParser(lidl.VENDOR, lidl.SIGNATURES, lidl.parse),
    VendorParser(oliver_frank.VENDOR, oliver_frank.SIGNATURES, oliver_frank.parse),
    VendorParser(rewe.VENDOR, rewe.SIGNATURES, rewe.parse),
)
GENERIC_PARSER = VendorParser(generic.VENDOR, (), generic.parse)


def detect_vendor(text: str) -> VendorParser:
    for parser in VENDOR_PARSERS:
        if parser.matches(text):
            return parser
    return GENERIC_PARSER


def parse_receipt_text(text: str) -> ParsedReceipt:
    """Run the vendor grammar matching ``text``.

    Raises ``ReceiptValidationError`` when no item can be recovered.
    """
    parser = detect_vendor(text)
    logger.debug("Selected %s parser", parser.id)
    return parser.parse(text)
