"""Typed views over what completion providers send back.

Two layers: the HTTP envelope (chat-completion ``choices`` or a bare
``response`` string) and the content inside it (a markdown table, a JSON
object, or something unusable). Unusable content is a normal outcome that
yields no items; only an unknown envelope counts as a provider failure.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from ..models import Category, CategoryMapping, ExtractedItem
from ..receipt.generic import is_noise_name
from ..receipt.prices import parse_price

logger = logging.getLogger(__name__)


class _Message(BaseModel):
    content: str


class _Choice(BaseModel):
    message: _Message


class ChatCompletionEnvelope(BaseModel):
    choices: list[_Choice] = Field(min_length=1)


class RawResponseEnvelope(BaseModel):
    response: str


class MalformedEnvelopeError(ValueError):
    pass


def completion_text(payload: dict) -> str:
    try:
        return ChatCompletionEnvelope.model_validate(payload).choices[0].message.content.strip()
    except ValidationError:
        pass
    try:
        return RawResponseEnvelope.model_validate(payload).response.strip()
    except ValidationError:
        pass
    keys = ", ".join(sorted(payload)) or "<empty>"
    raise MalformedEnvelopeError(f"Unrecognised completion payload (keys: {keys})")


@dataclass(frozen=True, slots=True)
class TableContent:
    items: list[ExtractedItem]
    kind: Literal["table"] = "table"


@dataclass(frozen=True, slots=True)
class JsonContent:
    items: list[ExtractedItem]
    payload: dict = field(default_factory=dict)
    kind: Literal["json"] = "json"


@dataclass(frozen=True, slots=True)
class Unparseable:
    reason: str
    kind: Literal["unparseable"] = "unparseable"

    @property
    def items(self) -> list[ExtractedItem]:
        return []


ParsedContent = TableContent | JsonContent | Unparseable

_FENCE = re.compile(r"^```[\w-]*\s*|\s*```$")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_TABLE_RULE = re.compile(r"^[\s|:\-]+$")
_TRAILING_PRICE = re.compile(r"\s+[\d.,]+\s*€?$")

# City names show up when a model copies the store header into the table.
_LOCATION_WORDS = (
    "berlin",
    "hamburg",
    "münchen",
    "munich",
    "köln",
    "frankfurt",
    "stuttgart",
    "düsseldorf",
    "duesseldorf",
    "dortmund",
    "bremen",
    "dresden",
    "leipzig",
    "hannover",
    "nürnberg",
)
_SUMMARY_WORDS = ("summe", "zwischensumme", "total", "gesamt")


def _clean_name(raw: object) -> str:
    name = _TRAILING_PRICE.sub("", str(raw or "")).strip(" *|")
    lower = name.casefold()
    if any(word in lower for word in _LOCATION_WORDS + _SUMMARY_WORDS) or is_noise_name(name):
        return ""
    return name


def _clean_price(raw: object) -> float | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return parse_price(f"{float(raw):.2f}")
    if isinstance(raw, str):
        return parse_price(raw)
    return None


def validate_item(name: object, price: object, category: object = None, quantity: object = None) -> ExtractedItem | None:
    clean_name = _clean_name(name)
    clean_price = _clean_price(price)
    if not clean_name or clean_price is None:
        logger.debug("Discarding extracted item name=%r price=%r", name, price)
        return None
    qty = quantity if isinstance(quantity, (int, float)) and not isinstance(quantity, bool) and quantity > 0 else None
    return ExtractedItem(
        name=clean_name,
        price=clean_price,
        category=Category.coerce(category) if category else None,
        quantity=float(qty) if qty is not None else None,
    )


def _strip_fences(text: str) -> str:
    return _FENCE.sub("", text.strip()).strip()


def _load_json_object(text: str) -> dict | list | None:
    cleaned = _strip_fences(text)
    candidates = [cleaned]
    embedded = _JSON_OBJECT.search(cleaned)
    if embedded:
        candidates.append(embedded.group(0))
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, (dict, list)):
            return data
    return None


def _json_items(data: dict | list) -> list[dict] | None:
    if isinstance(data, list):
        return [d for d in data if isinstance(d, dict)]
    items = data.get("items")
    if isinstance(items, list):
        return [d for d in items if isinstance(d, dict)]
    return None


def _table_rows(text: str) -> tuple[list[str], list[list[str]]] | None:
    rows = [ln.strip() for ln in text.splitlines() if "|" in ln and not _TABLE_RULE.match(ln)]
    if not rows:
        return None
    split = [[cell.strip() for cell in row.strip("|").split("|")] for row in rows]
    header = [cell.casefold() for cell in split[0]]
    return header, split[1:]


def parse_receipt_content(text: str) -> ParsedContent:
    if not text or not text.strip():
        return Unparseable("empty response")

    data = _load_json_object(text)
    if data is not None:
        raw_items = _json_items(data)
        if raw_items is not None:
            items = [
                item
                for raw in raw_items
                if (
                    item := validate_item(
                        raw.get("name"),
                        raw.get("price", raw.get("totalPrice", raw.get("total"))),
                        raw.get("category"),
                        raw.get("quantity"),
                    )
                )
                is not None
            ]
            return JsonContent(items=items, payload=data if isinstance(data, dict) else {"items": data})

    table = _table_rows(text)
    if table is not None:
        header, rows = table
        if "name" not in header or "price" not in header:
            return Unparseable("table without name/price columns")
        name_at, price_at = header.index("name"), header.index("price")
        category_at = header.index("category") if "category" in header else None
        items = []
        for row in rows:
            if len(row) <= max(name_at, price_at):
                continue
            item = validate_item(
                row[name_at],
                row[price_at],
                row[category_at] if category_at is not None and category_at < len(row) else None,
            )
            if item is not None:
                items.append(item)
        return TableContent(items=items)

    return Unparseable("neither JSON nor a markdown table")


def parse_category_content(text: str) -> list[CategoryMapping]:
    """Read ``{"items": [{"keyword", "category"}]}``; unknown categories become Other."""
    data = _load_json_object(text or "")
    raw_items = _json_items(data) if data is not None else None
    if raw_items is None:
        table = _table_rows(text or "")
        if table is None:
            logger.warning("Category classification response was not usable")
            return []
        header, rows = table
        key = "keyword" if "keyword" in header else "name"
        if key not in header or "category" not in header:
            return []
        raw_items = [
            {"keyword": row[header.index(key)], "category": row[header.index("category")]}
            for row in rows
            if len(row) > max(header.index(key), header.index("category"))
        ]

    mappings: list[CategoryMapping] = []
    for raw in raw_items:
        keyword = str(raw.get("keyword") or raw.get("name") or "").strip()
        if not keyword:
            continue
        mappings.append(CategoryMapping(keyword=keyword, category=raw.get("category")))
    return mappings
