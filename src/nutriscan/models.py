from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .rules.normalization import normalize_keyword


class Category(str, Enum):
    FRUITS = "Fruits"
    VEGETABLES = "Vegetables"
    DAIRY = "Dairy"
    MEAT = "Meat"
    BAKERY = "Bakery"
    BEVERAGES = "Beverages"
    SNACKS = "Snacks"
    CEREALS = "Cereals"
    SWEETS = "Sweets"
    OILS = "Oils"
    OTHER = "Other"

    @classmethod
    def coerce(cls, value: object) -> "Category":
        """Map a loose label onto the closed set, falling back to Other."""
        if isinstance(value, Category):
            return value
        label = str(value or "").strip().casefold()
        for member in cls:
            if member.value.casefold() == label:
                return member
        return cls.OTHER


UNKNOWN_STORE = "Unknown Store"

TotalMethod = Literal["explicit", "calculated"]


class ReceiptItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    category: Category = Category.OTHER
    total_price: float = Field(gt=0)
    quantity: float | None = Field(default=None, gt=0)
    unit: str | None = None
    unit_price: float | None = None
    tax_rate: str | None = None


class TaxBucket(BaseModel):
    model_config = ConfigDict(frozen=True)

    rate_class: str
    rate: float
    net: float = 0.0
    tax: float = 0.0
    gross: float = 0.0


class ParsedReceipt(BaseModel):
    model_config = ConfigDict(frozen=True)

    vendor: str
    store_name: str
    store_address: str = ""
    purchase_date: dt.date | None = None
    items: list[ReceiptItem]
    total_amount: float
    total_method: TotalMethod = "explicit"
    tax_details: dict[str, TaxBucket] = Field(default_factory=dict)
    discrepancy_detected: bool = False

    @property
    def needs_store_name(self) -> bool:
        return self.store_name == UNKNOWN_STORE

    @property
    def items_total(self) -> float:
        return round(sum(item.total_price for item in self.items), 2)

    def with_store_name(self, store_name: str) -> "ParsedReceipt":
        name = store_name.strip()
        return self.model_copy(update={"store_name": name or UNKNOWN_STORE})

    def with_items(self, items: list[ReceiptItem]) -> "ParsedReceipt":
        return self.model_copy(update={"items": list(items)})

    def with_supplementary_items(self, extra: list[ReceiptItem]) -> "ParsedReceipt":
        from .receipt.reconciliation import has_discrepancy

        items = [*self.items, *extra]
        total = round(sum(item.total_price for item in items), 2)
        if self.total_method == "calculated":
            return self.model_copy(update={"items": items, "total_amount": total, "discrepancy_detected": False})
        return self.model_copy(
            update={
                "items": items,
                "discrepancy_detected": has_discrepancy(self.total_amount, total),
            }
        )


class CategoryMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    keyword: str = Field(min_length=1)
    category: Category

    @field_validator("keyword")
    @classmethod
    def _normalize_keyword(cls, value: str) -> str:
        keyword = normalize_keyword(value)
        if not keyword:
            raise ValueError("keyword must not be blank")
        return keyword

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: object) -> Category:
        return Category.coerce(value)


class ExtractedItem(BaseModel):
    name: str = Field(min_length=1)
    price: float = Field(gt=0, lt=1000)
    category: Category | None = None
    quantity: float | None = None


class ProcessedReceipt(BaseModel):
    items: list[ExtractedItem] = Field(default_factory=list)
    total: float | None = None
    store_name: str | None = None


class ReceiptRecord(BaseModel):
    id: str
    status: Literal["pending", "processed"] = "pending"
    created_at: str
    source_name: str | None = None
    ocr_text: str = ""
    receipt: ParsedReceipt | None = None
    ai_attempts: int = 0


class IngestResult(BaseModel):
    receipt_id: str
    status: str
    receipt: ParsedReceipt
    ai_provider: str | None = None
    provider_errors: dict[str, str] = Field(default_factory=dict)
