from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter

from .models import Category, CategoryMapping, ReceiptItem, ReceiptRecord
from .rules.normalization import normalize_keyword

logger = logging.getLogger(__name__)

_MAPPINGS = TypeAdapter(list[CategoryMapping])


class MappingStore(Protocol):
    def all(self) -> list[CategoryMapping]: ...

    def lookup(self, keyword: str) -> CategoryMapping | None: ...

    def insert_many(self, mappings: Sequence[CategoryMapping]) -> int: ...

    def count(self) -> int: ...


class ReceiptRepository(Protocol):
    def add_receipt(self, *, ocr_text: str, source_name: str | None = None) -> ReceiptRecord: ...

    def get_receipt(self, receipt_id: str) -> ReceiptRecord | None: ...

    def update_receipt(self, record: ReceiptRecord) -> None: ...

    def add_items(self, receipt_id: str, items: Sequence[ReceiptItem]) -> None: ...

    def delete_receipt(self, receipt_id: str) -> bool: ...

    def delete_failed_scan(self, receipt_id: str) -> bool: ...

    def increment_category_count(self, category: Category, by: int = 1) -> None: ...

    def category_counts(self) -> dict[Category, int]: ...


def write_json(path: Path, data: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


class InMemoryMappingStore:
    def __init__(self, mappings: Iterable[CategoryMapping] = ()) -> None:
        self._mappings = list(mappings)

    def all(self) -> list[CategoryMapping]:
        return list(self._mappings)

    def lookup(self, keyword: str) -> CategoryMapping | None:
        key = normalize_keyword(keyword)
        return next((m for m in self._mappings if m.keyword == key), None)

    def insert_many(self, mappings: Sequence[CategoryMapping]) -> int:
        self._mappings.extend(mappings)
        return len(mappings)

    def count(self) -> int:
        return len(self._mappings)


class JsonMappingStore(InMemoryMappingStore):
    """Ordered keyword table persisted as one JSON array; append order is kept."""

    def __init__(self, path: Path) -> None:
        self.path = path
        mappings: list[CategoryMapping] = []
        if path.exists():
            mappings = _MAPPINGS.validate_json(path.read_bytes())
        super().__init__(mappings)

    def insert_many(self, mappings: Sequence[CategoryMapping]) -> int:
        added = super().insert_many(mappings)
        self._flush()
        return added

    def seed(self, mappings: Sequence[CategoryMapping]) -> int:
        if self.count():
            return 0
        logger.info("Seeding %d default category mappings into %s", len(mappings), self.path)
        return self.insert_many(mappings)

    def _flush(self) -> None:
        write_json(self.path, _MAPPINGS.dump_python(self.all(), mode="json"))


class JsonReceiptRepository:
    """One JSON document per receipt plus a category counter file."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.receipts_dir = root / "receipts"
        self.counts_path = root / "category_counts.json"
        self.receipts_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, receipt_id: str) -> Path:
        return self.receipts_dir / f"{receipt_id}.json"

    def add_receipt(self, *, ocr_text: str, source_name: str | None = None) -> ReceiptRecord:
        record = ReceiptRecord(
            id=str(uuid.uuid4()),
            created_at=_now(),
            source_name=source_name,
            ocr_text=ocr_text,
        )
        self.update_receipt(record)
        return record

    def get_receipt(self, receipt_id: str) -> ReceiptRecord | None:
        path = self._path(receipt_id)
        if not path.exists():
            return None
        return ReceiptRecord.model_validate_json(path.read_text(encoding="utf-8"))

    def update_receipt(self, record: ReceiptRecord) -> None:
        write_json(self._path(record.id), record.model_dump(mode="json"))

    def add_items(self, receipt_id: str, items: Sequence[ReceiptItem]) -> None:
        record = self.get_receipt(receipt_id)
        if record is None or record.receipt is None:
            raise KeyError(f"Receipt {receipt_id} has no parsed data to add items to")
        receipt = record.receipt.with_supplementary_items(list(items))
        self.update_receipt(record.model_copy(update={"receipt": receipt}))

    def delete_receipt(self, receipt_id: str) -> bool:
        path = self._path(receipt_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info("Deleted receipt %s", receipt_id)
        return True

    delete_failed_scan = delete_receipt

    def increment_category_count(self, category: Category, by: int = 1) -> None:
        counts = self.category_counts()
        counts[category] = counts.get(category, 0) + by
        write_json(self.counts_path, {c.value: n for c, n in counts.items()})

    def category_counts(self) -> dict[Category, int]:
        if not self.counts_path.exists():
            return {}
        raw = json.loads(self.counts_path.read_text(encoding="utf-8"))
        return {Category(name): int(count) for name, count in raw.items()}
