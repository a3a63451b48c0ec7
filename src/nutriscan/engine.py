from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable

from .ai.chain import ProviderChain
from .config import AppConfig
from .models import (
    UNKNOWN_STORE,
    Category,
    CategoryMapping,
    ExtractedItem,
    IngestResult,
    ParsedReceipt,
    ReceiptItem,
    ReceiptRecord,
)
from .project_paths import ProjectPaths
from .receipt.errors import ReceiptValidationError
from .receipt.vendors import parse_receipt_text
from .rules.categorization import CategoryEngine
from .rules.loader import RuleSet
from .storage import JsonMappingStore, JsonReceiptRepository, ReceiptRepository

logger = logging.getLogger(__name__)


class ReceiptNotFoundError(LookupError):
    pass


class AiAttemptsExhaustedError(RuntimeError):
    def __init__(self, receipt_id: str, attempts: int) -> None:
        super().__init__(f"AI extraction already attempted {attempts} times for receipt {receipt_id}")
        self.receipt_id = receipt_id
        self.attempts = attempts


class ReceiptEngine:
    def __init__(self, categories: CategoryEngine) -> None:
        self.categories = categories

    def parse_text(self, text: str, *, store_name: str | None = None) -> ParsedReceipt:
        """Parse OCR text with the matching vendor grammar and resolve categories.

        ``store_name`` is only applied when the grammar could not identify the
        store itself.
        """
        receipt = parse_receipt_text(text)
        receipt = receipt.with_items(self.categories.categorize_items(receipt.items))
        if store_name and receipt.needs_store_name:
            receipt = receipt.with_store_name(store_name)
        return receipt


class IngestEngine:
    def __init__(
        self,
        repository: ReceiptRepository,
        categories: CategoryEngine,
        chain: ProviderChain,
        *,
        max_ai_attempts: int = 3,
    ) -> None:
        self.repository = repository
        self.categories = categories
        self.chain = chain
        self.max_ai_attempts = max_ai_attempts
        self.receipt_engine = ReceiptEngine(categories)

    @classmethod
    def from_paths(cls, paths: ProjectPaths | None = None, config: AppConfig | None = None) -> "IngestEngine":
        paths = paths or ProjectPaths.detect()
        paths.ensure_dirs()
        config = config or AppConfig.load(paths.config_path)

        store = JsonMappingStore(paths.mappings_path)
        store.seed(RuleSet.load_from_dir(paths.rules_dir).seed_mappings)

        return cls(
            JsonReceiptRepository(paths.data_dir),
            CategoryEngine(store, policy=config.substring_policy),
            ProviderChain(config.build_providers(), timeout_s=config.timeout_s),
            max_ai_attempts=config.max_ai_attempts,
        )

    def _count_categories(self, items: Iterable[ReceiptItem]) -> None:
        for category, n in Counter(item.category for item in items).items():
            self.repository.increment_category_count(category, by=n)

    def _get(self, receipt_id: str) -> ReceiptRecord:
        record = self.repository.get_receipt(receipt_id)
        if record is None:
            raise ReceiptNotFoundError(receipt_id)
        return record

    def ingest_text(
        self,
        text: str,
        *,
        store_name: str | None = None,
        source_name: str | None = None,
    ) -> IngestResult:
        record = self.repository.add_receipt(ocr_text=text, source_name=source_name)
        try:
            receipt = self.receipt_engine.parse_text(text, store_name=store_name)
        except ReceiptValidationError as exc:
            logger.warning("Receipt %s rejected: %s", record.id, exc)
            self.repository.delete_failed_scan(record.id)
            raise
        except Exception:
            logger.exception("Parsing receipt %s failed", record.id)
            self.repository.delete_failed_scan(record.id)
            raise

        self.repository.update_receipt(record.model_copy(update={"status": "processed", "receipt": receipt}))
        self._count_categories(receipt.items)
        logger.info(
            "Ingested receipt %s from %s with %d items (total %.2f, %s)",
            record.id,
            receipt.vendor,
            len(receipt.items),
            receipt.total_amount,
            receipt.total_method,
        )
        return IngestResult(receipt_id=record.id, status="processed", receipt=receipt)

    def _to_receipt_item(self, extracted: ExtractedItem) -> ReceiptItem:
        category = self.categories.resolve(extracted.name)
        if category is Category.OTHER and extracted.category is not None:
            category = extracted.category
        return ReceiptItem(
            name=extracted.name,
            category=category,
            total_price=extracted.price,
            quantity=extracted.quantity,
        )

    async def ai_extract(self, receipt_id: str) -> IngestResult:
        """Ask the provider chain for items the vendor grammar missed.

        Every call counts against the per-receipt budget, including calls that
        end in ``ProviderChainError``.
        """
        record = self._get(receipt_id)
        if record.ai_attempts >= self.max_ai_attempts:
            raise AiAttemptsExhaustedError(receipt_id, record.ai_attempts)

        record = record.model_copy(update={"ai_attempts": record.ai_attempts + 1})
        self.repository.update_receipt(record)

        result = await self.chain.extract(record.ocr_text)
        items = [self._to_receipt_item(e) for e in result.value.items]

        if items:
            if record.receipt is None:
                receipt = ParsedReceipt(
                    vendor="ai",
                    store_name=result.value.store_name or UNKNOWN_STORE,
                    items=items,
                    total_amount=round(sum(i.total_price for i in items), 2),
                    total_method="calculated",
                )
                self.repository.update_receipt(record.model_copy(update={"status": "processed", "receipt": receipt}))
            else:
                self.repository.add_items(receipt_id, items)
            self._count_categories(items)

        record = self._get(receipt_id)
        logger.info("AI extraction via %s added %d items to receipt %s", result.provider, len(items), receipt_id)
        if record.receipt is None:
            raise ReceiptValidationError(f"AI extraction found no items for receipt {receipt_id}")
        return IngestResult(
            receipt_id=receipt_id,
            status=record.status,
            receipt=record.receipt,
            ai_provider=result.provider,
            provider_errors=result.errors,
        )

    async def learn_categories(self, text: str) -> list[CategoryMapping]:
        result = await self.chain.classify(text)
        return self.categories.learn(result.value)
