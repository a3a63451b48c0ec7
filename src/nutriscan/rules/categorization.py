from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from enum import Enum

from ..models import Category, CategoryMapping, ReceiptItem
from ..storage import MappingStore
from .normalization import normalize_keyword

logger = logging.getLogger(__name__)


class SubstringPolicy(str, Enum):
    FIRST_INSERTED = "first_inserted"
    LONGEST_KEYWORD = "longest_keyword"


class CategoryResolver:
    """Two-tier keyword matcher over an ordered mapping table.

    An exact keyword hit always wins. Otherwise the first stored keyword that
    is a substring of the name decides, in table order; with
    ``SubstringPolicy.LONGEST_KEYWORD`` the longest such keyword decides and
    table order only breaks ties. Unmatched names resolve to ``Other``.
    """

    def __init__(
        self,
        mappings: Sequence[CategoryMapping],
        *,
        policy: SubstringPolicy = SubstringPolicy.FIRST_INSERTED,
    ) -> None:
        self._mappings = list(mappings)
        self._policy = policy
        self._exact: dict[str, Category] = {}
        for mapping in self._mappings:
            self._exact.setdefault(mapping.keyword, mapping.category)

    def __len__(self) -> int:
        return len(self._mappings)

    def resolve(self, item_name: str | None) -> Category:
        name = normalize_keyword(item_name)
        if not name:
            return Category.OTHER

        exact = self._exact.get(name)
        if exact is not None:
            return exact

        best: CategoryMapping | None = None
        for mapping in self._mappings:
            if mapping.keyword not in name:
                continue
            if self._policy is SubstringPolicy.FIRST_INSERTED:
                return mapping.category
            if best is None or len(mapping.keyword) > len(best.keyword):
                best = mapping
        return best.category if best is not None else Category.OTHER

    def categorize_items(self, items: Iterable[ReceiptItem]) -> list[ReceiptItem]:
        return [item.model_copy(update={"category": self.resolve(item.name)}) for item in items]


def categorize(item_name: str, mappings: Sequence[CategoryMapping]) -> Category:
    return CategoryResolver(mappings).resolve(item_name)


class CategoryEngine:
    """Resolver bound to a mapping store; learned mappings are visible immediately."""

    def __init__(
        self,
        store: MappingStore,
        *,
        policy: SubstringPolicy = SubstringPolicy.FIRST_INSERTED,
    ) -> None:
        self.store = store
        self.policy = policy
        self._resolver: CategoryResolver | None = None

    @property
    def resolver(self) -> CategoryResolver:
        if self._resolver is None:
            self._resolver = CategoryResolver(self.store.all(), policy=self.policy)
        return self._resolver

    def resolve(self, item_name: str | None) -> Category:
        return self.resolver.resolve(item_name)

    def categorize_items(self, items: Iterable[ReceiptItem]) -> list[ReceiptItem]:
        return self.resolver.categorize_items(items)

    def learn(self, mappings: Sequence[CategoryMapping]) -> list[CategoryMapping]:
        """Append suggested mappings as one ordered batch; duplicates are kept."""
        batch = list(mappings)
        if not batch:
            return []
        self.store.insert_many(batch)
        self._resolver = None
        logger.info("Learned %d category mappings", len(batch))
        return batch
