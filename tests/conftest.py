from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

import pytest

from nutriscan.ai.chain import ProviderChain
from nutriscan.engine import IngestEngine
from nutriscan.models import CategoryMapping
from nutriscan.rules.categorization import CategoryEngine
from nutriscan.storage import InMemoryMappingStore, JsonReceiptRepository

REWE_TEXT = "\n".join(
    [
        "REWE",
        "Musterstraße 1",
        "12345 Berlin",
        "UID Nr.: DE812706034",
        "EUR",
        "MILCH 1,29 B",
        "BANANEN 1,99 B",
        "0,486 kg x 3,98 EUR/kg",
        "SUMME EUR 3,28",
        "Geg. EC-Cash EUR 3,28",
        "B= 7,0% 3,07 0,21 3,28",
        "Gesamtbetrag 3,07 0,21 3,28",
        "TSE-Start: 2024-03-12T10:15:00",
    ]
)


@dataclass
class FakeProvider:
    name: str
    reply: str = ""
    error: Exception | None = None
    delay: float = 0.0
    calls: int = 0

    async def complete(self, system_prompt: str, text: str) -> str:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def rewe_text() -> str:
    return REWE_TEXT


@pytest.fixture
def mappings() -> list[CategoryMapping]:
    return [
        CategoryMapping(keyword="milch", category="Dairy"),
        CategoryMapping(keyword="banane", category="Fruits"),
        CategoryMapping(keyword="brot", category="Bakery"),
        CategoryMapping(keyword="saft", category="Beverages"),
    ]


@pytest.fixture
def make_engine(tmp_path: Path, mappings: list[CategoryMapping]):
    def _make(*providers: FakeProvider, max_ai_attempts: int = 3) -> IngestEngine:
        return IngestEngine(
            JsonReceiptRepository(tmp_path / "data"),
            CategoryEngine(InMemoryMappingStore(mappings)),
            ProviderChain(list(providers), timeout_s=1.0),
            max_ai_attempts=max_ai_attempts,
        )

    return _make
