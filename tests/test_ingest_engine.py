from pathlib import Path

import pytest

from conftest import FakeProvider
from nutriscan.ai.errors import ProviderChainError, ProviderError
from nutriscan.engine import AiAttemptsExhaustedError, IngestEngine, ReceiptNotFoundError
from nutriscan.models import Category
from nutriscan.project_paths import ProjectPaths
from nutriscan.receipt.errors import ReceiptValidationError

BREAD_TABLE = "| Name | Category | Price |\n|---|---|---|\n| Brot | Other | 2,49 |\n| Zahnpasta | Other | 1,95 |"


def test_ingest_text_categorizes_and_counts(make_engine, rewe_text: str) -> None:
    engine = make_engine()

    result = engine.ingest_text(rewe_text, source_name="pytest")

    assert result.status == "processed"
    assert [i.category for i in result.receipt.items] == [Category.DAIRY, Category.FRUITS]
    stored = engine.repository.get_receipt(result.receipt_id)
    assert stored.receipt == result.receipt
    assert engine.repository.category_counts() == {Category.DAIRY: 1, Category.FRUITS: 1}


def test_ingest_text_applies_store_name_only_when_unknown(make_engine) -> None:
    engine = make_engine()

    result = engine.ingest_text("Brezel 0,89\nKaffee 2,50", store_name="Bäckerei Schmidt")

    assert result.receipt.store_name == "Bäckerei Schmidt"


def test_failed_parse_removes_in_progress_record(make_engine, tmp_path: Path) -> None:
    engine = make_engine()

    with pytest.raises(ReceiptValidationError):
        engine.ingest_text("REWE\nUID Nr.: DE1\nSUMME 3,28")

    assert list((tmp_path / "data" / "receipts").iterdir()) == []
    assert engine.repository.category_counts() == {}


@pytest.mark.asyncio
async def test_ai_extract_appends_resolved_items(make_engine, rewe_text: str) -> None:
    engine = make_engine(
        FakeProvider("locallm", error=ProviderError("locallm", "HTTP 500")),
        FakeProvider("glhf", reply=BREAD_TABLE),
    )
    receipt_id = engine.ingest_text(rewe_text).receipt_id

    result = await engine.ai_extract(receipt_id)

    assert result.ai_provider == "glhf"
    assert result.provider_errors == {"locallm": "HTTP 500"}
    assert [(i.name, i.category) for i in result.receipt.items[2:]] == [
        ("Brot", Category.BAKERY),
        ("Zahnpasta", Category.OTHER),
    ]
    assert result.receipt.discrepancy_detected is True
    assert engine.repository.get_receipt(receipt_id).ai_attempts == 1
    assert engine.repository.category_counts()[Category.BAKERY] == 1


@pytest.mark.asyncio
async def test_ai_extract_budget_counts_failed_attempts(make_engine, rewe_text: str) -> None:
    failing = FakeProvider("locallm", error=ProviderError("locallm", "HTTP 503"))
    engine = make_engine(failing, max_ai_attempts=2)
    receipt_id = engine.ingest_text(rewe_text).receipt_id

    for _ in range(2):
        with pytest.raises(ProviderChainError):
            await engine.ai_extract(receipt_id)

    with pytest.raises(AiAttemptsExhaustedError):
        await engine.ai_extract(receipt_id)
    assert failing.calls == 2


@pytest.mark.asyncio
async def test_ai_extract_unknown_receipt(make_engine) -> None:
    with pytest.raises(ReceiptNotFoundError):
        await make_engine().ai_extract("missing")


@pytest.mark.asyncio
async def test_learn_categories_inserts_batch(make_engine) -> None:
    reply = '{"items": [{"keyword": "Zahnpasta", "category": "Other"}, {"keyword": "Haferflocken", "category": "Cereals"}]}'
    engine = make_engine(FakeProvider("locallm", reply=reply))

    learned = await engine.learn_categories("Zahnpasta\nHaferflocken")

    assert [m.keyword for m in learned] == ["zahnpasta", "haferflocken"]
    assert engine.categories.resolve("Kernige Haferflocken") == Category.CEREALS


def test_from_paths_seeds_mapping_store(tmp_path: Path) -> None:
    rules_dir = tmp_path / "data" / "rules"
    rules_dir.mkdir(parents=True)
    (rules_dir / "category_mappings.yml").write_text(
        "mappings:\n  - category: Dairy\n    keywords: [milch]\n",
        encoding="utf-8",
    )

    engine = IngestEngine.from_paths(ProjectPaths.at(tmp_path))

    assert (tmp_path / "data" / "mappings.json").exists()
    assert engine.categories.resolve("Vollmilch") == Category.DAIRY
    assert [p.name for p in engine.chain.providers] == ["locallm", "lmstudio", "glhf"]
    assert engine.max_ai_attempts == 3


def test_unexpected_parse_error_removes_in_progress_record(
    make_engine, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    engine = make_engine()

    def broken(text: str, *, store_name: str | None = None):
        raise RuntimeError("mapping store unavailable")

    monkeypatch.setattr(engine.receipt_engine, "parse_text", broken)

    with pytest.raises(RuntimeError):
        engine.ingest_text("MILCH 1,29 B")

    assert list((tmp_path / "data" / "receipts").iterdir()) == []
