from pathlib import Path

from nutriscan.models import Category, CategoryMapping, ReceiptItem
from nutriscan.receipt.vendors import parse_receipt_text
from nutriscan.storage import JsonMappingStore, JsonReceiptRepository


def test_receipt_round_trip_preserves_parsed_data(tmp_path: Path, rewe_text: str) -> None:
    repo = JsonReceiptRepository(tmp_path)
    receipt = parse_receipt_text(rewe_text)
    record = repo.add_receipt(ocr_text=rewe_text, source_name="pytest")

    repo.update_receipt(record.model_copy(update={"status": "processed", "receipt": receipt}))
    loaded = repo.get_receipt(record.id)

    assert loaded is not None
    assert loaded.status == "processed"
    assert loaded.receipt == receipt
    assert loaded.receipt.total_amount == receipt.total_amount
    assert [i.category for i in loaded.receipt.items] == [i.category for i in receipt.items]


def test_add_items_appends_and_recomputes_discrepancy(tmp_path: Path, rewe_text: str) -> None:
    repo = JsonReceiptRepository(tmp_path)
    record = repo.add_receipt(ocr_text=rewe_text)
    repo.update_receipt(record.model_copy(update={"receipt": parse_receipt_text(rewe_text)}))

    repo.add_items(record.id, [ReceiptItem(name="Brot", category=Category.BAKERY, total_price=2.49)])

    receipt = repo.get_receipt(record.id).receipt
    assert [i.name for i in receipt.items] == ["MILCH", "BANANEN", "Brot"]
    assert receipt.discrepancy_detected is True


def test_delete_receipt(tmp_path: Path) -> None:
    repo = JsonReceiptRepository(tmp_path)
    record = repo.add_receipt(ocr_text="x")

    assert repo.delete_failed_scan(record.id) is True
    assert repo.get_receipt(record.id) is None
    assert repo.delete_receipt(record.id) is False


def test_category_counts_accumulate(tmp_path: Path) -> None:
    repo = JsonReceiptRepository(tmp_path)

    repo.increment_category_count(Category.DAIRY)
    repo.increment_category_count(Category.DAIRY, by=2)
    repo.increment_category_count(Category.FRUITS)

    assert JsonReceiptRepository(tmp_path).category_counts() == {Category.DAIRY: 3, Category.FRUITS: 1}


def test_mapping_store_keeps_insertion_order_across_reloads(tmp_path: Path) -> None:
    path = tmp_path / "mappings.json"
    store = JsonMappingStore(path)

    assert store.seed([CategoryMapping(keyword="milch", category="Dairy")]) == 1
    assert store.seed([CategoryMapping(keyword="brot", category="Bakery")]) == 0
    store.insert_many([CategoryMapping(keyword="Milch", category="Beverages")])

    reloaded = JsonMappingStore(path)
    assert [(m.keyword, m.category) for m in reloaded.all()] == [
        ("milch", Category.DAIRY),
        ("milch", Category.BEVERAGES),
    ]
    assert reloaded.lookup(" MILCH ").category == Category.DAIRY
    assert reloaded.lookup("brot") is None
