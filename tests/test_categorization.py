from pathlib import Path

import pytest

from nutriscan.models import Category, CategoryMapping, ReceiptItem
from nutriscan.rules.categorization import CategoryEngine, CategoryResolver, SubstringPolicy, categorize
from nutriscan.rules.loader import RuleSet
from nutriscan.storage import InMemoryMappingStore

RULES_DIR = Path(__file__).resolve().parents[1] / "data" / "rules"


def _m(keyword: str, category: str) -> CategoryMapping:
    return CategoryMapping(keyword=keyword, category=category)


def test_exact_match_beats_earlier_substring() -> None:
    mappings = [_m("apfel", "Fruits"), _m("apfelsaft", "Beverages")]

    assert categorize("apfel", mappings) == Category.FRUITS
    assert categorize("Apfelsaft", mappings) == Category.BEVERAGES
    assert categorize("Apfelsaft naturtrüb", mappings) == Category.FRUITS


def test_first_exact_keyword_wins_over_later_duplicate() -> None:
    mappings = [_m("milch", "Dairy"), _m("milch", "Beverages")]

    assert categorize("MILCH", mappings) == Category.DAIRY


@pytest.mark.parametrize("name", ["", "   ", None, "Waschmittel"])
def test_unmatched_names_resolve_to_other(name: str | None) -> None:
    assert CategoryResolver([_m("milch", "Dairy")]).resolve(name) == Category.OTHER


def test_longest_keyword_policy() -> None:
    mappings = [_m("milch", "Dairy"), _m("milchschokolade", "Sweets")]

    first = CategoryResolver(mappings)
    longest = CategoryResolver(mappings, policy=SubstringPolicy.LONGEST_KEYWORD)

    assert first.resolve("Milchschokolade Zartbitter") == Category.DAIRY
    assert longest.resolve("Milchschokolade Zartbitter") == Category.SWEETS


def test_categorize_items_keeps_everything_but_category() -> None:
    item = ReceiptItem(name="H-Milch 3,5%", total_price=1.09, tax_rate="B")

    (resolved,) = CategoryResolver([_m("milch", "Dairy")]).categorize_items([item])

    assert resolved.category == Category.DAIRY
    assert resolved.model_dump(exclude={"category"}) == item.model_dump(exclude={"category"})


def test_learned_mappings_apply_immediately() -> None:
    store = InMemoryMappingStore([_m("apfel", "Fruits")])
    engine = CategoryEngine(store)
    assert engine.resolve("Apfelsaft") == Category.FRUITS

    learned = engine.learn([_m("Apfelsaft", "Beverages"), _m("hafer", "Cereals")])

    assert [m.keyword for m in learned] == ["apfelsaft", "hafer"]
    assert store.count() == 3
    assert engine.resolve("apfelsaft") == Category.BEVERAGES
    assert engine.resolve("Haferflocken") == Category.CEREALS


def test_seed_rules_load_in_file_order() -> None:
    seed = RuleSet.load_from_dir(RULES_DIR).seed_mappings

    assert seed[0] == _m("mango", "Fruits")
    assert _m("eis", "Sweets") in seed
    resolver = CategoryResolver(seed)
    assert resolver.resolve("Bio Vollmilch") == Category.DAIRY
    assert resolver.resolve("Basmati Reis") == Category.CEREALS
    assert resolver.resolve("Olivenöl") == Category.OILS


def test_seed_rules_reject_unknown_category(tmp_path: Path) -> None:
    (tmp_path / "category_mappings.yml").write_text(
        "mappings:\n  - category: Groceries\n    keywords: [reis]\n",
        encoding="utf-8",
    )

    with pytest.raises(ValueError, match="Groceries"):
        RuleSet.load_from_dir(tmp_path)
