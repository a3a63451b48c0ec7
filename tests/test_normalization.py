from nutriscan.models import CategoryMapping
from nutriscan.rules.normalization import normalize_keyword


def test_normalize_keyword_lowercases_and_collapses_whitespace() -> None:
    assert normalize_keyword("  Bio   H-Milch ") == "bio h-milch"
    assert normalize_keyword(None) == ""


def test_category_mapping_normalizes_keyword_and_coerces_category() -> None:
    mapping = CategoryMapping(keyword=" Apfel Saft ", category="beverages")

    assert mapping.keyword == "apfel saft"
    assert mapping.category.value == "Beverages"
    assert CategoryMapping(keyword="x", category="Groceries").category.value == "Other"
