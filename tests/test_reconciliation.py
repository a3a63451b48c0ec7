import pytest

from nutriscan.models import ParsedReceipt, ReceiptItem
from nutriscan.receipt.errors import ReceiptValidationError
from nutriscan.receipt.reconciliation import find_explicit_total, has_discrepancy, reconcile


def _items(*prices: float) -> list[ReceiptItem]:
    return [ReceiptItem(name=f"item {i}", total_price=p) for i, p in enumerate(prices)]


def test_reconcile_within_tolerance_is_not_a_discrepancy() -> None:
    result = reconcile(_items(1.29, 1.99), 3.29)

    assert result.method == "explicit"
    assert result.total == 3.29
    assert result.items_total == 3.28
    assert result.discrepancy_detected is False


def test_reconcile_flags_difference_above_tolerance() -> None:
    result = reconcile(_items(1.29, 1.99), 3.30)

    assert result.difference == 0.02
    assert result.discrepancy_detected is True


def test_reconcile_falls_back_to_item_sum() -> None:
    result = reconcile(_items(0.1, 0.2), None)

    assert result.method == "calculated"
    assert result.total == 0.3
    assert result.discrepancy_detected is False


def test_reconcile_without_items_or_total_fails() -> None:
    with pytest.raises(ReceiptValidationError):
        reconcile([], None)


def test_has_discrepancy_ignores_float_noise() -> None:
    assert has_discrepancy(0.1 + 0.2, 0.3) is False
    assert has_discrepancy(10.00, 9.98) is True


def test_find_explicit_total_prefers_tax_summary_gross() -> None:
    lines = ["Gesamtbetrag 3,07 0,21 3,28", "Summe 3,28"]

    assert find_explicit_total(lines, 3.28) == 3.28


def test_find_explicit_total_tolerates_ocr_spelling() -> None:
    assert find_explicit_total(["Gesamnt EUR 12,40"], 12.0) == 12.4


def test_find_explicit_total_ignores_implausible_candidates() -> None:
    assert find_explicit_total(["Summe 99,00"], 10.0) is None


def test_supplementary_items_recompute_discrepancy() -> None:
    receipt = ParsedReceipt(
        vendor="rewe",
        store_name="REWE",
        items=_items(1.29),
        total_amount=3.28,
        discrepancy_detected=True,
    )

    updated = receipt.with_supplementary_items(_items(1.99))

    assert len(updated.items) == 2
    assert updated.total_amount == 3.28
    assert updated.discrepancy_detected is False


@pytest.mark.parametrize(("declared", "expected"), [(5.48, False), (6.00, True)])
def test_discrepancy_against_item_sum(declared: float, expected: bool) -> None:
    assert reconcile(_items(1.99, 2.50, 0.99), declared).discrepancy_detected is expected


def test_supplementary_items_extend_calculated_total() -> None:
    receipt = ParsedReceipt(
        vendor="generic",
        store_name="Unknown Store",
        items=_items(2.49, 1.29),
        total_amount=3.78,
        total_method="calculated",
    )

    updated = receipt.with_supplementary_items(_items(1.99))

    assert updated.total_amount == 5.77
    assert updated.total_method == "calculated"
    assert updated.discrepancy_detected is False
