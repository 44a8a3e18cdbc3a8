"""Unit tests for line item and document totals."""

from decimal import Decimal

import pytest

from core.exceptions import InvalidAmountError, ValidationError
from schemas.common import CommonItemFields, LineItem
from schemas.sales import Quotation
from services.totals import (
    apply_totals,
    compute_item_total,
    compute_line_amounts,
    recompute_document_totals,
)


def _line(quantity, unit_price, discount="0", tax="0", product_id=1) -> LineItem:
    return LineItem(line=CommonItemFields(
        product_id=product_id,
        quantity=quantity,
        unit_price=Decimal(unit_price),
        discount=Decimal(discount),
        tax=Decimal(tax),
    ))


class TestComputeItemTotal:
    def test_discount_then_tax_on_taxable_amount(self) -> None:
        assert compute_item_total(10, Decimal("100.00"), Decimal("5"), Decimal("15")) == Decimal("1092.5")

    def test_line_amount_breakdown(self) -> None:
        amounts = compute_line_amounts(10, Decimal("100.00"), Decimal("5"), Decimal("15"))
        assert amounts.subtotal == Decimal("1000")
        assert amounts.discount == Decimal("50")
        assert amounts.taxable == Decimal("950")
        assert amounts.tax == Decimal("142.5")
        assert amounts.total == Decimal("1092.5")

    def test_plain_line_without_discount_or_tax(self) -> None:
        assert compute_item_total(3, Decimal("19.99")) == Decimal("59.97")

    def test_accepts_strings_and_floats_without_binary_noise(self) -> None:
        assert compute_item_total(3, 0.1) == Decimal("0.3")
        assert compute_item_total(2, "12.50", "10", "0") == Decimal("22.5")

    def test_same_inputs_give_same_total(self) -> None:
        first = compute_item_total(7, Decimal("13.37"), Decimal("12.5"), Decimal("8"))
        second = compute_item_total(7, Decimal("13.37"), Decimal("12.5"), Decimal("8"))
        assert first == second

    @pytest.mark.parametrize(
        "quantity, price, discount, tax, field",
        [
            (-1, "10", "0", "0", "quantity"),
            (1, "-10", "0", "0", "unit_price"),
            (1, "10", "-1", "0", "discount"),
            (1, "10", "101", "0", "discount"),
            (1, "10", "0", "-5", "tax"),
        ],
    )
    def test_rejects_out_of_range_inputs(self, quantity, price, discount, tax, field) -> None:
        with pytest.raises(InvalidAmountError) as exc_info:
            compute_item_total(quantity, Decimal(price), Decimal(discount), Decimal(tax))
        assert exc_info.value.field == field
        assert isinstance(exc_info.value, ValidationError)

    def test_boundary_discounts_are_allowed(self) -> None:
        assert compute_item_total(1, Decimal("10"), Decimal("100")) == Decimal("0")
        assert compute_item_total(1, Decimal("10"), Decimal("0")) == Decimal("10")


class TestRecomputeDocumentTotals:
    def test_sums_every_component(self) -> None:
        totals = recompute_document_totals([
            _line(10, "100.00", discount="5", tax="15"),
            _line(4, "25.00", tax="10", product_id=2),
        ])
        assert totals.subtotal == Decimal("1100")
        assert totals.discount_total == Decimal("50")
        assert totals.tax_total == Decimal("152.5")
        assert totals.grand_total == Decimal("1202.5")

    def test_empty_item_list_is_all_zero(self) -> None:
        totals = recompute_document_totals([])
        assert totals.subtotal == Decimal("0")
        assert totals.grand_total == Decimal("0")

    def test_grand_total_equals_sum_of_item_totals(self) -> None:
        items = [_line(3, "9.99", "10", "20"), _line(1, "250", "0", "7.5"), _line(12, "0.35")]
        totals = recompute_document_totals(items)
        assert totals.grand_total == sum(compute_item_total(i.quantity, i.unit_price, i.line.discount, i.line.tax) for i in items)


class TestApplyTotals:
    def test_rewrites_item_totals_and_document_totals(self) -> None:
        quotation = Quotation(items=[_line(10, "100.00", "5", "15")], grand_total=Decimal("999"))

        apply_totals(quotation)

        assert quotation.items[0].total == Decimal("1092.5")
        assert quotation.subtotal == Decimal("1000")
        assert quotation.discount_total == Decimal("50")
        assert quotation.tax_total == Decimal("142.5")
        assert quotation.grand_total == Decimal("1092.5")
