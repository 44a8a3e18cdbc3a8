"""
Line item and document totals.

Every amount is a Decimal. The per-line order is fixed:
line subtotal, discount, taxable amount, tax, total.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Union

from core.exceptions import InvalidAmountError
from schemas.common import CommonItemFields, LineItem
from schemas.sales import PricedDocument

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class LineAmounts:
    subtotal: Decimal
    discount: Decimal
    taxable: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal = ZERO
    discount_total: Decimal = ZERO
    tax_total: Decimal = ZERO
    grand_total: Decimal = ZERO


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def validate_line_inputs(quantity: Number, unit_price: Number, discount_pct: Number, tax_pct: Number) -> None:
    if to_decimal(quantity) < ZERO:
        raise InvalidAmountError("quantity", quantity, "Quantity cannot be negative")
    if to_decimal(unit_price) < ZERO:
        raise InvalidAmountError("unit_price", unit_price, "Unit price cannot be negative")
    discount = to_decimal(discount_pct)
    if discount < ZERO or discount > HUNDRED:
        raise InvalidAmountError("discount", discount_pct, "Discount must be between 0 and 100 percent")
    if to_decimal(tax_pct) < ZERO:
        raise InvalidAmountError("tax", tax_pct, "Tax cannot be negative")


def compute_line_amounts(quantity: Number, unit_price: Number, discount_pct: Number = 0, tax_pct: Number = 0) -> LineAmounts:
    """Break a line into its subtotal, discount, taxable amount, tax and total."""
    validate_line_inputs(quantity, unit_price, discount_pct, tax_pct)

    subtotal = to_decimal(quantity) * to_decimal(unit_price)
    discount = subtotal * to_decimal(discount_pct) / HUNDRED
    taxable = subtotal - discount
    tax = taxable * to_decimal(tax_pct) / HUNDRED

    return LineAmounts(
        subtotal=subtotal,
        discount=discount,
        taxable=taxable,
        tax=tax,
        total=taxable + tax,
    )


def compute_item_total(quantity: Number, unit_price: Number, discount_pct: Number = 0, tax_pct: Number = 0) -> Decimal:
    return compute_line_amounts(quantity, unit_price, discount_pct, tax_pct).total


def line_amounts_for(fields: CommonItemFields) -> LineAmounts:
    return compute_line_amounts(fields.quantity, fields.unit_price, fields.discount, fields.tax)


def recompute_document_totals(items: Iterable[LineItem]) -> DocumentTotals:
    """Sum line amounts; grand total is subtotal - discount + tax."""
    subtotal = discount_total = tax_total = ZERO

    for item in items:
        amounts = line_amounts_for(item.line)
        subtotal += amounts.subtotal
        discount_total += amounts.discount
        tax_total += amounts.tax

    return DocumentTotals(
        subtotal=subtotal,
        discount_total=discount_total,
        tax_total=tax_total,
        grand_total=subtotal - discount_total + tax_total,
    )


def price_item(item: LineItem) -> LineItem:
    """Copy of the item with its total rewritten from its fields."""
    return item.model_copy(update={"total": line_amounts_for(item.line).total})


def apply_totals(document: PricedDocument) -> PricedDocument:
    """Reprice every item and rewrite the document totals in place."""
    document.items = [price_item(item) for item in document.items]
    totals = recompute_document_totals(document.items)
    document.subtotal = totals.subtotal
    document.discount_total = totals.discount_total
    document.tax_total = totals.tax_total
    document.grand_total = totals.grand_total
    return document
