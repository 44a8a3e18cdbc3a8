from pydantic import BaseModel, Field
from typing import Generic, List, Optional, TypeVar
from decimal import Decimal
from enum import Enum
import math

T = TypeVar("T")


class DocumentType(str, Enum):
    QUOTATION = "quotation"
    SALES_ORDER = "sales_order"
    PURCHASE_ORDER = "purchase_order"
    INVOICE = "invoice"
    DELIVERY = "delivery"


class CommonItemFields(BaseModel):
    """Product snapshot and pricing shared by every priced line item."""
    product_id: int
    product_name: str = ""
    product_code: str = ""
    description: str = ""
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(Decimal("0"), ge=0)
    discount: Decimal = Field(Decimal("0"), ge=0, le=100)
    tax: Decimal = Field(Decimal("0"), ge=0)


class LineItem(BaseModel):
    """A priced line on a quotation, sales order, purchase order or invoice.

    ``total`` is derived and rewritten by the totals calculator on every
    mutation; ``source_item_id`` points at the item this line was copied from.
    """
    id: Optional[int] = None
    source_item_id: Optional[int] = None
    line: CommonItemFields
    total: Decimal = Decimal("0")

    @property
    def product_id(self) -> int:
        return self.line.product_id

    @property
    def quantity(self) -> int:
        return self.line.quantity

    @property
    def unit_price(self) -> Decimal:
        return self.line.unit_price


class PaginationParams(BaseModel):
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class PagedResult(BaseModel, Generic[T]):
    items: List[T]
    total_items: int
    total_pages: int
    current_page: int
    page_size: int
    has_next: bool = False
    has_prev: bool = False

    @classmethod
    def build(cls, items: List[T], total_items: int, params: PaginationParams) -> "PagedResult[T]":
        total_pages = math.ceil(total_items / params.page_size) if params.page_size > 0 else 1
        return cls(
            items=items,
            total_items=total_items,
            total_pages=total_pages,
            current_page=params.page,
            page_size=params.page_size,
            has_next=params.page < total_pages,
            has_prev=params.page > 1,
        )

