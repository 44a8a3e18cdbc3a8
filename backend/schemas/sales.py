from pydantic import BaseModel, Field, computed_field, model_validator
from typing import ClassVar, Dict, List, Optional
from datetime import datetime, date
from decimal import Decimal
from enum import Enum

from .common import DocumentType, LineItem


class QuotationStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

class SalesOrderStatus(str, Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class PurchaseOrderStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    CONFIRMED = "confirmed"
    RECEIVED = "received"
    CANCELLED = "cancelled"

class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"

class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    RETURNED = "returned"
    CANCELLED = "cancelled"

class DeliveryItemStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETE = "complete"


class SalesDocument(BaseModel):
    """Header fields shared by every document in the sales chain."""
    document_type: ClassVar[DocumentType]
    origin_field: ClassVar[Optional[str]] = None

    id: Optional[int] = None
    number: str = ""
    contact_id: Optional[int] = None
    status: str
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def origin_id(self) -> Optional[int]:
        if self.origin_field is None:
            return None
        return getattr(self, self.origin_field)


class PricedDocument(SalesDocument):
    """Document whose items carry prices; totals are derived from the items."""
    items: List[LineItem] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    discount_total: Decimal = Decimal("0")
    tax_total: Decimal = Decimal("0")
    grand_total: Decimal = Decimal("0")

    def find_item(self, item_id: int) -> Optional[LineItem]:
        return next((item for item in self.items if item.id == item_id), None)


class Quotation(PricedDocument):
    document_type: ClassVar[DocumentType] = DocumentType.QUOTATION

    status: QuotationStatus = QuotationStatus.DRAFT
    expiry_date: Optional[date] = None
    terms: str = ""


class SalesOrder(PricedDocument):
    document_type: ClassVar[DocumentType] = DocumentType.SALES_ORDER
    origin_field: ClassVar[Optional[str]] = "quotation_id"

    quotation_id: Optional[int] = None
    status: SalesOrderStatus = SalesOrderStatus.DRAFT
    expected_date: Optional[date] = None
    payment_terms: str = ""
    shipping_address: str = ""


class PurchaseOrder(PricedDocument):
    document_type: ClassVar[DocumentType] = DocumentType.PURCHASE_ORDER
    origin_field: ClassVar[Optional[str]] = "sales_order_id"

    sales_order_id: Optional[int] = None
    sales_order_number: str = ""
    status: PurchaseOrderStatus = PurchaseOrderStatus.DRAFT
    expected_date: Optional[date] = None
    payment_terms: str = ""
    shipping_address: str = ""


class Invoice(PricedDocument):
    document_type: ClassVar[DocumentType] = DocumentType.INVOICE
    origin_field: ClassVar[Optional[str]] = "sales_order_id"

    sales_order_id: Optional[int] = None
    sales_order_number: str = ""
    status: InvoiceStatus = InvoiceStatus.DRAFT
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_terms: str = ""
    amount_paid: Decimal = Decimal("0")

    @computed_field
    @property
    def balance(self) -> Decimal:
        return self.grand_total - self.amount_paid


class DeliveryItem(BaseModel):
    id: Optional[int] = None
    source_item_id: Optional[int] = None
    product_id: int
    product_name: str = ""
    product_code: str = ""
    description: str = ""
    quantity: int = Field(..., gt=0)
    received_qty: int = Field(0, ge=0)
    notes: str = ""

    @computed_field
    @property
    def status(self) -> DeliveryItemStatus:
        if self.received_qty <= 0:
            return DeliveryItemStatus.PENDING
        if self.received_qty >= self.quantity:
            return DeliveryItemStatus.COMPLETE
        return DeliveryItemStatus.PARTIAL

    @property
    def pending_qty(self) -> int:
        return max(self.quantity - self.received_qty, 0)


class Delivery(SalesDocument):
    document_type: ClassVar[DocumentType] = DocumentType.DELIVERY
    origin_field: ClassVar[Optional[str]] = "sales_order_id"

    sales_order_id: Optional[int] = None
    sales_order_number: str = ""
    purchase_order_id: Optional[int] = None
    purchase_order_number: str = ""
    status: DeliveryStatus = DeliveryStatus.PENDING
    delivery_date: Optional[date] = None
    received_date: Optional[date] = None
    shipping_method: str = ""
    tracking_number: str = ""
    shipping_address: str = ""
    items: List[DeliveryItem] = Field(default_factory=list)

    def find_item(self, item_id: int) -> Optional[DeliveryItem]:
        return next((item for item in self.items if item.id == item_id), None)

    @property
    def is_complete(self) -> bool:
        return bool(self.items) and all(item.status == DeliveryItemStatus.COMPLETE for item in self.items)


class Payment(BaseModel):
    id: Optional[int] = None
    invoice_id: int
    amount: Decimal = Field(..., gt=0)
    payment_date: Optional[date] = None
    payment_method: str = ""
    reference: str = ""
    notes: str = ""
    created_at: Optional[datetime] = None


class ShippingInfo(BaseModel):
    delivery_date: Optional[date] = None
    shipping_method: str = ""
    tracking_number: str = ""
    shipping_address: str = ""
    notes: str = ""


class CloneOptions(BaseModel):
    contact_id: Optional[int] = None
    date_override: Optional[date] = None
    price_adjustment_pct: Optional[Decimal] = None
    copy_notes: bool = True
    item_ids: Optional[List[int]] = None


class DocumentFilter(BaseModel):
    """Search criteria; dates apply to ``created_at`` and values to ``grand_total``."""
    status: Optional[str] = None
    contact_id: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    min_value: Optional[Decimal] = Field(None, ge=0)
    max_value: Optional[Decimal] = Field(None, ge=0)
    query: Optional[str] = None

    @model_validator(mode="after")
    def validate_ranges(self) -> "DocumentFilter":
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to must be after date_from")
        if self.min_value is not None and self.max_value is not None and self.max_value < self.min_value:
            raise ValueError("max_value must be greater than min_value")
        return self


class FulfillmentLine(BaseModel):
    item_id: int
    product_id: int
    product_name: str = ""
    ordered: int
    delivered: int = 0
    invoiced: int = 0

    @computed_field
    @property
    def remaining_to_deliver(self) -> int:
        return max(self.ordered - self.delivered, 0)

    @computed_field
    @property
    def remaining_to_invoice(self) -> int:
        return max(self.ordered - self.invoiced, 0)


class FulfillmentReport(BaseModel):
    sales_order_id: int
    lines: List[FulfillmentLine]
    delivery_ids: List[int] = Field(default_factory=list)
    invoice_ids: List[int] = Field(default_factory=list)
    purchase_order_ids: List[int] = Field(default_factory=list)

    @property
    def fully_delivered(self) -> bool:
        return all(line.remaining_to_deliver == 0 for line in self.lines)

    @property
    def fully_invoiced(self) -> bool:
        return all(line.remaining_to_invoice == 0 for line in self.lines)


DOCUMENT_MODELS: Dict[DocumentType, type] = {
    DocumentType.QUOTATION: Quotation,
    DocumentType.SALES_ORDER: SalesOrder,
    DocumentType.PURCHASE_ORDER: PurchaseOrder,
    DocumentType.INVOICE: Invoice,
    DocumentType.DELIVERY: Delivery,
}
