from typing import List
from dataclasses import dataclass, field
from datetime import date

from .base import DocumentRepository, InMemoryDocumentRepository, InMemoryStore, ItemIdCounter
from schemas.common import DocumentType
from schemas.sales import (
    Delivery,
    Invoice,
    InvoiceStatus,
    Payment,
    PurchaseOrder,
    Quotation,
    QuotationStatus,
    SalesOrder,
)


class QuotationQueries:
    def get_expiring(self, start: date, end: date) -> List[Quotation]:
        """Sent quotations whose expiry date falls within [start, end]"""
        return self._filter(
            lambda q: q.status == QuotationStatus.SENT
            and q.expiry_date is not None
            and start <= q.expiry_date <= end
        )

    def get_expired(self, today: date) -> List[Quotation]:
        """Sent quotations already past their expiry date"""
        return self._filter(
            lambda q: q.status == QuotationStatus.SENT
            and q.expiry_date is not None
            and q.expiry_date < today
        )


class InvoiceQueries:
    def get_past_due(self, today: date) -> List[Invoice]:
        """Sent or partially paid invoices past due with an open balance"""
        return self._filter(
            lambda inv: inv.status in (InvoiceStatus.SENT, InvoiceStatus.PARTIAL)
            and inv.due_date is not None
            and inv.due_date < today
            and inv.balance > 0
        )


class DeliveryQueries:
    def list_by_purchase_order(self, purchase_order_id: int) -> List[Delivery]:
        return self._filter(lambda d: d.purchase_order_id == purchase_order_id)


class QuotationRepository(QuotationQueries, InMemoryDocumentRepository[Quotation]):
    def __init__(self):
        super().__init__(Quotation)


class SalesOrderRepository(InMemoryDocumentRepository[SalesOrder]):
    def __init__(self):
        super().__init__(SalesOrder)


class PurchaseOrderRepository(InMemoryDocumentRepository[PurchaseOrder]):
    def __init__(self):
        super().__init__(PurchaseOrder)


class InvoiceRepository(InvoiceQueries, InMemoryDocumentRepository[Invoice]):
    def __init__(self):
        super().__init__(Invoice)


class DeliveryRepository(DeliveryQueries, InMemoryDocumentRepository[Delivery]):
    def __init__(self):
        super().__init__(Delivery)


class PaymentRepository(InMemoryStore[Payment]):
    def __init__(self):
        super().__init__(Payment)

    def get_by_id(self, payment_id: int) -> Payment:
        return self._copy(self._get_row(payment_id))

    def create(self, payment: Payment) -> Payment:
        return self._insert(payment)

    def list_by_invoice(self, invoice_id: int) -> List[Payment]:
        return self._filter(lambda p: p.invoice_id == invoice_id)


@dataclass
class SalesRepositories:
    """One repository per document type plus payments."""
    quotations: QuotationRepository = field(default_factory=QuotationRepository)
    sales_orders: SalesOrderRepository = field(default_factory=SalesOrderRepository)
    purchase_orders: PurchaseOrderRepository = field(default_factory=PurchaseOrderRepository)
    invoices: InvoiceRepository = field(default_factory=InvoiceRepository)
    deliveries: DeliveryRepository = field(default_factory=DeliveryRepository)
    payments: PaymentRepository = field(default_factory=PaymentRepository)

    def __post_init__(self):
        # One item id sequence across every document type
        documents = self.documents()
        if len({id(repo.item_ids) for repo in documents}) > 1:
            shared = ItemIdCounter(max(repo.item_ids.value for repo in documents))
            for repo in documents:
                repo.item_ids = shared

    def documents(self) -> List[DocumentRepository]:
        return [self.quotations, self.sales_orders, self.purchase_orders, self.invoices, self.deliveries]

    def for_type(self, doc_type: DocumentType) -> DocumentRepository:
        return {
            DocumentType.QUOTATION: self.quotations,
            DocumentType.SALES_ORDER: self.sales_orders,
            DocumentType.PURCHASE_ORDER: self.purchase_orders,
            DocumentType.INVOICE: self.invoices,
            DocumentType.DELIVERY: self.deliveries,
        }[DocumentType(doc_type)]

    def all(self) -> List[InMemoryStore]:
        return self.documents() + [self.payments]
