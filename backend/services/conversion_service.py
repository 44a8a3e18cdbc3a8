"""
Document conversion service.

Derives sales orders from quotations, purchase orders, invoices and
deliveries from sales orders, and clones priced documents. Every
conversion writes the new document and its source inside one unit of work.
"""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from config.logging import get_logger, log_document_event
from config.settings import Settings, get_settings
from core.exceptions import EmptyDocumentError, InvalidStateError, ItemNotFoundError, ValidationError
from repositories.sales_repo import SalesRepositories
from repositories.unit_of_work import UnitOfWork
from schemas.common import DocumentType, LineItem
from schemas.sales import (
    CloneOptions,
    Delivery,
    DeliveryItem,
    DeliveryStatus,
    FulfillmentLine,
    FulfillmentReport,
    Invoice,
    InvoiceStatus,
    PricedDocument,
    PurchaseOrder,
    Quotation,
    QuotationStatus,
    SalesOrder,
    SalesOrderStatus,
    ShippingInfo,
)
from services.sequence import DocumentNumberGenerator
from services.status_machine import INITIAL_STATUS, document_type_of, is_valid_transition, status_value, transition
from services.totals import HUNDRED, apply_totals, to_decimal
from utils.date_utils import Clock, DateUtils

logger = get_logger("services")

PURCHASE_ORDER_SOURCE_STATUSES = frozenset({SalesOrderStatus.CONFIRMED.value, SalesOrderStatus.PROCESSING.value})
INVOICE_SOURCE_STATUSES = frozenset({
    SalesOrderStatus.CONFIRMED.value,
    SalesOrderStatus.PROCESSING.value,
    SalesOrderStatus.COMPLETED.value,
})
DELIVERY_SOURCE_STATUSES = frozenset({SalesOrderStatus.CONFIRMED.value, SalesOrderStatus.PROCESSING.value})

# Deliveries and invoices in these statuses do not count toward fulfillment
INACTIVE_DELIVERY_STATUSES = frozenset({DeliveryStatus.CANCELLED.value, DeliveryStatus.RETURNED.value})
INACTIVE_INVOICE_STATUSES = frozenset({InvoiceStatus.CANCELLED.value})


def copy_line_items(items: Iterable[LineItem], keep_totals: bool = True, zero_prices: bool = False,
                    price_factor: Optional[Decimal] = None, trace: bool = True) -> List[LineItem]:
    """Fresh, unsaved copies of items; the stored id moves to ``source_item_id``."""
    copies = []
    for item in items:
        line = item.line.model_copy()
        if zero_prices:
            line = line.model_copy(update={"unit_price": Decimal("0")})
        elif price_factor is not None:
            line = line.model_copy(update={"unit_price": line.unit_price * price_factor})
        copies.append(LineItem(
            source_item_id=item.id if trace else None,
            line=line,
            total=item.total if keep_totals else Decimal("0"),
        ))
    return copies


def select_items(document: PricedDocument, item_ids: Optional[Iterable[int]]) -> List[LineItem]:
    """Items in ``item_ids`` order, or every item when ``item_ids`` is None.

    Repeated ids select their item once.
    """
    if item_ids is None:
        return list(document.items)
    selected = []
    for item_id in dict.fromkeys(item_ids):
        item = document.find_item(item_id)
        if item is None:
            raise ItemNotFoundError(document.document_type.value, document.id, item_id)
        selected.append(item)
    return selected


class ConversionService:
    def __init__(
        self,
        repositories: SalesRepositories,
        unit_of_work: UnitOfWork,
        numbers: DocumentNumberGenerator,
        clock: Clock,
        settings: Optional[Settings] = None
    ):
        self.repos = repositories
        self.uow = unit_of_work
        self.numbers = numbers
        self.clock = clock
        self.settings = settings or get_settings()

    def _require_status(self, document, allowed: Iterable[str], action: str) -> None:
        current = status_value(document.status)
        if current not in allowed:
            logger.warning(f"Rejected {action} for {document.document_type.value} #{document.id} in status {current}")
            raise InvalidStateError(
                f"{document.document_type.value} #{document.id} cannot {action} in status {current}",
                document_type=document.document_type.value,
                document_id=document.id,
                current_status=current
            )

    def convert_quotation_to_sales_order(
        self,
        quotation_id: int,
        expected_date: Optional[date] = None,
        payment_terms: str = "",
        shipping_address: str = ""
    ) -> SalesOrder:
        """Copy a quotation into a new draft sales order, items and totals verbatim."""
        quotation = self.repos.quotations.get_by_id(quotation_id)
        self._require_status(quotation, self.settings.QUOTATION_CONVERTIBLE_STATUSES, "be converted to a sales order")

        existing = self.repos.sales_orders.get_by_origin_document(quotation.id)
        if existing is not None:
            raise InvalidStateError(
                f"Quotation #{quotation.id} was already converted to sales order {existing.number}",
                document_type=DocumentType.QUOTATION.value,
                document_id=quotation.id,
                current_status=status_value(quotation.status)
            )

        now = self.clock.now()
        order = SalesOrder(
            number=self.numbers.next_number(DocumentType.SALES_ORDER),
            quotation_id=quotation.id,
            contact_id=quotation.contact_id,
            status=INITIAL_STATUS[DocumentType.SALES_ORDER],
            expected_date=expected_date or DateUtils.add_days(self.clock.today(), self.settings.DEFAULT_EXPECTED_DAYS),
            payment_terms=payment_terms,
            shipping_address=shipping_address,
            notes=quotation.notes,
            items=copy_line_items(quotation.items),
            subtotal=quotation.subtotal,
            discount_total=quotation.discount_total,
            tax_total=quotation.tax_total,
            grand_total=quotation.grand_total,
            created_at=now,
            updated_at=now,
        )

        with self.uow:
            created = self.repos.sales_orders.create(order)
            if self.settings.ACCEPT_QUOTATION_ON_CONVERSION and is_valid_transition(
                DocumentType.QUOTATION, quotation.status, QuotationStatus.ACCEPTED
            ):
                transition(quotation, QuotationStatus.ACCEPTED, now=now)
                self.repos.quotations.update(quotation)

        log_document_event("converted", DocumentType.QUOTATION.value, quotation.id, f"sales order {created.number}")
        return created

    def create_purchase_order_from_sales_order(
        self,
        sales_order_id: int,
        contact_id: int,
        item_ids: List[int],
        expected_date: Optional[date] = None,
        use_sales_prices: bool = False,
        notes: str = ""
    ) -> PurchaseOrder:
        """Supplier order for selected sales order items; prices zeroed unless use_sales_prices."""
        order = self.repos.sales_orders.get_by_id(sales_order_id)
        self._require_status(order, PURCHASE_ORDER_SOURCE_STATUSES, "create a purchase order")
        if not item_ids:
            raise EmptyDocumentError(DocumentType.PURCHASE_ORDER.value, source=f"sales order {order.number}")

        now = self.clock.now()
        purchase_order = PurchaseOrder(
            number=self.numbers.next_number(DocumentType.PURCHASE_ORDER),
            sales_order_id=order.id,
            sales_order_number=order.number,
            contact_id=contact_id,
            status=INITIAL_STATUS[DocumentType.PURCHASE_ORDER],
            expected_date=expected_date or DateUtils.add_days(self.clock.today(), self.settings.DEFAULT_EXPECTED_DAYS),
            payment_terms=order.payment_terms,
            shipping_address=order.shipping_address,
            notes=notes,
            items=copy_line_items(select_items(order, item_ids), keep_totals=False, zero_prices=not use_sales_prices),
            created_at=now,
            updated_at=now,
        )
        apply_totals(purchase_order)

        with self.uow:
            created = self.repos.purchase_orders.create(purchase_order)

        log_document_event("converted", DocumentType.SALES_ORDER.value, order.id, f"purchase order {created.number}")
        return created

    def create_invoice_from_sales_order(
        self,
        sales_order_id: int,
        item_ids: Optional[List[int]] = None,
        issue_date: Optional[date] = None,
        due_date: Optional[date] = None,
        payment_terms: Optional[str] = None,
        notes: str = ""
    ) -> Invoice:
        """Invoice selected (or all) items at sales prices; totals recomputed."""
        order = self.repos.sales_orders.get_by_id(sales_order_id)
        self._require_status(order, INVOICE_SOURCE_STATUSES, "create an invoice")

        items = select_items(order, item_ids)
        if not items:
            raise EmptyDocumentError(DocumentType.INVOICE.value, source=f"sales order {order.number}")

        issue_date = issue_date or self.clock.today()
        due_date = due_date or DateUtils.add_days(issue_date, self.settings.DEFAULT_PAYMENT_TERM_DAYS)
        if due_date < issue_date:
            raise ValidationError("Due date cannot be before issue date", field="due_date")

        now = self.clock.now()
        invoice = Invoice(
            number=self.numbers.next_number(DocumentType.INVOICE),
            sales_order_id=order.id,
            sales_order_number=order.number,
            contact_id=order.contact_id,
            status=INITIAL_STATUS[DocumentType.INVOICE],
            issue_date=issue_date,
            due_date=due_date,
            payment_terms=order.payment_terms if payment_terms is None else payment_terms,
            notes=notes,
            items=copy_line_items(items, keep_totals=False),
            created_at=now,
            updated_at=now,
        )
        apply_totals(invoice)

        with self.uow:
            created = self.repos.invoices.create(invoice)

        log_document_event("converted", DocumentType.SALES_ORDER.value, order.id, f"invoice {created.number}")
        return created

    def create_delivery_from_sales_order(
        self,
        sales_order_id: int,
        item_ids: Optional[List[int]] = None,
        quantities: Optional[Dict[int, int]] = None,
        shipping_info: Optional[ShippingInfo] = None
    ) -> Delivery:
        """
        Delivery for selected items. Each quantity is the requested amount
        capped at the ordered amount; lines that end up at zero are dropped.
        A confirmed sales order moves to processing.
        """
        order = self.repos.sales_orders.get_by_id(sales_order_id)
        self._require_status(order, DELIVERY_SOURCE_STATUSES, "create a delivery")

        quantities = quantities or {}
        shipping_info = shipping_info or ShippingInfo()

        selected = select_items(order, item_ids)
        selected_ids = {item.id for item in selected}
        for item_id in quantities:
            if order.find_item(item_id) is None:
                raise ItemNotFoundError(DocumentType.SALES_ORDER.value, order.id, item_id)
            if item_id not in selected_ids:
                raise ValidationError(
                    f"Quantity given for sales order item {item_id} that is not selected for delivery",
                    field="quantities"
                )

        delivery_items = []
        for item in selected:
            requested = quantities.get(item.id, item.quantity)
            quantity = max(0, min(requested, item.quantity))
            if quantity == 0:
                continue
            delivery_items.append(DeliveryItem(
                source_item_id=item.id,
                product_id=item.line.product_id,
                product_name=item.line.product_name,
                product_code=item.line.product_code,
                description=item.line.description,
                quantity=quantity,
            ))

        if not delivery_items:
            raise EmptyDocumentError(DocumentType.DELIVERY.value, source=f"sales order {order.number}")

        now = self.clock.now()
        delivery = Delivery(
            number=self.numbers.next_number(DocumentType.DELIVERY),
            sales_order_id=order.id,
            sales_order_number=order.number,
            contact_id=order.contact_id,
            status=INITIAL_STATUS[DocumentType.DELIVERY],
            delivery_date=shipping_info.delivery_date or self.clock.today(),
            shipping_method=shipping_info.shipping_method,
            tracking_number=shipping_info.tracking_number,
            shipping_address=shipping_info.shipping_address or order.shipping_address,
            notes=shipping_info.notes,
            items=delivery_items,
            created_at=now,
            updated_at=now,
        )

        with self.uow:
            created = self.repos.deliveries.create(delivery)
            if order.status == SalesOrderStatus.CONFIRMED:
                transition(order, SalesOrderStatus.PROCESSING, now=now)
                self.repos.sales_orders.update(order)

        log_document_event("converted", DocumentType.SALES_ORDER.value, order.id, f"delivery {created.number}")
        return created

    def clone(self, doc_type: DocumentType, document_id: int, options: Optional[CloneOptions] = None) -> PricedDocument:
        """Copy a priced document into a new draft of the same type with no origin."""
        doc_type = document_type_of(doc_type)
        if doc_type == DocumentType.DELIVERY:
            raise ValidationError("Deliveries cannot be cloned", field="doc_type")

        options = options or CloneOptions()
        repository = self.repos.for_type(doc_type)
        source = repository.get_by_id(document_id)

        items = select_items(source, options.item_ids)
        if not items:
            raise EmptyDocumentError(doc_type.value, source=f"clone of {source.number}")

        price_factor = None
        if options.price_adjustment_pct is not None:
            price_factor = 1 + to_decimal(options.price_adjustment_pct) / HUNDRED
            if price_factor < 0:
                raise ValidationError("Price adjustment cannot reduce prices below zero", field="price_adjustment_pct")

        now = self.clock.now()
        update = {
            "id": None,
            "number": self.numbers.next_number(doc_type),
            "status": INITIAL_STATUS[doc_type],
            "contact_id": options.contact_id if options.contact_id is not None else source.contact_id,
            "notes": source.notes if options.copy_notes else "",
            "items": copy_line_items(items, keep_totals=False, price_factor=price_factor, trace=False),
            "created_at": now,
            "updated_at": now,
        }
        if source.origin_field is not None:
            update[source.origin_field] = None
        update.update(self._clone_dates(source, options.date_override))
        if isinstance(source, Invoice):
            update["amount_paid"] = Decimal("0")
        if isinstance(source, (PurchaseOrder, Invoice)):
            update["sales_order_number"] = ""

        clone = source.model_copy(update=update, deep=True)
        apply_totals(clone)

        with self.uow:
            created = repository.create(clone)

        log_document_event("cloned", doc_type.value, source.id, f"as {created.number}")
        return created

    def _clone_dates(self, source: PricedDocument, date_override: Optional[date]) -> Dict[str, date]:
        today = self.clock.today()
        if isinstance(source, Quotation):
            return {"expiry_date": date_override or DateUtils.add_months(today, self.settings.DEFAULT_EXPIRY_MONTHS)}
        if isinstance(source, Invoice):
            issue_date = date_override or today
            return {
                "issue_date": issue_date,
                "due_date": DateUtils.add_days(issue_date, self.settings.DEFAULT_PAYMENT_TERM_DAYS),
            }
        return {"expected_date": date_override or DateUtils.add_days(today, self.settings.DEFAULT_EXPECTED_DAYS)}

    def get_fulfillment(self, sales_order_id: int) -> FulfillmentReport:
        """Ordered, delivered and invoiced quantity per sales order item."""
        order = self.repos.sales_orders.get_by_id(sales_order_id)

        deliveries = [
            d for d in self.repos.deliveries.list_by_origin_document(order.id)
            if status_value(d.status) not in INACTIVE_DELIVERY_STATUSES
        ]
        invoices = [
            inv for inv in self.repos.invoices.list_by_origin_document(order.id)
            if status_value(inv.status) not in INACTIVE_INVOICE_STATUSES
        ]
        purchase_orders = self.repos.purchase_orders.list_by_origin_document(order.id)

        delivered: Dict[int, int] = {}
        for delivery in deliveries:
            for item in delivery.items:
                delivered[item.source_item_id] = delivered.get(item.source_item_id, 0) + item.quantity

        invoiced: Dict[int, int] = {}
        for invoice in invoices:
            for item in invoice.items:
                invoiced[item.source_item_id] = invoiced.get(item.source_item_id, 0) + item.quantity

        lines = [
            FulfillmentLine(
                item_id=item.id,
                product_id=item.product_id,
                product_name=item.line.product_name,
                ordered=item.quantity,
                delivered=delivered.get(item.id, 0),
                invoiced=invoiced.get(item.id, 0),
            )
            for item in order.items
        ]

        return FulfillmentReport(
            sales_order_id=order.id,
            lines=lines,
            delivery_ids=[d.id for d in deliveries],
            invoice_ids=[inv.id for inv in invoices],
            purchase_order_ids=[po.id for po in purchase_orders],
        )
