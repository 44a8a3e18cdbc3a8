"""
Document lifecycle service: direct creation, item editing, status changes,
payments, delivery receipts and the scheduled expiry/overdue sweeps.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from config.logging import get_logger, log_document_event
from config.settings import Settings, get_settings
from core.exceptions import (
    ErrorDetail,
    InvalidAmountError,
    InvalidStateError,
    ItemNotFoundError,
    ValidationError,
)
from repositories.sales_repo import SalesRepositories
from repositories.unit_of_work import UnitOfWork
from schemas.common import CommonItemFields, DocumentType, LineItem, PagedResult, PaginationParams
from schemas.sales import (
    Delivery,
    DeliveryStatus,
    DocumentFilter,
    Invoice,
    InvoiceStatus,
    Payment,
    PricedDocument,
    PurchaseOrder,
    Quotation,
    QuotationStatus,
    SalesDocument,
    SalesOrder,
)
from services.sequence import DocumentNumberGenerator
from services.status_machine import (
    INITIAL_STATUS,
    document_type_of,
    is_editable,
    parse_status,
    status_value,
    transition,
)
from services.totals import ZERO, apply_totals, price_item, to_decimal
from utils.date_utils import Clock, DateUtils

logger = get_logger("services")

ItemInput = Union[CommonItemFields, Dict[str, Any]]

PAYABLE_STATUSES = frozenset({InvoiceStatus.SENT.value, InvoiceStatus.PARTIAL.value, InvoiceStatus.OVERDUE.value})
RECEIVABLE_STATUSES = frozenset({DeliveryStatus.PENDING.value, DeliveryStatus.SHIPPED.value})

# Header fields update_document may replace, per type
UPDATABLE_FIELDS = {
    DocumentType.QUOTATION: frozenset({"expiry_date", "notes", "terms"}),
    DocumentType.SALES_ORDER: frozenset({"expected_date", "payment_terms", "shipping_address", "notes"}),
    DocumentType.PURCHASE_ORDER: frozenset({"expected_date", "payment_terms", "shipping_address", "notes"}),
    DocumentType.INVOICE: frozenset({"issue_date", "due_date", "payment_terms", "notes"}),
}


def to_item_fields(value: ItemInput) -> CommonItemFields:
    """Validate raw item input, reporting every problem as one ValidationError."""
    if isinstance(value, CommonItemFields):
        return value
    try:
        return CommonItemFields(**value)
    except PydanticValidationError as e:
        errors = [
            ErrorDetail(
                code="INVALID_ITEM",
                message=err["msg"],
                field=".".join(str(part) for part in err["loc"]),
            )
            for err in e.errors()
        ]
        raise ValidationError("Invalid line item", field=errors[0].field if errors else None, errors=errors)


def to_filter(value: Optional[Union[DocumentFilter, Dict[str, Any]]]) -> DocumentFilter:
    if value is None:
        return DocumentFilter()
    if isinstance(value, DocumentFilter):
        return value.model_copy()
    try:
        return DocumentFilter(**value)
    except PydanticValidationError as e:
        errors = [
            ErrorDetail(code="INVALID_FILTER", message=err["msg"], field=".".join(str(part) for part in err["loc"]))
            for err in e.errors()
        ]
        raise ValidationError("Invalid search filter", field=errors[0].field if errors else None, errors=errors)


class DocumentService:
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

    # =========================================================================
    # CREATION
    # =========================================================================

    def _create_priced(self, document: PricedDocument, items: Optional[List[ItemInput]]) -> PricedDocument:
        now = self.clock.now()
        doc_type = document.document_type
        document.number = self.numbers.next_number(doc_type)
        document.status = INITIAL_STATUS[doc_type]
        document.items = [LineItem(line=to_item_fields(item)) for item in items or []]
        document.created_at = now
        document.updated_at = now
        apply_totals(document)

        with self.uow:
            created = self.repos.for_type(doc_type).create(document)
        log_document_event("created", doc_type.value, created.id, created.number)
        return created

    def create_quotation(
        self,
        contact_id: int,
        items: Optional[List[ItemInput]] = None,
        expiry_date: Optional[date] = None,
        notes: str = "",
        terms: str = ""
    ) -> Quotation:
        expiry_date = expiry_date or DateUtils.add_months(self.clock.today(), self.settings.DEFAULT_EXPIRY_MONTHS)
        return self._create_priced(
            Quotation(contact_id=contact_id, expiry_date=expiry_date, notes=notes, terms=terms),
            items,
        )

    def create_sales_order(
        self,
        contact_id: int,
        items: Optional[List[ItemInput]] = None,
        expected_date: Optional[date] = None,
        payment_terms: str = "",
        shipping_address: str = "",
        notes: str = ""
    ) -> SalesOrder:
        expected_date = expected_date or DateUtils.add_days(self.clock.today(), self.settings.DEFAULT_EXPECTED_DAYS)
        return self._create_priced(
            SalesOrder(
                contact_id=contact_id,
                expected_date=expected_date,
                payment_terms=payment_terms,
                shipping_address=shipping_address,
                notes=notes,
            ),
            items,
        )

    def create_purchase_order(
        self,
        contact_id: int,
        items: Optional[List[ItemInput]] = None,
        expected_date: Optional[date] = None,
        payment_terms: str = "",
        shipping_address: str = "",
        notes: str = ""
    ) -> PurchaseOrder:
        expected_date = expected_date or DateUtils.add_days(self.clock.today(), self.settings.DEFAULT_EXPECTED_DAYS)
        return self._create_priced(
            PurchaseOrder(
                contact_id=contact_id,
                expected_date=expected_date,
                payment_terms=payment_terms,
                shipping_address=shipping_address,
                notes=notes,
            ),
            items,
        )

    def create_invoice(
        self,
        contact_id: int,
        items: Optional[List[ItemInput]] = None,
        issue_date: Optional[date] = None,
        due_date: Optional[date] = None,
        payment_terms: str = "",
        notes: str = ""
    ) -> Invoice:
        issue_date = issue_date or self.clock.today()
        due_date = due_date or DateUtils.add_days(issue_date, self.settings.DEFAULT_PAYMENT_TERM_DAYS)
        if due_date < issue_date:
            raise ValidationError("Due date cannot be before issue date", field="due_date")
        return self._create_priced(
            Invoice(
                contact_id=contact_id,
                issue_date=issue_date,
                due_date=due_date,
                payment_terms=payment_terms,
                notes=notes,
            ),
            items,
        )

    def get_document(self, doc_type: DocumentType, document_id: int) -> SalesDocument:
        return self.repos.for_type(document_type_of(doc_type)).get_by_id(document_id)

    def update_document(
        self,
        doc_type: DocumentType,
        document_id: int,
        items: Optional[List[ItemInput]] = None,
        **fields: Any
    ) -> PricedDocument:
        """
        Replace header fields and, when ``items`` is given, the whole item list.
        Number, contact, status and origin are kept; totals are recomputed.
        """
        document = self._load_editable(doc_type, document_id)
        doc_type = document.document_type

        unknown = sorted(set(fields) - UPDATABLE_FIELDS[doc_type])
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated on a {doc_type.value}: {', '.join(unknown)}",
                field=unknown[0]
            )
        for name, value in fields.items():
            setattr(document, name, value)
        if isinstance(document, Invoice) and document.issue_date and document.due_date \
                and document.due_date < document.issue_date:
            raise ValidationError("Due date cannot be before issue date", field="due_date")

        if items is not None:
            document.items = [LineItem(line=to_item_fields(item)) for item in items]
        return self._save_items(document, document.items, "updated")

    def find(
        self,
        doc_type: DocumentType,
        criteria: Optional[Union[DocumentFilter, Dict[str, Any]]] = None,
        params: Optional[PaginationParams] = None
    ) -> PagedResult:
        """Page of documents matching status, contact, date range, value range and text."""
        doc_type = document_type_of(doc_type)
        criteria = to_filter(criteria)
        if criteria.status is not None:
            criteria.status = status_value(parse_status(doc_type, criteria.status))

        params = params or PaginationParams(page_size=self.settings.DEFAULT_PAGE_SIZE)
        if params.page_size > self.settings.MAX_PAGE_SIZE:
            raise ValidationError(
                f"Page size cannot exceed {self.settings.MAX_PAGE_SIZE}",
                field="page_size"
            )
        return self.repos.for_type(doc_type).find(criteria, params)

    # =========================================================================
    # ITEMS
    # =========================================================================

    def _load_editable(self, doc_type: DocumentType, document_id: int) -> PricedDocument:
        doc_type = document_type_of(doc_type)
        if doc_type == DocumentType.DELIVERY:
            raise ValidationError("Delivery items change only through receipts", field="doc_type")

        document = self.repos.for_type(doc_type).get_by_id(document_id)
        if not is_editable(doc_type, document.status):
            current = status_value(document.status)
            raise InvalidStateError(
                f"Items of {doc_type.value} #{document_id} cannot be changed in status {current}",
                document_type=doc_type.value,
                document_id=document_id,
                current_status=current
            )
        return document

    def _save_items(self, document: PricedDocument, items: List[LineItem], event: str) -> PricedDocument:
        document.items = items
        document.updated_at = self.clock.now()
        apply_totals(document)
        with self.uow:
            saved = self.repos.for_type(document.document_type).update(document)
        log_document_event(event, document.document_type.value, document.id)
        return saved

    def add_item(self, doc_type: DocumentType, document_id: int, item: ItemInput) -> PricedDocument:
        document = self._load_editable(doc_type, document_id)
        new_item = price_item(LineItem(line=to_item_fields(item)))
        return self._save_items(document, document.items + [new_item], "item_added")

    def update_item(self, doc_type: DocumentType, document_id: int, item_id: int, item: ItemInput) -> PricedDocument:
        document = self._load_editable(doc_type, document_id)
        if document.find_item(item_id) is None:
            raise ItemNotFoundError(document.document_type.value, document_id, item_id)

        fields = to_item_fields(item)
        items = [
            existing.model_copy(update={"line": fields}) if existing.id == item_id else existing
            for existing in document.items
        ]
        return self._save_items(document, items, "item_updated")

    def remove_item(self, doc_type: DocumentType, document_id: int, item_id: int) -> PricedDocument:
        document = self._load_editable(doc_type, document_id)
        if document.find_item(item_id) is None:
            raise ItemNotFoundError(document.document_type.value, document_id, item_id)

        items = [existing for existing in document.items if existing.id != item_id]
        return self._save_items(document, items, "item_removed")

    # =========================================================================
    # STATUS
    # =========================================================================

    def change_status(self, doc_type: DocumentType, document_id: int, new_status: Any,
                      reason: Optional[str] = None) -> SalesDocument:
        repository = self.repos.for_type(document_type_of(doc_type))
        document = repository.get_by_id(document_id)
        previous = status_value(document.status)

        transition(document, new_status, reason=reason, now=self.clock.now())
        if status_value(document.status) == previous:
            return document
        with self.uow:
            saved = repository.update(document)

        log_document_event(
            "status_changed",
            document.document_type.value,
            document.id,
            f"{previous} -> {status_value(saved.status)}"
        )
        return saved

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    def record_payment(
        self,
        invoice_id: int,
        amount: Any,
        payment_date: Optional[date] = None,
        payment_method: str = "",
        reference: str = "",
        notes: str = ""
    ) -> Payment:
        """Store a payment and move the invoice to partial or paid."""
        invoice = self.repos.invoices.get_by_id(invoice_id)
        current = status_value(invoice.status)
        if current not in PAYABLE_STATUSES:
            raise InvalidStateError(
                f"Invoice #{invoice_id} cannot receive payments in status {current}",
                document_type=DocumentType.INVOICE.value,
                document_id=invoice_id,
                current_status=current
            )

        amount = to_decimal(amount)
        if amount <= ZERO:
            raise InvalidAmountError("amount", amount, "Payment amount must be positive")
        if amount > invoice.balance and not self.settings.ALLOW_OVERPAYMENT:
            raise InvalidAmountError("amount", amount, f"Payment exceeds the outstanding balance of {invoice.balance}")

        now = self.clock.now()
        payment = Payment(
            invoice_id=invoice.id,
            amount=amount,
            payment_date=payment_date or self.clock.today(),
            payment_method=payment_method,
            reference=reference,
            notes=notes,
            created_at=now,
        )

        with self.uow:
            created = self.repos.payments.create(payment)
            invoice.amount_paid = invoice.amount_paid + amount
            target = InvoiceStatus.PAID if invoice.balance <= ZERO else InvoiceStatus.PARTIAL
            transition(invoice, target, now=now)
            self.repos.invoices.update(invoice)

        log_document_event("payment_recorded", DocumentType.INVOICE.value, invoice.id, f"{amount} ({status_value(invoice.status)})")
        return created

    # =========================================================================
    # DELIVERIES
    # =========================================================================

    def receive_delivery_items(
        self,
        delivery_id: int,
        received: Dict[int, int],
        received_date: Optional[date] = None
    ) -> Delivery:
        """Add received quantities; a shipped delivery with every item complete becomes delivered."""
        delivery = self.repos.deliveries.get_by_id(delivery_id)
        current = status_value(delivery.status)
        if current not in RECEIVABLE_STATUSES:
            raise InvalidStateError(
                f"Delivery #{delivery_id} cannot receive items in status {current}",
                document_type=DocumentType.DELIVERY.value,
                document_id=delivery_id,
                current_status=current
            )

        for item_id, quantity in received.items():
            item = delivery.find_item(item_id)
            if item is None:
                raise ItemNotFoundError(DocumentType.DELIVERY.value, delivery_id, item_id)
            if quantity < 0:
                raise InvalidAmountError("received_qty", quantity, "Received quantity cannot be negative")

            if self.settings.STRICT_DELIVERY_RECEIPTS and quantity > item.pending_qty:
                raise InvalidAmountError(
                    "received_qty",
                    item.received_qty + quantity,
                    f"Received quantity cannot exceed the shipped quantity of {item.quantity}"
                )
            item.received_qty += quantity

        now = self.clock.now()
        delivery.received_date = received_date or self.clock.today()
        delivery.updated_at = now
        if delivery.status == DeliveryStatus.SHIPPED and delivery.is_complete:
            transition(delivery, DeliveryStatus.DELIVERED, now=now)

        with self.uow:
            saved = self.repos.deliveries.update(delivery)
        log_document_event("items_received", DocumentType.DELIVERY.value, delivery.id, status_value(saved.status))
        return saved

    # =========================================================================
    # SCHEDULED SWEEPS
    # =========================================================================

    def process_expirations(self) -> int:
        """Expire sent quotations whose expiry date has passed."""
        now = self.clock.now()
        expired = self.repos.quotations.get_expired(self.clock.today())

        with self.uow:
            for quotation in expired:
                transition(quotation, QuotationStatus.EXPIRED, now=now)
                self.repos.quotations.update(quotation)
                log_document_event("expired", DocumentType.QUOTATION.value, quotation.id, quotation.number)

        if expired:
            logger.info(f"Expired {len(expired)} quotations")
        return len(expired)

    def notify_expiring_quotations(self, days: int = 7) -> int:
        """Count sent quotations expiring within the next ``days`` days."""
        if days < 0:
            raise ValidationError("Notification window cannot be negative", field="days")
        today = self.clock.today()
        expiring = self.repos.quotations.get_expiring(today, DateUtils.add_days(today, days))

        for quotation in expiring:
            logger.info(
                f"Quotation {quotation.number} for contact {quotation.contact_id} expires on {quotation.expiry_date}"
            )
        return len(expiring)

    def mark_overdue_invoices(self) -> int:
        """Move sent or partial invoices past their due date to overdue."""
        now = self.clock.now()
        overdue = self.repos.invoices.get_past_due(self.clock.today())

        with self.uow:
            for invoice in overdue:
                transition(invoice, InvoiceStatus.OVERDUE, now=now)
                self.repos.invoices.update(invoice)
                log_document_event("overdue", DocumentType.INVOICE.value, invoice.id, f"balance {invoice.balance}")

        if overdue:
            logger.info(f"Marked {len(overdue)} invoices overdue")
        return len(overdue)
