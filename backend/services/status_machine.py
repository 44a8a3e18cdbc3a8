"""
Status state machines for every document type.

Each type has a table of legal moves; a document changes status only
through ``transition()``.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Union

from core.exceptions import StateTransitionError, ValidationError
from schemas.common import DocumentType
from schemas.sales import (
    DeliveryStatus,
    InvoiceStatus,
    PurchaseOrderStatus,
    QuotationStatus,
    SalesDocument,
    SalesOrderStatus,
)

StatusLike = Union[str, Enum]

TRANSITIONS: Dict[DocumentType, Dict[str, FrozenSet[str]]] = {
    DocumentType.QUOTATION: {
        QuotationStatus.DRAFT.value: frozenset({QuotationStatus.SENT.value, QuotationStatus.CANCELLED.value}),
        QuotationStatus.SENT.value: frozenset({
            QuotationStatus.ACCEPTED.value,
            QuotationStatus.REJECTED.value,
            QuotationStatus.EXPIRED.value,
            QuotationStatus.CANCELLED.value,
        }),
        QuotationStatus.EXPIRED.value: frozenset({QuotationStatus.CANCELLED.value}),
        QuotationStatus.REJECTED.value: frozenset({QuotationStatus.CANCELLED.value}),
        QuotationStatus.ACCEPTED.value: frozenset({QuotationStatus.CANCELLED.value}),
        QuotationStatus.CANCELLED.value: frozenset(),
    },
    DocumentType.SALES_ORDER: {
        SalesOrderStatus.DRAFT.value: frozenset({SalesOrderStatus.CONFIRMED.value, SalesOrderStatus.CANCELLED.value}),
        SalesOrderStatus.CONFIRMED.value: frozenset({SalesOrderStatus.PROCESSING.value, SalesOrderStatus.CANCELLED.value}),
        SalesOrderStatus.PROCESSING.value: frozenset({SalesOrderStatus.COMPLETED.value, SalesOrderStatus.CANCELLED.value}),
        SalesOrderStatus.COMPLETED.value: frozenset(),
        SalesOrderStatus.CANCELLED.value: frozenset(),
    },
    DocumentType.PURCHASE_ORDER: {
        PurchaseOrderStatus.DRAFT.value: frozenset({PurchaseOrderStatus.SENT.value, PurchaseOrderStatus.CANCELLED.value}),
        PurchaseOrderStatus.SENT.value: frozenset({PurchaseOrderStatus.CONFIRMED.value, PurchaseOrderStatus.CANCELLED.value}),
        PurchaseOrderStatus.CONFIRMED.value: frozenset({PurchaseOrderStatus.RECEIVED.value, PurchaseOrderStatus.CANCELLED.value}),
        PurchaseOrderStatus.RECEIVED.value: frozenset(),
        PurchaseOrderStatus.CANCELLED.value: frozenset(),
    },
    DocumentType.INVOICE: {
        InvoiceStatus.DRAFT.value: frozenset({InvoiceStatus.SENT.value, InvoiceStatus.CANCELLED.value}),
        InvoiceStatus.SENT.value: frozenset({
            InvoiceStatus.PARTIAL.value,
            InvoiceStatus.PAID.value,
            InvoiceStatus.OVERDUE.value,
            InvoiceStatus.CANCELLED.value,
        }),
        InvoiceStatus.PARTIAL.value: frozenset({
            InvoiceStatus.PAID.value,
            InvoiceStatus.OVERDUE.value,
            InvoiceStatus.CANCELLED.value,
        }),
        InvoiceStatus.OVERDUE.value: frozenset({
            InvoiceStatus.PARTIAL.value,
            InvoiceStatus.PAID.value,
            InvoiceStatus.CANCELLED.value,
        }),
        InvoiceStatus.PAID.value: frozenset(),
        InvoiceStatus.CANCELLED.value: frozenset(),
    },
    DocumentType.DELIVERY: {
        DeliveryStatus.PENDING.value: frozenset({DeliveryStatus.SHIPPED.value, DeliveryStatus.CANCELLED.value}),
        DeliveryStatus.SHIPPED.value: frozenset({
            DeliveryStatus.DELIVERED.value,
            DeliveryStatus.RETURNED.value,
            DeliveryStatus.CANCELLED.value,
        }),
        DeliveryStatus.DELIVERED.value: frozenset(),
        DeliveryStatus.RETURNED.value: frozenset(),
        DeliveryStatus.CANCELLED.value: frozenset(),
    },
}

STATUS_ENUMS = {
    DocumentType.QUOTATION: QuotationStatus,
    DocumentType.SALES_ORDER: SalesOrderStatus,
    DocumentType.PURCHASE_ORDER: PurchaseOrderStatus,
    DocumentType.INVOICE: InvoiceStatus,
    DocumentType.DELIVERY: DeliveryStatus,
}

INITIAL_STATUS = {
    DocumentType.QUOTATION: QuotationStatus.DRAFT,
    DocumentType.SALES_ORDER: SalesOrderStatus.DRAFT,
    DocumentType.PURCHASE_ORDER: PurchaseOrderStatus.DRAFT,
    DocumentType.INVOICE: InvoiceStatus.DRAFT,
    DocumentType.DELIVERY: DeliveryStatus.PENDING,
}

# Statuses in which items may be added, updated or removed
EDITABLE_STATUSES = {
    DocumentType.QUOTATION: frozenset({QuotationStatus.DRAFT.value}),
    DocumentType.SALES_ORDER: frozenset({SalesOrderStatus.DRAFT.value, SalesOrderStatus.CONFIRMED.value}),
    DocumentType.PURCHASE_ORDER: frozenset({PurchaseOrderStatus.DRAFT.value}),
    DocumentType.INVOICE: frozenset({InvoiceStatus.DRAFT.value}),
    DocumentType.DELIVERY: frozenset(),
}

REASON_LABELS = {
    "cancelled": "Cancellation reason",
    "rejected": "Rejection reason",
}


def status_value(status: StatusLike) -> str:
    return status.value if isinstance(status, Enum) else str(status)


def document_type_of(doc_type: Any) -> DocumentType:
    try:
        return DocumentType(doc_type)
    except ValueError:
        raise ValidationError(f"Unknown document type: {doc_type}", field="doc_type")


def allowed_transitions(doc_type: DocumentType, current: StatusLike) -> FrozenSet[str]:
    return TRANSITIONS[document_type_of(doc_type)].get(status_value(current), frozenset())


def is_valid_transition(doc_type: DocumentType, current: StatusLike, new: StatusLike) -> bool:
    """Same status is always valid; otherwise the move must be in the table."""
    current_value = status_value(current)
    new_value = status_value(new)
    table = TRANSITIONS[document_type_of(doc_type)]
    if new_value not in table:
        return False
    if current_value == new_value:
        return True
    return new_value in table.get(current_value, frozenset())


def is_terminal(doc_type: DocumentType, status: StatusLike) -> bool:
    return not allowed_transitions(doc_type, status)


def is_editable(doc_type: DocumentType, status: StatusLike) -> bool:
    return status_value(status) in EDITABLE_STATUSES[document_type_of(doc_type)]


def parse_status(doc_type: DocumentType, status: StatusLike) -> Enum:
    doc_type = document_type_of(doc_type)
    enum_cls = STATUS_ENUMS[doc_type]
    try:
        return enum_cls(status_value(status))
    except ValueError:
        raise ValidationError(f"Unknown {doc_type.value} status: {status_value(status)}", field="status")


def append_reason(notes: str, new_status: str, reason: Optional[str]) -> str:
    label = REASON_LABELS.get(new_status)
    if not label or not reason:
        return notes
    line = f"{label}: {reason}"
    return f"{notes}\n\n{line}" if notes else line


def transition(document: SalesDocument, new_status: StatusLike, reason: Optional[str] = None,
               now: Optional[datetime] = None) -> SalesDocument:
    """
    Move a document to ``new_status`` or raise StateTransitionError, leaving it untouched.

    Requesting the current status is a no-op: notes and ``updated_at`` stay as they are.
    """
    doc_type = document.document_type
    current = status_value(document.status)
    target = status_value(new_status)

    if not is_valid_transition(doc_type, current, target):
        raise StateTransitionError(doc_type.value, current, target, document_id=document.id)
    if current == target:
        return document

    document.status = parse_status(doc_type, target)
    document.notes = append_reason(document.notes, target, reason)
    if now is not None:
        document.updated_at = now
    return document
