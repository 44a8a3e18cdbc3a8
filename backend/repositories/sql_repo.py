"""
SQLAlchemy-backed repositories.

Documents live in one table keyed by type, stored as their JSON payload;
status, contact and origin are mirrored into columns so the common queries
run in SQL. Writes are flushed, never committed: the SessionUnitOfWork
owns the transaction.
"""
from typing import List, Optional, Type
import time

from sqlalchemy.orm import Query, Session

from config.logging import log_repository_operation
from core.exceptions import NotFoundError
from models.records import DocumentRecord, PaymentRecord, SequenceRecord
from schemas.common import PagedResult, PaginationParams
from schemas.sales import (
    Delivery,
    DocumentFilter,
    Invoice,
    Payment,
    PurchaseOrder,
    Quotation,
    SalesOrder,
)

from .base import DocType, DocumentRepository, matches_filter
from .sales_repo import DeliveryQueries, InvoiceQueries, QuotationQueries, SalesRepositories


class SqlItemIdCounter:
    """Line item ids kept in the sequences table."""

    name = "line_item"

    def __init__(self, session: Session):
        self.session = session

    def _row(self) -> SequenceRecord:
        row = self.session.get(SequenceRecord, self.name)
        if row is None:
            row = SequenceRecord(name=self.name, value=1)
            self.session.add(row)
            self.session.flush()
        return row

    @property
    def value(self) -> int:
        return self._row().value

    def next_id(self) -> int:
        row = self._row()
        item_id = row.value
        row.value = item_id + 1
        return item_id


class SqlDocumentRepository(DocumentRepository[DocType]):
    def __init__(self, session: Session, model: Type[DocType], item_ids: Optional[SqlItemIdCounter] = None):
        self.session = session
        self.model = model
        self.resource_name = model.__name__
        self.origin_field = model.origin_field
        self.item_ids = item_ids or SqlItemIdCounter(session)

    def _query(self) -> Query:
        return self.session.query(DocumentRecord).filter(
            DocumentRecord.document_type == self.model.document_type.value
        )

    def _to_model(self, record: DocumentRecord) -> DocType:
        document = self.model.model_validate_json(record.payload)
        document.id = record.id
        return document

    def _fill(self, record: DocumentRecord, document: DocType) -> None:
        record.status = getattr(document.status, "value", document.status)
        record.contact_id = document.contact_id
        record.origin_id = document.origin_id
        record.created_at = document.created_at
        record.payload = document.model_dump_json()

    def _get_record(self, document_id: int) -> DocumentRecord:
        record = self._query().filter(DocumentRecord.id == document_id).first()
        if record is None:
            raise NotFoundError(self.resource_name, document_id)
        return record

    def _assign_item_ids(self, document: DocType) -> None:
        for item in getattr(document, "items", []):
            if item.id is None:
                item.id = self.item_ids.next_id()

    def _filter(self, predicate) -> List[DocType]:
        records = self._query().order_by(DocumentRecord.id).all()
        return [document for document in map(self._to_model, records) if predicate(document)]

    def _page_query(self, query: Query, params: Optional[PaginationParams]) -> PagedResult[DocType]:
        params = params or PaginationParams()
        total = query.count()
        records = query.order_by(DocumentRecord.id).offset(params.offset).limit(params.page_size).all()
        return PagedResult.build(items=[self._to_model(r) for r in records], total_items=total, params=params)

    def count(self) -> int:
        return self._query().count()

    def get_by_id(self, document_id: int) -> DocType:
        return self._to_model(self._get_record(document_id))

    def create(self, document: DocType) -> DocType:
        start_time = time.perf_counter()
        document = document.model_copy(deep=True)
        self._assign_item_ids(document)

        record = DocumentRecord(document_type=self.model.document_type.value)
        self._fill(record, document)
        self.session.add(record)
        self.session.flush()

        document.id = record.id
        record.payload = document.model_dump_json()
        log_repository_operation("create", self.resource_name, duration=time.perf_counter() - start_time, row_count=1)
        return document

    def update(self, document: DocType) -> DocType:
        record = self._get_record(document.id)
        document = document.model_copy(deep=True)
        self._assign_item_ids(document)
        self._fill(record, document)
        self.session.flush()
        log_repository_operation("update", self.resource_name, row_count=1)
        return document

    def delete(self, document_id: int) -> None:
        self.session.delete(self._get_record(document_id))
        self.session.flush()
        log_repository_operation("delete", self.resource_name, row_count=1)

    def get_by_status(self, status, params: Optional[PaginationParams] = None) -> PagedResult[DocType]:
        wanted = getattr(status, "value", status)
        return self._page_query(self._query().filter(DocumentRecord.status == wanted), params)

    def get_by_contact(self, contact_id: int, params: Optional[PaginationParams] = None) -> PagedResult[DocType]:
        return self._page_query(self._query().filter(DocumentRecord.contact_id == contact_id), params)

    def list_by_origin_document(self, origin_id: int) -> List[DocType]:
        if self.origin_field is None:
            return []
        records = self._query().filter(DocumentRecord.origin_id == origin_id).order_by(DocumentRecord.id).all()
        return [self._to_model(r) for r in records]

    def get_by_origin_document(self, origin_id: int) -> Optional[DocType]:
        matches = self.list_by_origin_document(origin_id)
        return matches[0] if matches else None

    def get_all(self, params: Optional[PaginationParams] = None) -> PagedResult[DocType]:
        return self._page_query(self._query(), params)

    def list_all(self) -> List[DocType]:
        return self._filter(lambda doc: True)

    def find(self, criteria: DocumentFilter, params: Optional[PaginationParams] = None) -> PagedResult[DocType]:
        params = params or PaginationParams()
        query = self._query()
        if criteria.status is not None:
            query = query.filter(DocumentRecord.status == criteria.status)
        if criteria.contact_id is not None:
            query = query.filter(DocumentRecord.contact_id == criteria.contact_id)

        rows = [doc for doc in map(self._to_model, query.order_by(DocumentRecord.id).all()) if matches_filter(doc, criteria)]
        items = rows[params.offset:params.offset + params.page_size]
        return PagedResult.build(items=items, total_items=len(rows), params=params)


class SqlQuotationRepository(QuotationQueries, SqlDocumentRepository[Quotation]):
    def __init__(self, session: Session, item_ids: Optional[SqlItemIdCounter] = None):
        super().__init__(session, Quotation, item_ids)


class SqlSalesOrderRepository(SqlDocumentRepository[SalesOrder]):
    def __init__(self, session: Session, item_ids: Optional[SqlItemIdCounter] = None):
        super().__init__(session, SalesOrder, item_ids)


class SqlPurchaseOrderRepository(SqlDocumentRepository[PurchaseOrder]):
    def __init__(self, session: Session, item_ids: Optional[SqlItemIdCounter] = None):
        super().__init__(session, PurchaseOrder, item_ids)


class SqlInvoiceRepository(InvoiceQueries, SqlDocumentRepository[Invoice]):
    def __init__(self, session: Session, item_ids: Optional[SqlItemIdCounter] = None):
        super().__init__(session, Invoice, item_ids)


class SqlDeliveryRepository(DeliveryQueries, SqlDocumentRepository[Delivery]):
    def __init__(self, session: Session, item_ids: Optional[SqlItemIdCounter] = None):
        super().__init__(session, Delivery, item_ids)


class SqlPaymentRepository:
    def __init__(self, session: Session):
        self.session = session

    def _to_model(self, record: PaymentRecord) -> Payment:
        payment = Payment.model_validate_json(record.payload)
        payment.id = record.id
        return payment

    def count(self) -> int:
        return self.session.query(PaymentRecord).count()

    def get_by_id(self, payment_id: int) -> Payment:
        record = self.session.get(PaymentRecord, payment_id)
        if record is None:
            raise NotFoundError("Payment", payment_id)
        return self._to_model(record)

    def create(self, payment: Payment) -> Payment:
        payment = payment.model_copy(deep=True)
        record = PaymentRecord(invoice_id=payment.invoice_id, payload=payment.model_dump_json())
        self.session.add(record)
        self.session.flush()

        payment.id = record.id
        record.payload = payment.model_dump_json()
        log_repository_operation("create", "Payment", row_count=1)
        return payment

    def list_by_invoice(self, invoice_id: int) -> List[Payment]:
        records = (
            self.session.query(PaymentRecord)
            .filter(PaymentRecord.invoice_id == invoice_id)
            .order_by(PaymentRecord.id)
            .all()
        )
        return [self._to_model(r) for r in records]


def sql_repositories(session: Session) -> SalesRepositories:
    """Repositories writing through ``session``, sharing one item id sequence."""
    item_ids = SqlItemIdCounter(session)
    return SalesRepositories(
        quotations=SqlQuotationRepository(session, item_ids),
        sales_orders=SqlSalesOrderRepository(session, item_ids),
        purchase_orders=SqlPurchaseOrderRepository(session, item_ids),
        invoices=SqlInvoiceRepository(session, item_ids),
        deliveries=SqlDeliveryRepository(session, item_ids),
        payments=SqlPaymentRepository(session),
    )
