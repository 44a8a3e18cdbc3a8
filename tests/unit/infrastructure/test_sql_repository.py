"""Unit tests for the SQLAlchemy-backed workflow on in-memory SQLite."""

from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from config.settings import TestingSettings
from conftest import make_item
from core.database import SessionUnitOfWork
from core.dependencies import build_workflow
from core.exceptions import NotFoundError
from models.records import DocumentRecord, SequenceRecord
from repositories.sql_repo import SqlQuotationRepository
from schemas.common import PaginationParams
from schemas.sales import InvoiceStatus, QuotationStatus, SalesOrderStatus


@pytest.fixture
def sql_workflow(clock):
    workflow = build_workflow(
        settings=TestingSettings(PERSISTENCE="database"), clock=clock, configure_logging=False
    )
    yield workflow
    workflow.session.close()


def _sent_quotation(workflow, contact_id: int = 7, **item):
    quotation = workflow.documents.create_quotation(contact_id=contact_id, items=[make_item(**item)])
    return workflow.documents.change_status("quotation", quotation.id, "sent")


class TestSqlWorkflowWiring:
    def test_database_mode_uses_session_repositories(self, sql_workflow) -> None:
        assert sql_workflow.session is not None
        assert isinstance(sql_workflow.repositories.quotations, SqlQuotationRepository)
        assert isinstance(sql_workflow.unit_of_work, SessionUnitOfWork)

    def test_memory_mode_has_no_session(self, workflow) -> None:
        assert workflow.session is None


class TestSqlDocuments:
    def test_created_documents_are_committed(self, sql_workflow) -> None:
        quotation = _sent_quotation(sql_workflow)

        with Session(bind=sql_workflow.session.get_bind()) as other:
            record = other.get(DocumentRecord, quotation.id)
            assert record.document_type == "quotation"
            assert record.status == "sent"
            assert record.contact_id == 7

    def test_round_trip_keeps_totals_and_items(self, sql_workflow) -> None:
        created = sql_workflow.documents.create_quotation(
            contact_id=1, items=[make_item(quantity=10, unit_price="100.00", discount="5", tax="15")]
        )

        stored = sql_workflow.repositories.quotations.get_by_id(created.id)

        assert stored.number == created.number
        assert stored.grand_total == Decimal("1092.5")
        assert stored.items[0].id == created.items[0].id
        assert stored.created_at == created.created_at

    def test_missing_document(self, sql_workflow) -> None:
        with pytest.raises(NotFoundError):
            sql_workflow.repositories.sales_orders.get_by_id(42)

    def test_conversion_links_documents(self, sql_workflow) -> None:
        quotation = _sent_quotation(sql_workflow)

        order = sql_workflow.conversions.convert_quotation_to_sales_order(quotation.id)

        assert sql_workflow.repositories.sales_orders.get_by_origin_document(quotation.id).id == order.id
        assert order.status == SalesOrderStatus.DRAFT
        stored = sql_workflow.repositories.quotations.get_by_id(quotation.id)
        assert stored.status == QuotationStatus.ACCEPTED

    def test_error_inside_unit_of_work_rolls_back(self, sql_workflow) -> None:
        with pytest.raises(RuntimeError):
            with sql_workflow.unit_of_work:
                sql_workflow.documents.create_quotation(contact_id=1, items=[make_item()])
                raise RuntimeError("abort")

        assert sql_workflow.repositories.quotations.count() == 0

    def test_item_ids_come_from_one_sequence(self, sql_workflow) -> None:
        quotation = _sent_quotation(sql_workflow)
        order = sql_workflow.documents.create_sales_order(
            contact_id=2, items=[make_item(product_id=2), make_item(product_id=3)]
        )

        ids = [item.id for item in quotation.items + order.items]
        assert len(set(ids)) == 3
        assert sql_workflow.session.get(SequenceRecord, "line_item").value == max(ids) + 1

    def test_payments_are_listed_per_invoice(self, sql_workflow) -> None:
        invoice = sql_workflow.documents.create_invoice(contact_id=3, items=[make_item(quantity=2)])
        sql_workflow.documents.change_status("invoice", invoice.id, "sent")

        sql_workflow.documents.record_payment(invoice.id, Decimal("50"))

        assert len(sql_workflow.repositories.payments.list_by_invoice(invoice.id)) == 1
        assert sql_workflow.repositories.invoices.get_by_id(invoice.id).status == InvoiceStatus.PARTIAL


class TestSqlQueries:
    def test_status_page(self, sql_workflow) -> None:
        first = _sent_quotation(sql_workflow, contact_id=1)
        second = _sent_quotation(sql_workflow, contact_id=2)
        sql_workflow.documents.create_quotation(contact_id=3, items=[make_item()])

        page = sql_workflow.repositories.quotations.get_by_status(
            QuotationStatus.SENT, PaginationParams(page=1, page_size=1)
        )

        assert [q.id for q in page.items] == [first.id]
        assert page.total_items == 2
        assert page.has_next is True
        assert second.id not in [q.id for q in page.items]

    def test_find_combines_column_and_payload_criteria(self, sql_workflow) -> None:
        _sent_quotation(sql_workflow, contact_id=1, product_name="Brass fitting")
        match = _sent_quotation(sql_workflow, contact_id=1, product_name="Steel valve")
        _sent_quotation(sql_workflow, contact_id=2, product_name="Steel valve")

        result = sql_workflow.documents.find(
            "quotation", {"status": "sent", "contact_id": 1, "query": "valve"}
        )

        assert [q.id for q in result.items] == [match.id]
        assert result.total_items == 1
