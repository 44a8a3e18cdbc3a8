"""Unit tests for document statistics, conversion rates and invoice aging."""

from datetime import date, datetime
from decimal import Decimal
from unittest.mock import patch

import pytest
import pytz

from conftest import make_item
from core.exceptions import ValidationError
from schemas.analytics import AgingBucket, TopContactsMetric, TrendDirection
from schemas.sales import Invoice, InvoiceStatus
from services.statistics_service import compute_invoice_aging, percentage


def _at(workflow, year: int, month: int, day: int) -> None:
    workflow.clock.set(datetime(year, month, day, 9, 0, tzinfo=pytz.UTC))


def _sent_invoice(workflow, amount: str, due: date, contact_id: int = 1):
    invoice = workflow.documents.create_invoice(
        contact_id=contact_id,
        items=[make_item(quantity=1, unit_price=amount)],
        issue_date=date(2024, 1, 1),
        due_date=due,
    )
    return workflow.documents.change_status("invoice", invoice.id, "sent")


class TestPercentage:
    def test_zero_denominator(self) -> None:
        assert percentage(5, 0) == 0.0

    def test_rounds_to_two_places(self) -> None:
        assert percentage(1, 3) == 33.33


class TestDocumentStats:
    def test_counts_values_and_top_contacts(self, workflow) -> None:
        workflow.documents.create_quotation(contact_id=1, items=[make_item(quantity=1, unit_price="100")])
        workflow.documents.create_quotation(contact_id=1, items=[make_item(quantity=1, unit_price="50")])
        sent = workflow.documents.create_quotation(contact_id=2, items=[make_item(quantity=1, unit_price="400")])
        workflow.documents.change_status("quotation", sent.id, "sent")

        stats = workflow.statistics.document_stats("quotation")

        assert stats.total_count == 3
        assert stats.total_value == 550.0
        assert stats.average_value == 183.33
        assert stats.count_by_status == {"draft": 2, "sent": 1}
        assert stats.value_by_status == {"draft": 150.0, "sent": 400.0}
        assert stats.count_by_contact == {1: 2, 2: 1}
        assert [c.contact_id for c in stats.top_contacts] == [2, 1]

        by_count = workflow.statistics.document_stats("quotation", top_by=TopContactsMetric.COUNT)
        assert [c.contact_id for c in by_count.top_contacts] == [1, 2]

    def test_date_range_is_inclusive_on_created_at(self, workflow) -> None:
        _at(workflow, 2024, 1, 10)
        workflow.documents.create_sales_order(contact_id=1, items=[make_item()])
        _at(workflow, 2024, 2, 10)
        workflow.documents.create_sales_order(contact_id=1, items=[make_item(quantity=2)])

        stats = workflow.statistics.document_stats(
            "sales_order",
            start=datetime(2024, 2, 10, 9, 0, tzinfo=pytz.UTC),
            end=datetime(2024, 2, 28, tzinfo=pytz.UTC),
        )

        assert stats.total_count == 1
        assert stats.total_value == 200.0

    def test_empty_document_set(self, workflow) -> None:
        stats = workflow.statistics.document_stats("invoice")

        assert stats.total_count == 0
        assert stats.average_value == 0.0
        assert stats.top_contacts == []

    def test_top_contacts_limited_by_setting(self, workflow) -> None:
        workflow.statistics.settings = workflow.settings.model_copy(update={"TOP_CONTACTS_LIMIT": 2})
        for contact_id in range(1, 6):
            workflow.documents.create_sales_order(contact_id=contact_id, items=[make_item(quantity=contact_id)])

        stats = workflow.statistics.document_stats("sales_order")

        assert [c.contact_id for c in stats.top_contacts] == [5, 4]

    def test_reads_across_batches(self, workflow) -> None:
        workflow.statistics.settings = workflow.settings.model_copy(update={"STATS_BATCH_SIZE": 2})
        for _ in range(5):
            workflow.documents.create_purchase_order(contact_id=1, items=[make_item(quantity=1)])

        assert workflow.statistics.document_stats("purchase_order").total_count == 5

    def test_batch_larger_than_a_thousand(self, workflow) -> None:
        workflow.statistics.settings = workflow.settings.model_copy(update={"STATS_BATCH_SIZE": 5000})
        for _ in range(3):
            workflow.documents.create_purchase_order(contact_id=1, items=[make_item(quantity=1)])

        assert workflow.statistics.document_stats("purchase_order").total_count == 3


class TestConversionStats:
    def test_zero_quotations(self, workflow) -> None:
        stats = workflow.statistics.conversion_stats()

        assert stats.total_quotations == 0
        assert stats.conversion_rate == 0.0
        assert stats.value_conversion_rate == 0.0

    def test_rates_and_days_to_convert(self, workflow) -> None:
        converted = workflow.documents.create_quotation(contact_id=1, items=[make_item()])
        workflow.documents.create_quotation(contact_id=2, items=[make_item(quantity=5)])
        workflow.clock.advance(days=2, hours=12)
        workflow.conversions.convert_quotation_to_sales_order(converted.id)

        stats = workflow.statistics.conversion_stats()

        assert stats.total_quotations == 2
        assert stats.converted_quotations == 1
        assert stats.conversion_rate == 50.0
        assert stats.total_quoted_value == 1500.0
        assert stats.converted_value == 1000.0
        assert stats.value_conversion_rate == 66.67
        assert stats.average_days_to_convert == 2.5
        assert {c.contact_id: c.conversion_rate for c in stats.conversion_by_contact} == {1: 100.0, 2: 0.0}
        assert stats.expiry_distribution == {"2024-04": 2}

    def test_failed_lookup_counts_as_not_converted(self, workflow) -> None:
        quotation = workflow.documents.create_quotation(contact_id=1, items=[make_item()])
        workflow.conversions.convert_quotation_to_sales_order(quotation.id)

        with patch.object(
            workflow.repositories.sales_orders, "get_by_origin_document", side_effect=RuntimeError("timeout")
        ):
            stats = workflow.statistics.conversion_stats()

        assert stats.total_quotations == 1
        assert stats.converted_quotations == 0
        assert stats.conversion_rate == 0.0

    def test_conversion_rate_comparison(self, workflow) -> None:
        _at(workflow, 2024, 2, 5)
        workflow.documents.create_quotation(contact_id=1, items=[make_item()])
        _at(workflow, 2024, 3, 5)
        current = workflow.documents.create_quotation(contact_id=1, items=[make_item()])
        workflow.conversions.convert_quotation_to_sales_order(current.id)

        comparison = workflow.statistics.conversion_rate_comparison(
            datetime(2024, 3, 1, tzinfo=pytz.UTC), datetime(2024, 3, 31, tzinfo=pytz.UTC)
        )

        assert comparison.current_rate == 100.0
        assert comparison.previous_rate == 0.0
        assert comparison.change == 100.0
        assert comparison.trend == TrendDirection.UP


class TestInvoiceAging:
    def test_thirty_days_is_first_bucket(self, workflow) -> None:
        _sent_invoice(workflow, "100", due=date(2024, 3, 1))

        report = workflow.statistics.invoice_aging(as_of=date(2024, 3, 31))

        assert report.bucket(AgingBucket.DAYS_1_30).count == 1
        assert report.bucket(AgingBucket.DAYS_31_60).count == 0

    def test_thirty_one_days_is_second_bucket(self, workflow) -> None:
        _sent_invoice(workflow, "100", due=date(2024, 3, 1))

        report = workflow.statistics.invoice_aging(as_of=date(2024, 4, 1))

        assert report.bucket(AgingBucket.DAYS_1_30).count == 0
        assert report.bucket(AgingBucket.DAYS_31_60).count == 1
        assert report.bucket(AgingBucket.DAYS_31_60).amount == 100.0

    def test_not_yet_due_is_current(self, workflow) -> None:
        _sent_invoice(workflow, "80", due=date(2024, 3, 15))
        _sent_invoice(workflow, "20", due=date(2024, 4, 15))

        report = workflow.statistics.invoice_aging()

        assert report.bucket(AgingBucket.CURRENT).count == 2
        assert report.bucket(AgingBucket.CURRENT).amount == 100.0
        assert report.total_outstanding == 100.0

    def test_uses_open_balance_and_skips_closed_invoices(self, workflow) -> None:
        partial = _sent_invoice(workflow, "300", due=date(2024, 1, 1))
        paid = _sent_invoice(workflow, "50", due=date(2024, 1, 1))
        cancelled = _sent_invoice(workflow, "70", due=date(2024, 1, 1))
        workflow.documents.record_payment(partial.id, Decimal("100"))
        workflow.documents.record_payment(paid.id, Decimal("50"))
        workflow.documents.change_status("invoice", cancelled.id, "cancelled")

        report = workflow.statistics.invoice_aging(as_of=date(2024, 4, 30))

        assert report.invoice_count == 1
        assert report.bucket(AgingBucket.DAYS_91_PLUS).count == 1
        assert report.bucket(AgingBucket.DAYS_91_PLUS).amount == 200.0

    def test_empty_report_lists_every_bucket(self) -> None:
        buckets, outstanding, count = compute_invoice_aging([], date(2024, 1, 1))

        assert [b.bucket for b in buckets] == list(AgingBucket)
        assert outstanding == 0.0
        assert count == 0

    def test_bucket_edges(self) -> None:
        today = date(2024, 6, 30)
        invoices = [
            Invoice(id=i, status=InvoiceStatus.SENT, grand_total=Decimal("10"), due_date=date.fromordinal(today.toordinal() - days))
            for i, days in enumerate([0, 1, 60, 61, 90, 91], start=1)
        ]

        buckets, _, _ = compute_invoice_aging(invoices, today)

        counts = {b.bucket: b.count for b in buckets}
        assert counts == {
            AgingBucket.CURRENT: 1,
            AgingBucket.DAYS_1_30: 1,
            AgingBucket.DAYS_31_60: 1,
            AgingBucket.DAYS_61_90: 2,
            AgingBucket.DAYS_91_PLUS: 1,
        }


class TestPeriodsAndTrends:
    def test_period_comparison(self, workflow) -> None:
        _at(workflow, 2024, 2, 15)
        workflow.documents.create_sales_order(contact_id=1, items=[make_item(quantity=5)])
        _at(workflow, 2024, 3, 10)
        workflow.documents.create_sales_order(contact_id=1, items=[make_item(quantity=10)])

        comparison = workflow.statistics.period_comparison(
            "sales_order", datetime(2024, 3, 1, tzinfo=pytz.UTC), datetime(2024, 3, 31, tzinfo=pytz.UTC)
        )

        assert comparison.current_value == 1000.0
        assert comparison.previous_value == 500.0
        assert comparison.current_count == 1
        assert comparison.previous_count == 1
        assert comparison.change_percentage == 100.0
        assert comparison.trend == TrendDirection.UP
        assert comparison.previous_end < comparison.current_start

    def test_period_comparison_with_empty_previous_window(self, workflow) -> None:
        _at(workflow, 2024, 3, 10)
        workflow.documents.create_sales_order(contact_id=1, items=[make_item()])

        comparison = workflow.statistics.period_comparison(
            "sales_order", datetime(2024, 3, 1, tzinfo=pytz.UTC), datetime(2024, 3, 31, tzinfo=pytz.UTC)
        )

        assert comparison.previous_value == 0.0
        assert comparison.change_percentage == 0.0

    def test_reversed_window_is_rejected(self, workflow) -> None:
        with pytest.raises(ValidationError):
            workflow.statistics.period_comparison(
                "sales_order", datetime(2024, 3, 31, tzinfo=pytz.UTC), datetime(2024, 3, 1, tzinfo=pytz.UTC)
            )

    def test_monthly_trends(self, workflow) -> None:
        _at(workflow, 2024, 1, 20)
        workflow.documents.create_invoice(contact_id=1, items=[make_item(quantity=1)])
        _at(workflow, 2024, 3, 2)
        workflow.documents.create_invoice(contact_id=1, items=[make_item(quantity=2)])
        workflow.documents.create_invoice(contact_id=2, items=[make_item(quantity=3)])

        trends = workflow.statistics.monthly_trends("invoice")

        assert [(t.month, t.count, t.value) for t in trends] == [("2024-01", 1, 100.0), ("2024-03", 2, 500.0)]
