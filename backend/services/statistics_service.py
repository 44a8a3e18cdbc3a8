"""
Statistics over workflow documents.

Counts, sums and group-bys run on pandas DataFrames built from the stored
documents; every ratio is a percentage and a zero denominator yields 0.
Money leaves this module as floats rounded to 2 places.
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from config.logging import get_logger, log_performance
from config.settings import Settings, get_settings
from core.exceptions import ValidationError
from repositories.sales_repo import SalesRepositories
from schemas.analytics import (
    AgingBucket,
    AgingItem,
    AgingReport,
    ContactConversion,
    ContactStatsItem,
    ConversionRateComparison,
    ConversionStats,
    DocumentStats,
    MonthlyTrendItem,
    PeriodComparison,
    TopContactsMetric,
    TrendDirection,
)
from schemas.common import DocumentType, PaginationParams
from schemas.sales import Invoice, InvoiceStatus, Quotation, SalesDocument, SalesOrder
from services.status_machine import status_value
from utils.date_utils import Clock, DateUtils

logger = get_logger("services")

AGING_BINS = [-np.inf, 0, 30, 60, 90, np.inf]
AGING_LABELS = [bucket.value for bucket in AgingBucket]
CLOSED_INVOICE_STATUSES = frozenset({InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value})

DOCUMENT_COLUMNS = ["id", "contact_id", "status", "value", "created_at"]


def percentage(part: float, whole: float) -> float:
    if not whole:
        return 0.0
    return round(float(part) / float(whole) * 100, 2)


def validate_window(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
    start = DateUtils.ensure_aware(start)
    end = DateUtils.ensure_aware(end)
    if end < start:
        raise ValidationError("end must not be before start", field="end")
    return start, end


def trend_of(current: float, previous: float) -> TrendDirection:
    if current > previous:
        return TrendDirection.UP
    if current < previous:
        return TrendDirection.DOWN
    return TrendDirection.STABLE


def in_range(documents: Iterable[SalesDocument], start: Optional[datetime], end: Optional[datetime]) -> List[SalesDocument]:
    """Documents created within [start, end]; with no bounds everything passes."""
    if start is None and end is None:
        return list(documents)
    return [
        doc for doc in documents
        if doc.created_at is not None and DateUtils.is_within(doc.created_at, start, end)
    ]


def documents_frame(documents: Iterable[SalesDocument]) -> pd.DataFrame:
    records = [
        {
            "id": doc.id,
            "contact_id": doc.contact_id,
            "status": status_value(doc.status),
            "value": float(getattr(doc, "grand_total", 0)),
            "created_at": doc.created_at,
        }
        for doc in documents
    ]
    return pd.DataFrame(records, columns=DOCUMENT_COLUMNS)


def compute_document_stats(
    doc_type: DocumentType,
    documents: Iterable[SalesDocument],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    top_limit: int = 5,
    top_by: TopContactsMetric = TopContactsMetric.VALUE
) -> DocumentStats:
    df = documents_frame(in_range(documents, start, end))
    stats = DocumentStats(document_type=DocumentType(doc_type).value, period_start=start, period_end=end)
    if df.empty:
        return stats

    total_value = float(df["value"].sum())
    stats.total_count = len(df)
    stats.total_value = round(total_value, 2)
    stats.average_value = round(total_value / len(df), 2)

    by_status = df.groupby("status").agg(count=("id", "size"), value=("value", "sum"))
    stats.count_by_status = {str(status): int(row["count"]) for status, row in by_status.iterrows()}
    stats.value_by_status = {str(status): round(float(row["value"]), 2) for status, row in by_status.iterrows()}

    with_contact = df[df["contact_id"].notna()]
    if not with_contact.empty:
        by_contact = (
            with_contact.groupby("contact_id")
            .agg(count=("id", "size"), total_value=("value", "sum"))
            .reset_index()
        )
        stats.count_by_contact = {int(row["contact_id"]): int(row["count"]) for _, row in by_contact.iterrows()}

        order = ["total_value", "count"] if top_by == TopContactsMetric.VALUE else ["count", "total_value"]
        top = by_contact.sort_values(order + ["contact_id"], ascending=[False, False, True]).head(top_limit)
        stats.top_contacts = [
            ContactStatsItem(
                contact_id=int(row["contact_id"]),
                count=int(row["count"]),
                total_value=round(float(row["total_value"]), 2),
            )
            for _, row in top.iterrows()
        ]

    return stats


def compute_invoice_aging(invoices: Iterable[Invoice], today: date) -> Tuple[List[AgingItem], float, int]:
    """Open balances bucketed by days past due; not yet due counts as current."""
    records = [
        {
            "id": inv.id,
            "balance": float(inv.balance),
            "days": DateUtils.days_between(inv.due_date, today) if inv.due_date else 0,
        }
        for inv in invoices
        if inv.balance > 0 and status_value(inv.status) not in CLOSED_INVOICE_STATUSES
    ]
    if not records:
        return [AgingItem(bucket=bucket) for bucket in AgingBucket], 0.0, 0

    df = pd.DataFrame(records)
    df["bucket"] = pd.cut(df["days"], bins=AGING_BINS, labels=AGING_LABELS)
    grouped = df.groupby("bucket", observed=False).agg(count=("id", "size"), amount=("balance", "sum"))

    buckets = [
        AgingItem(
            bucket=bucket,
            count=int(grouped.loc[bucket.value, "count"]),
            amount=round(float(grouped.loc[bucket.value, "amount"]), 2),
        )
        for bucket in AgingBucket
    ]
    return buckets, round(float(df["balance"].sum()), 2), len(df)


def compute_monthly_trends(documents: Iterable[SalesDocument]) -> List[MonthlyTrendItem]:
    df = documents_frame(doc for doc in documents if doc.created_at is not None)
    if df.empty:
        return []

    df["month"] = df["created_at"].map(DateUtils.month_label)
    monthly = df.groupby("month").agg(count=("id", "size"), value=("value", "sum")).sort_index()
    return [
        MonthlyTrendItem(month=str(month), count=int(row["count"]), value=round(float(row["value"]), 2))
        for month, row in monthly.iterrows()
    ]


class StatisticsService:
    """Aggregates over the documents held by the repositories."""

    def __init__(self, repositories: SalesRepositories, clock: Clock, settings: Optional[Settings] = None):
        self.repos = repositories
        self.clock = clock
        self.settings = settings or get_settings()

    def _load(self, doc_type: DocumentType) -> List[SalesDocument]:
        """Read every document of a type in STATS_BATCH_SIZE pages."""
        repository = self.repos.for_type(doc_type)
        documents: List[SalesDocument] = []
        page = 1
        while True:
            result = repository.get_all(PaginationParams(page=page, page_size=self.settings.STATS_BATCH_SIZE))
            documents.extend(result.items)
            if not result.has_next:
                return documents
            page += 1

    @log_performance()
    def document_stats(
        self,
        doc_type: DocumentType,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        top_by: TopContactsMetric = TopContactsMetric.VALUE
    ) -> DocumentStats:
        return compute_document_stats(
            doc_type,
            self._load(doc_type),
            start=start,
            end=end,
            top_limit=self.settings.TOP_CONTACTS_LIMIT,
            top_by=top_by,
        )

    def _linked_sales_order(self, quotation: Quotation) -> Optional[SalesOrder]:
        try:
            return self.repos.sales_orders.get_by_origin_document(quotation.id)
        except Exception as e:
            logger.warning(f"Sales order lookup failed for quotation #{quotation.id}: {str(e)}")
            return None

    @log_performance()
    def conversion_stats(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> ConversionStats:
        """Share of quotations (by count and value) that became sales orders."""
        quotations = in_range(self._load(DocumentType.QUOTATION), start, end)
        if not quotations:
            return ConversionStats()

        records: List[Dict[str, Any]] = []
        for quotation in quotations:
            order = self._linked_sales_order(quotation)
            days = None
            if order is not None and quotation.created_at and order.created_at:
                days = DateUtils.fractional_days_between(quotation.created_at, order.created_at)
            records.append({
                "contact_id": quotation.contact_id,
                "quoted_value": float(quotation.grand_total),
                "converted": order is not None,
                "converted_value": float(order.grand_total) if order is not None else 0.0,
                "days_to_convert": days,
                "expiry_month": DateUtils.month_label(quotation.expiry_date) if quotation.expiry_date else None,
            })

        df = pd.DataFrame(records)
        total = len(df)
        converted = int(df["converted"].sum())
        quoted_value = float(df["quoted_value"].sum())
        converted_value = float(df["converted_value"].sum())
        days = df["days_to_convert"].dropna()

        by_contact = (
            df[df["contact_id"].notna()]
            .groupby("contact_id")
            .agg(quotations=("converted", "size"), converted=("converted", "sum"))
            .reset_index()
        )
        expiry = df["expiry_month"].dropna().value_counts().sort_index()

        return ConversionStats(
            total_quotations=total,
            converted_quotations=converted,
            conversion_rate=percentage(converted, total),
            total_quoted_value=round(quoted_value, 2),
            converted_value=round(converted_value, 2),
            value_conversion_rate=percentage(converted_value, quoted_value),
            average_days_to_convert=round(float(days.mean()), 2) if not days.empty else 0.0,
            conversion_by_contact=[
                ContactConversion(
                    contact_id=int(row["contact_id"]),
                    quotations=int(row["quotations"]),
                    converted=int(row["converted"]),
                    conversion_rate=percentage(row["converted"], row["quotations"]),
                )
                for _, row in by_contact.iterrows()
            ],
            expiry_distribution={str(month): int(count) for month, count in expiry.items()},
        )

    @log_performance()
    def invoice_aging(self, as_of: Optional[date] = None) -> AgingReport:
        today = as_of or self.clock.today()
        buckets, outstanding, count = compute_invoice_aging(self._load(DocumentType.INVOICE), today)
        return AgingReport(
            as_of=DateUtils.start_of_day(today),
            buckets=buckets,
            total_outstanding=outstanding,
            invoice_count=count,
        )

    def period_comparison(self, doc_type: DocumentType, start: datetime, end: datetime) -> PeriodComparison:
        """Value and count in [start, end] against the same-length window just before it."""
        start, end = validate_window(start, end)
        previous_start, previous_end = DateUtils.previous_period(start, end)

        documents = self._load(doc_type)
        current = documents_frame(in_range(documents, start, end))
        previous = documents_frame(in_range(documents, previous_start, previous_end))

        current_value = round(float(current["value"].sum()), 2)
        previous_value = round(float(previous["value"].sum()), 2)

        return PeriodComparison(
            current_start=start,
            current_end=end,
            previous_start=previous_start,
            previous_end=previous_end,
            current_value=current_value,
            previous_value=previous_value,
            current_count=len(current),
            previous_count=len(previous),
            change_percentage=percentage(current_value - previous_value, previous_value),
            trend=trend_of(current_value, previous_value),
        )

    def conversion_rate_comparison(self, start: datetime, end: datetime) -> ConversionRateComparison:
        start, end = validate_window(start, end)
        previous_start, previous_end = DateUtils.previous_period(start, end)
        current_rate = self.conversion_stats(start, end).conversion_rate
        previous_rate = self.conversion_stats(previous_start, previous_end).conversion_rate

        return ConversionRateComparison(
            current_rate=current_rate,
            previous_rate=previous_rate,
            change=round(current_rate - previous_rate, 2),
            trend=trend_of(current_rate, previous_rate),
        )

    def monthly_trends(
        self,
        doc_type: DocumentType,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[MonthlyTrendItem]:
        return compute_monthly_trends(in_range(self._load(doc_type), start, end))
