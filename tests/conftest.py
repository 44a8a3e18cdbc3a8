"""Test configuration and shared fixtures."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict

import pytest
import pytz

from config.settings import TestingSettings
from core.dependencies import Workflow, build_workflow
from schemas.sales import SalesOrderStatus
from utils.date_utils import FixedClock

NOW = datetime(2024, 3, 15, 10, 0, tzinfo=pytz.UTC)


def make_item(
    product_id: int = 1,
    quantity: int = 10,
    unit_price: str = "100.00",
    discount: str = "0",
    tax: str = "0",
    **extra: Any,
) -> Dict[str, Any]:
    """Raw line item input as a caller would send it."""
    item = {
        "product_id": product_id,
        "product_name": f"Product {product_id}",
        "product_code": f"P-{product_id:03d}",
        "quantity": quantity,
        "unit_price": Decimal(unit_price),
        "discount": Decimal(discount),
        "tax": Decimal(tax),
    }
    item.update(extra)
    return item


@pytest.fixture
def settings() -> TestingSettings:
    return TestingSettings()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def workflow(settings: TestingSettings, clock: FixedClock) -> Workflow:
    return build_workflow(settings=settings, clock=clock, configure_logging=False)


@pytest.fixture
def q1_quotation(workflow: Workflow):
    """Scenario Q1: 10 x 100.00 with 5% discount and 15% tax, sent."""
    quotation = workflow.documents.create_quotation(
        contact_id=7,
        items=[make_item(quantity=10, unit_price="100.00", discount="5", tax="15")],
        notes="Spring order",
    )
    return workflow.documents.change_status("quotation", quotation.id, "sent")


@pytest.fixture
def confirmed_order(workflow: Workflow):
    """Confirmed sales order with two lines: 10 x 100.00 and 4 x 25.00 at 10% tax."""
    order = workflow.documents.create_sales_order(
        contact_id=3,
        items=[
            make_item(product_id=1, quantity=10, unit_price="100.00"),
            make_item(product_id=2, quantity=4, unit_price="25.00", tax="10"),
        ],
        expected_date=date(2024, 4, 1),
        payment_terms="Net 30",
        shipping_address="1 Harbour Road",
    )
    return workflow.documents.change_status("sales_order", order.id, SalesOrderStatus.CONFIRMED)
