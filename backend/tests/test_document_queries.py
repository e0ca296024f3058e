# Overview: Pytest coverage for document listing by period, payment state and overdue status.

"""
Document Query Tests

- today / this month bounded on created_at
- overdue: credit, active, due date strictly before now
- the model predicate and the SQL filter agree at the midnight boundary
"""

from datetime import date, datetime

import pytest

from stockbook.errors import InvariantViolationError
from stockbook.services import purchase_service, sales_service


@pytest.fixture
def sale_at(make_product, customer):
    product = make_product(stock=100)

    def _sale(created_at, payment_status="unpaid", due_date=None):
        return sales_service.create_sale(
            lines=[{"product_id": product.id, "quantity": 1, "unit_price": "10.00"}],
            customer_id=customer.id,
            payment_status=payment_status,
            due_date=due_date,
            created_at=created_at,
        )
    return _sale


class TestPeriodQueries:
    """today / this month."""

    def test_sales_today_and_month(self, db_session, sale_at):
        sale_at(datetime(2025, 1, 1, 9, 0))
        sale_at(datetime(2025, 1, 1, 23, 59))
        sale_at(datetime(2025, 1, 2, 0, 0))
        sale_at(datetime(2025, 2, 1, 0, 0))

        assert len(sales_service.sales_today(reference="2025-01-01")) == 2
        assert len(sales_service.sales_today(reference=date(2025, 1, 2))) == 1
        assert len(sales_service.sales_this_month(reference="2025-01-31")) == 3
        assert len(sales_service.sales_this_month(reference="2025-02-10")) == 1

    def test_december_month_bounds(self, db_session, sale_at):
        sale_at(datetime(2024, 12, 31, 23, 0))
        sale_at(datetime(2025, 1, 1, 1, 0))

        assert len(sales_service.sales_this_month(reference="2024-12-01")) == 1

    def test_purchases_today(self, db_session, make_product):
        product = make_product()
        purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[{"product_id": product.id, "quantity": 1}],
            created_at=datetime(2025, 1, 1, 8, 0),
        )

        assert len(purchase_service.purchases_today(reference="2025-01-01")) == 1
        assert len(purchase_service.purchases_this_month(reference="2025-01-20")) == 1
        assert purchase_service.purchases_today(reference="2025-01-02") == []

    def test_invalid_period(self, db_session):
        with pytest.raises(InvariantViolationError):
            sales_service.list_sales(period="week")


class TestStatusQueries:
    """paid / credit / active filters."""

    def test_filters(self, db_session, sale_at, customer):
        paid = sale_at(datetime(2025, 1, 1, 9, 0), payment_status="paid")
        credit = sale_at(datetime(2025, 1, 1, 10, 0), payment_status="credit")
        cancelled = sale_at(datetime(2025, 1, 1, 11, 0))
        sales_service.cancel_sale(cancelled.id)

        assert [s.id for s in sales_service.list_sales(payment_status="paid")] == [paid.id]
        assert [s.id for s in sales_service.list_sales(payment_status="credit")] == [credit.id]
        assert {s.id for s in sales_service.list_sales(status="active")} == {paid.id, credit.id}
        assert [s.id for s in sales_service.list_sales(status="cancelled")] == [cancelled.id]
        assert len(sales_service.list_sales(customer_id=customer.id)) == 3

    def test_invalid_status(self, db_session):
        with pytest.raises(InvariantViolationError):
            sales_service.list_sales(status="void")


class TestOverdue:
    """Credit documents past their due date."""

    def test_midnight_boundary(self, db_session, sale_at):
        sale = sale_at(datetime(2025, 1, 1, 9, 0), payment_status="credit", due_date="2025-01-10")

        midnight = datetime(2025, 1, 10, 0, 0)
        just_after = datetime(2025, 1, 10, 0, 0, 1)

        assert sale.is_overdue(now=midnight) is False
        assert sales_service.overdue_sales(now=midnight) == []
        assert sale.is_overdue(now=just_after) is True
        assert [s.id for s in sales_service.overdue_sales(now=just_after)] == [sale.id]

    def test_non_credit_never_overdue(self, db_session, sale_at):
        sale = sale_at(datetime(2025, 1, 1, 9, 0), payment_status="unpaid", due_date="2025-01-02")

        assert sale.is_overdue(now=datetime(2025, 6, 1)) is False
        assert sales_service.overdue_sales(now=datetime(2025, 6, 1)) == []

    def test_no_due_date_never_overdue(self, db_session, sale_at):
        sale = sale_at(datetime(2025, 1, 1, 9, 0), payment_status="credit")
        assert sale.is_overdue(now=datetime(2030, 1, 1)) is False

    def test_paid_and_cancelled_leave_overdue_list(self, db_session, sale_at):
        settled = sale_at(datetime(2025, 1, 1, 9, 0), payment_status="credit", due_date="2025-01-05")
        voided = sale_at(datetime(2025, 1, 1, 9, 5), payment_status="credit", due_date="2025-01-05")
        open_ = sale_at(datetime(2025, 1, 1, 9, 10), payment_status="credit", due_date="2025-01-05")
        sales_service.mark_sale_as_paid(settled.id, "10.00")
        sales_service.cancel_sale(voided.id)

        overdue = sales_service.overdue_sales(now=datetime(2025, 2, 1))
        assert [s.id for s in overdue] == [open_.id]

    def test_overdue_purchases(self, db_session, make_product):
        product = make_product()
        purchase = purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[{"product_id": product.id, "quantity": 1}],
            payment_status="credit",
            due_date="2025-01-10",
        )

        assert purchase_service.overdue_purchases(now=datetime(2025, 1, 9, 12, 0)) == []
        assert [p.id for p in purchase_service.overdue_purchases(now=datetime(2025, 1, 11))] == [purchase.id]

