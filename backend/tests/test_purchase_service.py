# Overview: Pytest coverage for the purchase document lifecycle.

"""
Purchase Document Tests

- creation increases stock and never fails on stock
- optional purchase price refresh
- cancel removes the purchased quantities, rejected when already consumed
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from stockbook.errors import InvalidTransitionError, InvariantViolationError
from stockbook.models import Purchase, StockMovement
from stockbook.money import MAX_QUANTITY
from stockbook.services import catalog_service, purchase_service, sales_service


def _stock(product_id):
    return catalog_service.get_product(product_id).current_stock


class TestCreatePurchase:
    """Creation and stock increase."""

    def test_purchase_adds_stock(self, db_session, make_product):
        product = make_product(stock=0)

        purchase = purchase_service.create_purchase(
            supplier_name="PT Sumber Jaya",
            lines=[{"product_id": product.id, "quantity": 10, "unit_price": "6.00"}],
            created_at=datetime(2025, 1, 1, 10, 0),
        )

        assert purchase.purchase_number == "PUR-20250101-001"
        assert purchase.purchase_date == date(2025, 1, 1)
        assert purchase.final_amount == Decimal("60.00")
        assert _stock(product.id) == 10

    def test_unit_price_defaults_to_purchase_price(self, db_session, make_product):
        product = make_product(purchase_price="4.25")
        purchase = purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[{"product_id": product.id, "quantity": 4}],
        )
        assert purchase.total_amount == Decimal("17.00")

    def test_supplier_required(self, db_session, make_product):
        product = make_product()
        with pytest.raises(InvariantViolationError):
            purchase_service.create_purchase(
                supplier_name="  ",
                lines=[{"product_id": product.id, "quantity": 1}],
            )

    def test_price_refresh(self, db_session, make_product):
        product = make_product(purchase_price="6.00")

        purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[{"product_id": product.id, "quantity": 5, "unit_price": "6.50"}],
            update_purchase_prices=True,
        )

        assert catalog_service.get_product(product.id).purchase_price == Decimal("6.50")

    def test_no_price_refresh_by_default(self, db_session, make_product):
        product = make_product(purchase_price="6.00")

        purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[{"product_id": product.id, "quantity": 5, "unit_price": "6.50"}],
        )

        assert catalog_service.get_product(product.id).purchase_price == Decimal("6.00")

    def test_explicit_purchase_date(self, db_session, make_product):
        product = make_product()
        purchase = purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[{"product_id": product.id, "quantity": 1}],
            purchase_date="2024-12-30",
        )
        assert purchase.purchase_date == date(2024, 12, 30)

    def test_mark_paid(self, db_session, make_product):
        product = make_product()
        purchase = purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[{"product_id": product.id, "quantity": 2, "unit_price": "5.00"}],
            payment_status="credit",
            due_date="2025-03-01",
        )

        purchase = purchase_service.mark_purchase_as_paid(purchase.id, "10.00")

        assert purchase.is_paid()
        assert purchase.remaining_amount == Decimal("0.00")
        assert _stock(product.id) == 2


    def test_purchase_exposes_its_stock_movements(self, db_session, make_product):
        product = make_product(stock=2)

        purchase = purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[{"product_id": product.id, "quantity": 10}],
        )

        assert [(m.movement_type, m.quantity_delta, m.stock_after) for m in purchase.stock_movements] == [
            ("PURCHASE", 10, 12),
        ]
        assert purchase.stock_movements[0].document_number == purchase.purchase_number

    def test_purchase_beyond_stock_limit_rejected(self, db_session, make_product):
        product = make_product(stock=MAX_QUANTITY - 5)

        with pytest.raises(InvariantViolationError):
            purchase_service.create_purchase(
                supplier_name="Acme",
                lines=[{"product_id": product.id, "quantity": 6}],
            )

        assert _stock(product.id) == MAX_QUANTITY - 5
        assert db_session.query(Purchase).count() == 0

class TestCancelPurchase:
    """Stock removal with consumption check."""

    def test_cancel_removes_stock(self, db_session, make_product):
        product = make_product(stock=3)
        purchase = purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[{"product_id": product.id, "quantity": 10}],
        )

        purchase = purchase_service.cancel_purchase(purchase.id)

        assert purchase.is_cancelled()
        assert _stock(product.id) == 3
        movement = db_session.query(StockMovement).filter_by(movement_type="PURCHASE_CANCEL").one()
        assert movement.quantity_delta == -10
        assert [(m.movement_type, m.stock_after) for m in purchase.stock_movements] == [
            ("PURCHASE", 13),
            ("PURCHASE_CANCEL", 3),
        ]

    def test_cancel_rejected_after_goods_sold(self, db_session, make_product):
        """Bought 10, sold 7: removing 10 would drive stock to -7."""
        product = make_product(stock=0)
        purchase = purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[{"product_id": product.id, "quantity": 10}],
        )
        sales_service.create_sale(lines=[{"product_id": product.id, "quantity": 7}])

        with pytest.raises(InvalidTransitionError) as exc_info:
            purchase_service.cancel_purchase(purchase.id)

        assert exc_info.value.details["items"] == [{
            "product_id": product.id,
            "requested_quantity": 10,
            "current_stock": 3,
        }]
        assert _stock(product.id) == 3
        assert db_session.get(Purchase, purchase.id).is_active()
        assert [m.movement_type for m in db_session.get(Purchase, purchase.id).stock_movements] == ["PURCHASE"]

    def test_partial_shortfall_rejects_whole_cancel(self, db_session, make_product):
        """One short line blocks every line, including those with enough stock."""
        kept = make_product(name="Kept", stock=0)
        sold = make_product(name="Sold", stock=0)
        purchase = purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[
                {"product_id": kept.id, "quantity": 4},
                {"product_id": sold.id, "quantity": 4},
            ],
        )
        sales_service.create_sale(lines=[{"product_id": sold.id, "quantity": 1}])

        with pytest.raises(InvalidTransitionError):
            purchase_service.cancel_purchase(purchase.id)

        assert _stock(kept.id) == 4
        assert _stock(sold.id) == 3

    def test_double_cancel_rejected(self, db_session, make_product):
        product = make_product()
        purchase = purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[{"product_id": product.id, "quantity": 2}],
        )
        purchase_service.cancel_purchase(purchase.id)

        with pytest.raises(InvalidTransitionError):
            purchase_service.cancel_purchase(purchase.id)

    def test_mark_paid_after_cancel_rejected(self, db_session, make_product):
        product = make_product()
        purchase = purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[{"product_id": product.id, "quantity": 2}],
        )
        purchase_service.cancel_purchase(purchase.id)

        with pytest.raises(InvalidTransitionError):
            purchase_service.mark_purchase_as_paid(purchase.id, "1.00")

    def test_to_dict(self, db_session, make_product):
        product = make_product()
        purchase = purchase_service.create_purchase(
            supplier_name="Acme",
            lines=[{"product_id": product.id, "quantity": 2, "unit_price": "5.00"}],
            purchase_date=date(2025, 1, 2),
        )

        data = purchase_service.get_purchase(purchase.id).to_dict(include_lines=True)

        assert data["supplier_name"] == "Acme"
        assert data["purchase_date"] == "2025-01-02"
        assert data["total_items"] == 2
        assert data["lines"][0]["purchase_id"] == purchase.id
