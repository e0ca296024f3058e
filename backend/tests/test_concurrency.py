# Overview: Pytest coverage for transaction boundaries, the retry loop and concurrent callers.

import threading
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from stockbook.errors import CreditLimitExceededError, InsufficientStockError, LedgerError
from stockbook.extensions import db
from stockbook.models import Category, Sale
from stockbook.services import catalog_service, credit_service, purchase_service, sales_service, stock_service
from stockbook.services.concurrency import run_in_transaction, run_with_retry


def _locked():
    return OperationalError("UPDATE products", {}, Exception("database is locked"))


class TestRunWithRetry:
    """Retry on lock and version conflicts."""

    def test_retries_then_succeeds(self, db_session):
        calls = []

        def _op():
            calls.append(1)
            if len(calls) == 1:
                raise _locked()
            return "ok"

        assert run_with_retry(_op, attempts=3, backoff_base=0) == "ok"
        assert len(calls) == 2

    def test_gives_up_after_attempts(self, db_session):
        calls = []

        def _op():
            calls.append(1)
            raise StaleDataError("version mismatch")

        with pytest.raises(StaleDataError):
            run_with_retry(_op, attempts=3, backoff_base=0)
        assert len(calls) == 3

    def test_other_errors_not_retried(self, db_session):
        calls = []

        def _op():
            calls.append(1)
            raise KeyError("boom")

        with pytest.raises(KeyError):
            run_with_retry(_op, attempts=3, backoff_base=0)
        assert len(calls) == 1


class TestRunInTransaction:
    """Single commit, full rollback."""

    def test_commits_on_success(self, db_session):
        def _op():
            db.session.add(Category(name="Snacks"))
            return "done"

        assert run_in_transaction(_op) == "done"
        db_session.rollback()
        assert db_session.query(Category).filter_by(name="Snacks").count() == 1

    def test_rolls_back_on_error(self, db_session):
        def _op():
            db.session.add(Category(name="Ghost"))
            db.session.flush()
            raise ValueError("abort")

        with pytest.raises(ValueError):
            run_in_transaction(_op)
        assert db_session.query(Category).filter_by(name="Ghost").count() == 0


BUSINESS_TIME = datetime(2025, 1, 1, 12, 0)


def _run_concurrently(app, count, func):
    """Release count threads together, each in its own app context; return (outcome, value) per thread."""
    barrier = threading.Barrier(count)
    outcomes = [None] * count

    def _worker(index):
        with app.app_context():
            barrier.wait()
            try:
                outcomes[index] = ("ok", func(index))
            except LedgerError as exc:
                outcomes[index] = ("rejected", exc)
            except Exception as exc:
                outcomes[index] = ("crashed", exc)

    threads = [threading.Thread(target=_worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=120)
    return outcomes


def _seed_product(app, stock):
    with app.app_context():
        category = catalog_service.create_category("General")
        product = catalog_service.create_product(
            name="Widget",
            category_id=category.id,
            purchase_price="6.00",
            wholesale_price="8.00",
            retail_price="100.00",
            current_stock=stock,
        )
        return product.id


class TestConcurrentCallers:
    """Simultaneous callers on separate connections."""

    def test_simultaneous_reductions_never_oversell(self, file_app):
        product_id = _seed_product(file_app, stock=9)

        def _take(_):
            return run_in_transaction(lambda: stock_service.reduce_stock(product_id, 2).stock_after)

        outcomes = _run_concurrently(file_app, 8, _take)

        assert [o for o in outcomes if o[0] == "crashed"] == []
        assert sorted(v for kind, v in outcomes if kind == "ok") == [1, 3, 5, 7]
        rejected = [v for kind, v in outcomes if kind == "rejected"]
        assert len(rejected) == 4
        assert all(isinstance(exc, InsufficientStockError) for exc in rejected)
        with file_app.app_context():
            assert stock_service.get_current_stock(product_id) == 1

    def test_simultaneous_sales_get_unique_numbers(self, file_app):
        """Ten buyers, five units: five sales with consecutive numbers, five rejections."""
        product_id = _seed_product(file_app, stock=5)

        def _sell(_):
            sale = sales_service.create_sale(
                lines=[{"product_id": product_id, "quantity": 1}],
                created_at=BUSINESS_TIME,
            )
            return sale.invoice_number

        outcomes = _run_concurrently(file_app, 10, _sell)

        assert [o for o in outcomes if o[0] == "crashed"] == []
        numbers = sorted(v for kind, v in outcomes if kind == "ok")
        assert numbers == [f"INV-20250101-{n:03d}" for n in range(1, 6)]
        rejected = [v for kind, v in outcomes if kind == "rejected"]
        assert len(rejected) == 5
        assert all(isinstance(exc, InsufficientStockError) for exc in rejected)
        with file_app.app_context():
            assert stock_service.get_current_stock(product_id) == 0
            assert db.session.query(Sale).count() == 5

    def test_simultaneous_purchases_get_unique_numbers(self, file_app):
        product_id = _seed_product(file_app, stock=0)

        def _buy(_):
            purchase = purchase_service.create_purchase(
                supplier_name="Acme",
                lines=[{"product_id": product_id, "quantity": 1}],
                created_at=BUSINESS_TIME,
            )
            return purchase.purchase_number

        outcomes = _run_concurrently(file_app, 8, _buy)

        assert [kind for kind, _ in outcomes] == ["ok"] * 8
        assert sorted(v for _, v in outcomes) == [f"PUR-20250101-{n:03d}" for n in range(1, 9)]
        with file_app.app_context():
            assert stock_service.get_current_stock(product_id) == 8

    def test_simultaneous_credit_sales_respect_limit(self, file_app):
        """Eight 100.00 credit sales race for a 300.00 limit: exactly three land."""
        product_id = _seed_product(file_app, stock=100)
        with file_app.app_context():
            customer_id = catalog_service.create_customer(name="Warung Sari", credit_limit="300.00").id

        def _credit_sale(_):
            sale = sales_service.create_sale(
                lines=[{"product_id": product_id, "quantity": 1}],
                customer_id=customer_id,
                payment_status="credit",
            )
            return sale.final_amount

        outcomes = _run_concurrently(file_app, 8, _credit_sale)

        assert [o for o in outcomes if o[0] == "crashed"] == []
        assert sorted(v for kind, v in outcomes if kind == "ok") == [Decimal("100.00")] * 3
        rejected = [v for kind, v in outcomes if kind == "rejected"]
        assert len(rejected) == 5
        assert all(isinstance(exc, CreditLimitExceededError) for exc in rejected)
        with file_app.app_context():
            assert credit_service.total_credit_used(customer_id) == Decimal("300.00")
            assert stock_service.get_current_stock(product_id) == 97
