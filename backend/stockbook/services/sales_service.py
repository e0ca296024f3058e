"""
Sales Service - sale documents and their stock effects

LIFECYCLE:
1. create_sale: number allocated, lines priced and totalled, credit checked,
   stock reduced for every line. All in one transaction; any failing line
   (insufficient stock, inactive product) leaves no trace.
2. mark_sale_as_paid: payment fields only, stock untouched.
3. cancel_sale: stock restored for every line, status -> cancelled (terminal).

ORDERING inside create_sale matters under concurrency:
- the invoice sequence row is bumped first, taking the write lock (SQLite)
  or the scope row lock (other engines) before anything is read;
- the customer row is locked before the credit aggregate is read, and the
  sale is inserted in the same transaction.
"""

from __future__ import annotations

from datetime import date, datetime

from flask import current_app

from ..errors import InvariantViolationError
from ..extensions import db
from ..line_items import change_amount
from ..models import Sale, SaleDetail
from ..models.documents import PAYMENT_CREDIT, PAYMENT_PAID, STATUS_CANCELLED
from ..money import ZERO, non_negative_money
from ..time_utils import parse_iso_date, utcnow
from . import credit_service, document_service, stock_service
from .concurrency import run_in_transaction
from .sequence_service import next_invoice_number


def _default_sale_price(wholesale: bool):
    def _price(product):
        return product.wholesale_price if wholesale else product.retail_price
    return _price


def process_sale(sale: Sale, user_id: int | None = None) -> list:
    """
    Reduce stock for every line of sale.

    Runs inside the caller's transaction; an InsufficientStockError on any
    line propagates and the caller's rollback undoes the earlier lines.
    """
    movements = []
    for line in sale.details:
        movements.append(
            stock_service.reduce_stock(
                line.product_id,
                line.quantity,
                movement_type=stock_service.MOVEMENT_SALE,
                document_number=sale.invoice_number,
                user_id=user_id,
                note=f"Sale {sale.invoice_number}",
            )
        )
    return movements


def create_sale(
    *,
    lines: list[dict],
    customer_id: int | None = None,
    user_id: int | None = None,
    discount=ZERO,
    payment_status: str = "unpaid",
    paid_amount=None,
    due_date: date | str | None = None,
    notes: str | None = None,
    wholesale: bool = False,
    created_at: datetime | None = None,
) -> Sale:
    """
    Create an active sale and apply its stock effects.

    Args:
        lines: [{"product_id", "quantity", "unit_price" (optional)}]; a missing
            unit_price uses the product's retail (or wholesale) price
        customer_id: required for credit sales
        payment_status: "unpaid", "paid" or "credit"
        paid_amount: defaults to final_amount for paid sales, 0 otherwise
        created_at: business timestamp; also selects the invoice number's date

    Returns:
        The committed sale. sale.stock_movements lists the stock journal
        rows written for it, one per line.

    Raises:
        InvariantViolationError, NotFoundError, InsufficientStockError,
        CreditLimitExceededError
    """
    payment_status = document_service.validate_payment_status(payment_status)
    line_requests = document_service.validate_line_requests(lines)
    discount = non_negative_money(discount, "discount")
    if payment_status == PAYMENT_CREDIT and not customer_id:
        raise InvariantViolationError("Credit sales require a customer", details={"field": "customer_id"})
    due = parse_iso_date(due_date)
    created_at = created_at or utcnow()

    def _op() -> Sale:
        invoice_number = next_invoice_number(created_at)

        sale = Sale(
            invoice_number=invoice_number,
            customer_id=customer_id,
            user_id=user_id,
            payment_status=payment_status,
            due_date=due,
            notes=notes,
            created_at=created_at,
        )
        document_service.build_lines(sale, SaleDetail, line_requests, _default_sale_price(wholesale))
        document_service.apply_totals(sale, discount)

        sale.paid_amount = document_service.opening_paid_amount(payment_status, paid_amount, sale.final_amount)
        sale.change_amount = (
            change_amount(sale.paid_amount, sale.final_amount) if payment_status == PAYMENT_PAID else ZERO
        )

        if customer_id:
            if payment_status == PAYMENT_CREDIT:
                credit_service.ensure_credit_available(customer_id, sale.final_amount)
            else:
                credit_service.get_customer(customer_id)

        db.session.add(sale)
        db.session.flush()

        process_sale(sale, user_id=user_id)

        current_app.logger.info(
            "Sale %s created: %d line(s), final %s, payment %s",
            sale.invoice_number, len(sale.details), sale.final_amount, sale.payment_status,
        )
        return sale

    return run_in_transaction(_op)


def mark_sale_as_paid(sale_id: int, paid_amount, user_id: int | None = None) -> Sale:
    """Record full payment. change_amount = max(0, paid - final). Stock is untouched."""
    paid_amount = non_negative_money(paid_amount, "paid_amount")

    def _op() -> Sale:
        sale = document_service.load_document_for_update(Sale, sale_id)
        document_service.ensure_not_cancelled(sale, "mark as paid")

        sale.paid_amount = paid_amount
        sale.change_amount = change_amount(paid_amount, sale.final_amount)
        sale.payment_status = PAYMENT_PAID

        current_app.logger.info(
            "Sale %s marked paid: paid %s, change %s (user %s)",
            sale.invoice_number, sale.paid_amount, sale.change_amount, user_id,
        )
        return sale

    return run_in_transaction(_op)


def cancel_sale(sale_id: int, user_id: int | None = None) -> Sale:
    """
    Cancel an active sale and restore stock for every line.

    Restoring stock cannot fail, so the only rejection is a sale that is
    no longer active. The SALE_CANCEL rows are appended to
    sale.stock_movements.
    """
    def _op() -> Sale:
        sale = document_service.load_document_for_update(Sale, sale_id)
        document_service.ensure_active(sale, "cancel")

        for line in sale.details:
            stock_service.increase_stock(
                line.product_id,
                line.quantity,
                movement_type=stock_service.MOVEMENT_SALE_CANCEL,
                document_number=sale.invoice_number,
                user_id=user_id,
                note=f"Cancel sale {sale.invoice_number}",
            )

        sale.status = STATUS_CANCELLED

        current_app.logger.info("Sale %s cancelled (user %s)", sale.invoice_number, user_id)
        return sale

    return run_in_transaction(_op)


def get_sale(sale_id: int) -> Sale | None:
    return db.session.query(Sale).filter(Sale.id == sale_id).first()


def get_sale_by_number(invoice_number: str) -> Sale | None:
    return db.session.query(Sale).filter(Sale.invoice_number == invoice_number).first()


def list_sales(
    *,
    customer_id: int | None = None,
    status: str | None = None,
    payment_status: str | None = None,
    period: str | None = None,
    reference=None,
    limit: int = 100,
) -> list[Sale]:
    q = document_service.document_query(
        Sale,
        status=status,
        payment_status=payment_status,
        period=period,
        reference=reference,
    )
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    return q.limit(limit).all()


def sales_today(reference=None) -> list[Sale]:
    return list_sales(period=document_service.PERIOD_TODAY, reference=reference, limit=1000)


def sales_this_month(reference=None) -> list[Sale]:
    return list_sales(period=document_service.PERIOD_MONTH, reference=reference, limit=10000)


def overdue_sales(now: datetime | None = None) -> list[Sale]:
    return document_service.document_query(Sale, overdue=True, now=now).all()
