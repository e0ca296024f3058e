# Overview: Service-layer operations for purchase documents; encapsulates business logic.

"""
Purchase Document Service

LIFECYCLE:
1. create_purchase: number allocated, lines priced and totalled, stock
   increased for every line (cannot fail on stock).
2. mark_purchase_as_paid: payment fields only.
3. cancel_purchase: removes the purchased quantities again.

CANCELLATION IS ASYMMETRIC WITH SALES:
Cancelling a sale only puts stock back, so it always succeeds. Cancelling
a purchase takes stock away, and that stock may already have been sold.
Every line is checked first; if any product cannot absorb its reduction,
the whole cancellation is rejected with InvalidTransitionError and nothing
changes. The reductions themselves are still the conditional UPDATE, so a
concurrent sale that slips in between check and write rolls the
cancellation back rather than driving stock negative.
"""

from __future__ import annotations

from datetime import date, datetime

from flask import current_app
from sqlalchemy import update

from ..errors import InsufficientStockError, InvalidTransitionError, InvariantViolationError
from ..extensions import db
from ..models import Product, Purchase, PurchaseDetail
from ..models.documents import PAYMENT_PAID, STATUS_CANCELLED
from ..money import ZERO, non_negative_money
from ..time_utils import parse_iso_date, utcnow
from . import document_service, stock_service
from .concurrency import run_in_transaction
from .sequence_service import next_purchase_number


def _default_purchase_price(product):
    return product.purchase_price


def _refresh_purchase_price(line: PurchaseDetail) -> None:
    """Set the product's purchase_price to this line's unit price."""
    db.session.execute(
        update(Product)
        .where(Product.id == line.product_id)
        .values(purchase_price=line.unit_price, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    if line.product is not None:
        db.session.expire(line.product, ["purchase_price", "version_id"])


def process_purchase(purchase: Purchase, user_id: int | None = None) -> list:
    """Increase stock for every line of purchase (inside the caller's transaction)."""
    movements = []
    for line in purchase.details:
        movements.append(
            stock_service.increase_stock(
                line.product_id,
                line.quantity,
                movement_type=stock_service.MOVEMENT_PURCHASE,
                document_number=purchase.purchase_number,
                user_id=user_id,
                note=f"Purchase {purchase.purchase_number} from {purchase.supplier_name}",
            )
        )
    return movements


def create_purchase(
    *,
    supplier_name: str,
    lines: list[dict],
    user_id: int | None = None,
    discount=ZERO,
    payment_status: str = "unpaid",
    paid_amount=None,
    purchase_date: date | str | None = None,
    due_date: date | str | None = None,
    notes: str | None = None,
    update_purchase_prices: bool = False,
    created_at: datetime | None = None,
) -> Purchase:
    """
    Create an active purchase and add its quantities to stock.

    Args:
        supplier_name: free-text supplier (REQUIRED)
        lines: [{"product_id", "quantity", "unit_price" (optional)}]; a missing
            unit_price uses the product's current purchase price
        update_purchase_prices: copy each line's unit price onto the product
        purchase_date: business date, defaults to the created_at date

    Returns:
        The committed purchase; purchase.stock_movements holds its stock changes.

    Raises:
        InvariantViolationError, NotFoundError
    """
    supplier_name = (supplier_name or "").strip()
    if not supplier_name:
        raise InvariantViolationError("supplier_name is required", details={"field": "supplier_name"})
    payment_status = document_service.validate_payment_status(payment_status)
    line_requests = document_service.validate_line_requests(lines)
    discount = non_negative_money(discount, "discount")
    due = parse_iso_date(due_date)
    created_at = created_at or utcnow()
    purchased_on = parse_iso_date(purchase_date) or created_at.date()

    def _op() -> Purchase:
        purchase_number = next_purchase_number(created_at)

        purchase = Purchase(
            purchase_number=purchase_number,
            supplier_name=supplier_name,
            user_id=user_id,
            payment_status=payment_status,
            purchase_date=purchased_on,
            due_date=due,
            notes=notes,
            created_at=created_at,
        )
        document_service.build_lines(purchase, PurchaseDetail, line_requests, _default_purchase_price)
        document_service.apply_totals(purchase, discount)
        purchase.paid_amount = document_service.opening_paid_amount(
            payment_status, paid_amount, purchase.final_amount
        )

        db.session.add(purchase)
        db.session.flush()

        process_purchase(purchase, user_id=user_id)

        if update_purchase_prices:
            for line in purchase.details:
                _refresh_purchase_price(line)

        current_app.logger.info(
            "Purchase %s created from %s: %d line(s), final %s",
            purchase.purchase_number, purchase.supplier_name, len(purchase.details), purchase.final_amount,
        )
        return purchase

    return run_in_transaction(_op)


def mark_purchase_as_paid(purchase_id: int, paid_amount, user_id: int | None = None) -> Purchase:
    paid_amount = non_negative_money(paid_amount, "paid_amount")

    def _op() -> Purchase:
        purchase = document_service.load_document_for_update(Purchase, purchase_id)
        document_service.ensure_not_cancelled(purchase, "mark as paid")

        purchase.paid_amount = paid_amount
        purchase.payment_status = PAYMENT_PAID

        current_app.logger.info(
            "Purchase %s marked paid: %s (user %s)", purchase.purchase_number, paid_amount, user_id,
        )
        return purchase

    return run_in_transaction(_op)


def _shortfalls(purchase: Purchase) -> list[dict]:
    needed: dict[int, int] = {}
    for line in purchase.details:
        needed[line.product_id] = needed.get(line.product_id, 0) + line.quantity

    short = []
    for product_id, qty in needed.items():
        on_hand = stock_service.get_current_stock(product_id)
        if on_hand < qty:
            short.append({
                "product_id": product_id,
                "requested_quantity": qty,
                "current_stock": on_hand,
            })
    return short


def cancel_purchase(purchase_id: int, user_id: int | None = None) -> Purchase:
    """
    Cancel an active purchase and remove its quantities from stock.

    Raises InvalidTransitionError when the purchase is not active or when
    any line's product no longer holds enough stock. On success the
    PURCHASE_CANCEL rows are appended to purchase.stock_movements.
    """
    def _op() -> Purchase:
        purchase = document_service.load_document_for_update(Purchase, purchase_id)
        document_service.ensure_active(purchase, "cancel")

        short = _shortfalls(purchase)
        if short:
            current_app.logger.warning(
                "Purchase %s cannot be cancelled: stock already consumed %s",
                purchase.purchase_number, short,
            )
            raise InvalidTransitionError(
                "Cannot cancel purchase: resulting stock would be negative",
                details={"id": purchase.id, "items": short},
            )

        try:
            for line in purchase.details:
                stock_service.reduce_stock(
                    line.product_id,
                    line.quantity,
                    movement_type=stock_service.MOVEMENT_PURCHASE_CANCEL,
                    document_number=purchase.purchase_number,
                    user_id=user_id,
                    note=f"Cancel purchase {purchase.purchase_number}",
                )
        except InsufficientStockError as exc:
            raise InvalidTransitionError(
                "Cannot cancel purchase: resulting stock would be negative",
                details={"id": purchase.id, "items": [exc.details]},
            ) from exc

        purchase.status = STATUS_CANCELLED

        current_app.logger.info("Purchase %s cancelled (user %s)", purchase.purchase_number, user_id)
        return purchase

    return run_in_transaction(_op)


def get_purchase(purchase_id: int) -> Purchase | None:
    return db.session.query(Purchase).filter(Purchase.id == purchase_id).first()


def list_purchases(
    *,
    status: str | None = None,
    payment_status: str | None = None,
    period: str | None = None,
    reference=None,
    limit: int = 100,
) -> list[Purchase]:
    q = document_service.document_query(
        Purchase,
        status=status,
        payment_status=payment_status,
        period=period,
        reference=reference,
    )
    return q.limit(limit).all()


def purchases_today(reference=None) -> list[Purchase]:
    return list_purchases(period=document_service.PERIOD_TODAY, reference=reference, limit=1000)


def purchases_this_month(reference=None) -> list[Purchase]:
    return list_purchases(period=document_service.PERIOD_MONTH, reference=reference, limit=10000)


def overdue_purchases(now: datetime | None = None) -> list[Purchase]:
    return document_service.document_query(Purchase, overdue=True, now=now).all()
