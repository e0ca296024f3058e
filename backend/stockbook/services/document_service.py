# Overview: Service-layer operations shared by sale and purchase documents.

"""
Shared document rules

State machine (Sale and Purchase):

    active --mark_as_paid--> active (payment_status=paid)
    active --cancel-------> cancelled   (terminal)

- mark-as-paid is legal from any non-cancelled document.
- cancel is legal only while status == active.
- Overdue: payment_status == credit AND due_date set AND now > due_date
  (due_date is taken at the start of its day).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, timedelta

from sqlalchemy import and_

from ..errors import InvalidTransitionError, InvariantViolationError, NotFoundError
from ..extensions import db
from ..line_items import compute_document_totals, normalize_line
from ..models import Product
from ..models.documents import (
    PAYMENT_CREDIT,
    PAYMENT_PAID,
    PAYMENT_STATUSES,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    DOCUMENT_STATUSES,
)
from ..money import non_negative_money, positive_quantity
from ..time_utils import parse_iso_date, start_of_day, utcnow
from .concurrency import lock_for_update

PERIOD_TODAY = "today"
PERIOD_MONTH = "month"


def validate_payment_status(payment_status: str) -> str:
    if payment_status not in PAYMENT_STATUSES:
        raise InvariantViolationError(
            f"Invalid payment_status. Must be one of: {', '.join(sorted(PAYMENT_STATUSES))}",
            details={"field": "payment_status"},
        )
    return payment_status


def validate_line_requests(lines: Iterable[dict] | None) -> list[dict]:
    """Reject bad lines before any transaction opens."""
    if not lines:
        raise InvariantViolationError("Document requires at least one line")
    if isinstance(lines, (str, bytes, Mapping)) or not isinstance(lines, Iterable):
        raise InvariantViolationError("lines must be a list of mappings")

    cleaned = []
    for i, raw in enumerate(lines):
        if not isinstance(raw, Mapping):
            raise InvariantViolationError(f"Line {i + 1}: expected a mapping", details={"line": i + 1})
        product_id = raw.get("product_id")
        if product_id is None:
            raise InvariantViolationError(f"Line {i + 1}: product_id required", details={"line": i + 1})
        product_id = positive_quantity(product_id, "product_id")
        unit_price = raw.get("unit_price")
        cleaned.append({
            "product_id": product_id,
            "quantity": positive_quantity(raw.get("quantity")),
            "unit_price": None if unit_price is None else non_negative_money(unit_price, "unit_price"),
        })
    return cleaned


def load_line_product(product_id: int) -> Product:
    product = db.session.query(Product).filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    if not product.is_active:
        raise InvariantViolationError("Product is inactive", details={"product_id": product_id})
    return product


def build_lines(document, line_cls, line_requests: list[dict], default_price) -> list:
    """
    Attach normalized line items to document.

    default_price(product) supplies the unit price for lines that carry none.
    """
    built = []
    for request in line_requests:
        product = load_line_product(request["product_id"])
        unit_price = request["unit_price"]
        if unit_price is None:
            unit_price = default_price(product)
            if unit_price is None:
                raise InvariantViolationError(
                    "Product has no price for this document",
                    details={"product_id": product.id},
                )
        line = line_cls(product=product, quantity=request["quantity"], unit_price=unit_price)
        normalize_line(line)
        document.details.append(line)
        built.append(line)
    return built


def apply_totals(document, discount) -> None:
    """Recompute header totals from the document's lines."""
    for line in document.details:
        normalize_line(line)
    totals = compute_document_totals((line.total_price for line in document.details), discount)
    document.total_amount = totals.total_amount
    document.discount = totals.discount
    document.final_amount = totals.final_amount


def load_document_for_update(model, document_id: int):
    doc = lock_for_update(db.session.query(model).filter(model.id == document_id)).first()
    if doc is None:
        raise NotFoundError(f"{model.__name__} not found", details={"id": document_id})
    return doc


def ensure_not_cancelled(document, operation: str) -> None:
    if document.status == STATUS_CANCELLED:
        raise InvalidTransitionError(
            f"Cannot {operation} a cancelled document",
            details={"id": document.id, "status": document.status, "operation": operation},
        )


def ensure_active(document, operation: str) -> None:
    if document.status != STATUS_ACTIVE:
        raise InvalidTransitionError(
            f"Can only {operation} active documents",
            details={"id": document.id, "status": document.status, "operation": operation},
        )


def _day_bounds(reference: date) -> tuple[datetime, datetime]:
    start = start_of_day(reference)
    return start, start + timedelta(days=1)


def _month_bounds(reference: date) -> tuple[datetime, datetime]:
    start = datetime(reference.year, reference.month, 1)
    if reference.month == 12:
        end = datetime(reference.year + 1, 1, 1)
    else:
        end = datetime(reference.year, reference.month + 1, 1)
    return start, end


def overdue_filter(model, now: datetime | None = None):
    """SQL form of is_overdue(): due_date strictly before now."""
    now = now or utcnow()
    if now.time() == time.min:
        due_clause = model.due_date < now.date()
    else:
        due_clause = model.due_date <= now.date()
    return and_(
        model.payment_status == PAYMENT_CREDIT,
        model.status == STATUS_ACTIVE,
        model.due_date.isnot(None),
        due_clause,
    )


def document_query(
    model,
    *,
    status: str | None = None,
    payment_status: str | None = None,
    period: str | None = None,
    reference=None,
    overdue: bool = False,
    now: datetime | None = None,
):
    q = db.session.query(model)

    if status is not None:
        if status not in DOCUMENT_STATUSES:
            raise InvariantViolationError(f"Invalid status: {status}")
        q = q.filter(model.status == status)
    if payment_status is not None:
        q = q.filter(model.payment_status == validate_payment_status(payment_status))

    if period is not None:
        ref_date = parse_iso_date(reference) or utcnow().date()
        if period == PERIOD_TODAY:
            start, end = _day_bounds(ref_date)
        elif period == PERIOD_MONTH:
            start, end = _month_bounds(ref_date)
        else:
            raise InvariantViolationError(f"Invalid period: {period}")
        q = q.filter(model.created_at >= start, model.created_at < end)

    if overdue:
        q = q.filter(overdue_filter(model, now))

    return q.order_by(model.id.desc())


def opening_paid_amount(payment_status: str, paid_amount, final_amount):
    """paid_amount for a new document: defaults to final_amount when opened as paid."""
    if paid_amount is None:
        return final_amount if payment_status == PAYMENT_PAID else non_negative_money(0, "paid_amount")
    return non_negative_money(paid_amount, "paid_amount")
