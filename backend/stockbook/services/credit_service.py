# Overview: Service-layer operations for customer credit exposure and limit checks.

"""
Credit exposure is always recomputed, never cached:

    credit_used = SUM(final_amount) over the customer's sales
                  WHERE payment_status = 'credit' AND status = 'active'

A credit sale is accepted iff credit_used + amount <= credit_limit.
The check is point-in-time: lowering a limit later does not re-check
sales that were already accepted.

ensure_credit_available() locks the customer row and reads the aggregate
inside the caller's transaction, the same one that inserts the new sale,
so two concurrent credit sales cannot both pass against the same total.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import CreditLimitExceededError, NotFoundError
from ..extensions import db
from ..models import Customer, Sale
from ..models.documents import PAYMENT_CREDIT, STATUS_ACTIVE
from ..money import ZERO, format_money, non_negative_money, to_money
from .concurrency import lock_for_update


def get_customer(customer_id: int, *, lock: bool = False) -> Customer:
    query = db.session.query(Customer).filter(Customer.id == customer_id)
    if lock:
        query = lock_for_update(query)
    customer = query.first()
    if customer is None:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    return customer


def total_credit_used(customer_id: int) -> Decimal:
    used = db.session.query(
        func.coalesce(func.sum(Sale.final_amount), 0)
    ).filter(
        Sale.customer_id == customer_id,
        Sale.payment_status == PAYMENT_CREDIT,
        Sale.status == STATUS_ACTIVE,
    ).scalar()
    return to_money(used or ZERO)


def remaining_credit(customer_id: int) -> Decimal:
    """Limit minus exposure. Negative when a limit was lowered below existing credit."""
    customer = get_customer(customer_id)
    return to_money(customer.credit_limit) - total_credit_used(customer_id)


def can_make_credit_purchase(customer_id: int, amount) -> bool:
    customer = get_customer(customer_id)
    amount = non_negative_money(amount, "amount")
    return total_credit_used(customer_id) + amount <= to_money(customer.credit_limit)


def ensure_credit_available(customer_id: int, amount) -> Decimal:
    """
    Lock the customer and verify amount fits under the limit.

    Must run inside the transaction that will insert the credit sale.
    Returns the exposure measured before the new sale.
    """
    customer = get_customer(customer_id, lock=True)
    amount = non_negative_money(amount, "amount")
    used = total_credit_used(customer_id)
    limit = to_money(customer.credit_limit)

    if used + amount > limit:
        current_app.logger.warning(
            "Credit limit exceeded for customer %s: used %s + requested %s > limit %s",
            customer.customer_code, used, amount, limit,
        )
        raise CreditLimitExceededError(
            "Credit limit exceeded",
            details={
                "customer_id": customer_id,
                "credit_limit": format_money(limit),
                "credit_used": format_money(used),
                "requested_amount": format_money(amount),
            },
        )
    return used


def credit_summary(customer_id: int) -> dict:
    customer = get_customer(customer_id)
    used = total_credit_used(customer_id)
    return {
        "customer_id": customer.id,
        "customer_code": customer.customer_code,
        "credit_limit": format_money(customer.credit_limit),
        "total_credit_used": format_money(used),
        "remaining_credit": format_money(to_money(customer.credit_limit) - used),
    }
