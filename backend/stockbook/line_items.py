# Overview: Line item and document total arithmetic.

"""
Line totals and document totals (authoritative)

- total_price = quantity * unit_price, recomputed on every persist path
  through normalize_line(); a caller-supplied total_price is overwritten.
- total_amount = sum(line.total_price)
- line totals and total_amount stay within NUMERIC(15, 2)
- discount >= 0, clamped to total_amount so final_amount never goes negative
- final_amount = total_amount - discount
- remaining_amount = max(0, final_amount - paid_amount)
- change_amount = max(0, paid_amount - final_amount)
- profit (sale lines) = total_price - purchase_price * quantity
- profit_margin = profit / cost * 100, 0 when cost <= 0
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from .errors import InvariantViolationError
from .money import ZERO, non_negative_money, positive_quantity, to_money


@dataclass(frozen=True)
class DocumentTotals:
    total_amount: Decimal
    discount: Decimal
    final_amount: Decimal


def compute_line_total(quantity: int, unit_price) -> Decimal:
    return non_negative_money(Decimal(quantity) * to_money(unit_price), "total_price")


def normalize_line(line):
    """
    Pre-persist normalization for SaleDetail / PurchaseDetail.

    Re-validates quantity and unit_price and recomputes total_price.
    Every service path that adds or edits a line calls this before flush.
    """
    if line.quantity is None or line.unit_price is None:
        raise InvariantViolationError("line requires quantity and unit_price")
    line.quantity = positive_quantity(line.quantity)
    line.unit_price = non_negative_money(line.unit_price, "unit_price")
    line.total_price = compute_line_total(line.quantity, line.unit_price)
    return line


def compute_document_totals(line_totals: Iterable, discount=ZERO) -> DocumentTotals:
    total_amount = non_negative_money(sum((to_money(t) for t in line_totals), ZERO), "total_amount")
    discount = non_negative_money(discount, "discount")
    if discount > total_amount:
        discount = total_amount
    return DocumentTotals(
        total_amount=total_amount,
        discount=discount,
        final_amount=total_amount - discount,
    )


def remaining_amount(final_amount, paid_amount) -> Decimal:
    return max(ZERO, to_money(final_amount) - to_money(paid_amount))


def change_amount(paid_amount, final_amount) -> Decimal:
    return max(ZERO, to_money(paid_amount) - to_money(final_amount))


def total_items(quantities: Iterable[int]) -> int:
    return sum(quantities, 0)


def line_cost(purchase_price, quantity: int) -> Decimal:
    return to_money(to_money(purchase_price) * quantity)


def line_profit(total_price, purchase_price, quantity: int) -> Decimal:
    return to_money(total_price) - line_cost(purchase_price, quantity)


def line_profit_margin(total_price, purchase_price, quantity: int) -> Decimal:
    cost = line_cost(purchase_price, quantity)
    if cost <= 0:
        return ZERO
    return (to_money(total_price) - cost) / cost * 100
