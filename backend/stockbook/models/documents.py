from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from ..line_items import compute_line_total, remaining_amount, total_items
from ..money import ZERO, format_money, non_negative_money, positive_quantity
from ..time_utils import utcnow, start_of_day, to_utc_z

STATUS_ACTIVE = "active"
STATUS_CANCELLED = "cancelled"
DOCUMENT_STATUSES = {STATUS_ACTIVE, STATUS_CANCELLED}

PAYMENT_UNPAID = "unpaid"
PAYMENT_PAID = "paid"
PAYMENT_CREDIT = "credit"
PAYMENT_STATUSES = {PAYMENT_UNPAID, PAYMENT_PAID, PAYMENT_CREDIT}


class DocumentSequence(db.Model):
    """
    Atomic per-scope number sequences.

    Scope is the full number prefix: "INV-20250101" for a day of invoices,
    "CUST" for customer codes. The row is bumped with a single UPDATE, which
    takes a row lock on every engine and serializes concurrent callers.
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(64), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope": self.scope,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class LineItemMixin:
    """
    Shared columns and invariants for SaleDetail / PurchaseDetail.

    Assigning quantity or unit_price re-validates and recomputes
    total_price; line_items.normalize_line() does the same explicitly
    before every flush.
    """
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(15, 2), nullable=False)
    total_price = db.Column(db.Numeric(15, 2), nullable=False)

    @validates("quantity")
    def _validate_quantity(self, key, value):
        value = positive_quantity(value)
        if self.unit_price is not None:
            self.total_price = compute_line_total(value, self.unit_price)
        return value

    @validates("unit_price")
    def _validate_unit_price(self, key, value):
        value = non_negative_money(value, "unit_price")
        if self.quantity is not None:
            self.total_price = compute_line_total(self.quantity, value)
        return value

    def _line_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": format_money(self.unit_price),
            "total_price": format_money(self.total_price),
        }


class TransactionDocumentMixin:
    """Header fields and predicates common to Sale and Purchase."""
    user_id = db.Column(db.Integer, nullable=True)

    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=ZERO)
    discount = db.Column(db.Numeric(15, 2), nullable=False, default=ZERO)
    final_amount = db.Column(db.Numeric(15, 2), nullable=False, default=ZERO)
    paid_amount = db.Column(db.Numeric(15, 2), nullable=False, default=ZERO)

    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_UNPAID, index=True)
    status = db.Column(db.String(16), nullable=False, default=STATUS_ACTIVE, index=True)
    due_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Subclasses expose their lines through this attribute name
    _lines_attr = "details"

    @property
    def lines(self) -> list:
        return list(getattr(self, self._lines_attr))

    def is_paid(self) -> bool:
        return self.payment_status == PAYMENT_PAID

    def is_credit(self) -> bool:
        return self.payment_status == PAYMENT_CREDIT

    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    def is_cancelled(self) -> bool:
        return self.status == STATUS_CANCELLED

    def is_overdue(self, now=None) -> bool:
        if not self.is_credit() or self.due_date is None:
            return False
        now = now or utcnow()
        return now > start_of_day(self.due_date)

    @property
    def remaining_amount(self):
        return remaining_amount(self.final_amount, self.paid_amount)

    @property
    def total_items(self) -> int:
        return total_items(line.quantity for line in self.lines)

    def _header_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "total_amount": format_money(self.total_amount),
            "discount": format_money(self.discount),
            "final_amount": format_money(self.final_amount),
            "paid_amount": format_money(self.paid_amount),
            "remaining_amount": format_money(self.remaining_amount),
            "payment_status": self.payment_status,
            "status": self.status,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "is_overdue": self.is_overdue(),
            "total_items": self.total_items,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
