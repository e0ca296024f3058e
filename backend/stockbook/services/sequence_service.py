# Overview: Service-layer operations for human-readable document numbers and codes.

"""
Sequence numbering

Formats:
- dated:   {PREFIX}-{YYYYMMDD}-{NNN}   (invoices, purchases; resets daily)
- undated: {PREFIX}-{NNNN}             (customer and product codes)

The counter is 1 + the numeric suffix of the most recent record in scope
(highest id, not highest suffix). For dated numbers, "in scope" means the
number starts with today's prefix; for codes it is the newest record of
that table.

Race freedom: each scope has a DocumentSequence row that is bumped with an
atomic UPDATE before the record lookup. The bump holds the row lock until
the caller's transaction ends, so a second caller for the same scope waits
and then sees the first caller's record. The allocated value is also kept
at or above the sequence row's counter, so numbers stay monotonic even
if the newest record is later deleted.

Nothing here commits; numbers are allocated inside the caller's transaction.
"""

from __future__ import annotations

import re
from datetime import date, datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import InvariantViolationError
from ..extensions import db
from ..models import Customer, DocumentSequence, Product, Purchase, Sale
from ..time_utils import today

_TRAILING_DIGITS = re.compile(r"(\d+)$")

DATED_PAD = 3
CODE_PAD = 4


def _numeric_suffix(value: str | None) -> int:
    if not value:
        return 0
    match = _TRAILING_DIGITS.search(value)
    return int(match.group(1)) if match else 0


def _claim_scope(scope: str) -> tuple[DocumentSequence, int]:
    """Bump the scope's counter row (creating it if needed) and return (row, claimed value)."""
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.scope == scope)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    if not db.session.execute(stmt).rowcount:
        try:
            with db.session.begin_nested():
                seq = DocumentSequence(scope=scope, next_number=2)
                db.session.add(seq)
            return seq, 1
        except IntegrityError:
            # Another caller created the row between our UPDATE and INSERT.
            if not db.session.execute(stmt).rowcount:
                raise

    seq = (
        db.session.query(DocumentSequence)
        .populate_existing()
        .filter(DocumentSequence.scope == scope)
        .one()
    )
    return seq, seq.next_number - 1


def next_number(
    prefix: str,
    *,
    model,
    column,
    on_date: date | None = None,
    dated: bool = True,
    pad: int | None = None,
) -> str:
    """
    Allocate the next number for prefix.

    model/column identify the table whose newest record seeds the counter.
    """
    if not prefix:
        raise InvariantViolationError("sequence prefix is required")

    if dated:
        on_date = on_date or today()
        scope = f"{prefix}-{on_date:%Y%m%d}"
        pad = pad or DATED_PAD
    else:
        scope = prefix
        pad = pad or CODE_PAD

    # Claim first: the bump holds the scope lock while the newest record is read.
    seq, claimed = _claim_scope(scope)

    if dated:
        last = (
            db.session.query(column)
            .filter(column.like(f"{scope}-%"))
            .order_by(model.id.desc())
            .limit(1)
            .scalar()
        )
    else:
        last = db.session.query(column).order_by(model.id.desc()).limit(1).scalar()

    allocated = max(claimed, _numeric_suffix(last) + 1)
    seq.next_number = allocated + 1
    db.session.flush()

    return f"{scope}-{allocated:0{pad}d}"


def _as_date(value: date | datetime | None) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    return value


def next_invoice_number(on_date: date | datetime | None = None) -> str:
    return next_number(
        current_app.config.get("INVOICE_PREFIX", "INV"),
        model=Sale,
        column=Sale.invoice_number,
        on_date=_as_date(on_date),
    )


def next_purchase_number(on_date: date | datetime | None = None) -> str:
    return next_number(
        current_app.config.get("PURCHASE_PREFIX", "PUR"),
        model=Purchase,
        column=Purchase.purchase_number,
        on_date=_as_date(on_date),
    )


def next_customer_code() -> str:
    return next_number(
        current_app.config.get("CUSTOMER_CODE_PREFIX", "CUST"),
        model=Customer,
        column=Customer.customer_code,
        dated=False,
    )


def next_product_code() -> str:
    return next_number(
        current_app.config.get("PRODUCT_CODE_PREFIX", "PRD"),
        model=Product,
        column=Product.product_code,
        dated=False,
    )
