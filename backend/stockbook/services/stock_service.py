# Overview: Service-layer operations for product stock; the only writer of Product.current_stock.

"""
Stock Ledger Invariants (authoritative)

- Product.current_stock is never negative.
- A reduction is a single conditional UPDATE:
      UPDATE products SET current_stock = current_stock - :q
      WHERE id = :id AND current_stock >= :q
  The sufficiency check and the write happen in one statement, so two
  concurrent reductions can never both pass against a stale read.
  Zero rows updated means insufficient stock (or no such product).
- An increase has no business upper bound; only the INTEGER column limit
  (MAX_QUANTITY) rejects it, as InvariantViolationError.
- Each change bumps Product.version_id, so a catalog edit holding a stale
  copy of the row fails its optimistic lock instead of overwriting stock.
- Each change appends a StockMovement row in the same DB transaction.
- Nothing here commits. Callers own the transaction (see
  concurrency.run_in_transaction), so a multi-line document applies all
  of its lines or none of them.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.orm.util import identity_key

from ..errors import InsufficientStockError, InvariantViolationError, NotFoundError
from ..extensions import db
from ..models import Product, StockMovement
from ..money import MAX_QUANTITY
from ..time_utils import utcnow

MOVEMENT_OPENING = "OPENING"
MOVEMENT_SALE = "SALE"
MOVEMENT_SALE_CANCEL = "SALE_CANCEL"
MOVEMENT_PURCHASE = "PURCHASE"
MOVEMENT_PURCHASE_CANCEL = "PURCHASE_CANCEL"


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvariantViolationError("quantity must be an integer", details={"field": "quantity"})
    if quantity < 0:
        raise InvariantViolationError("quantity cannot be negative", details={"field": "quantity"})
    if quantity > MAX_QUANTITY:
        raise InvariantViolationError("quantity is too large", details={"field": "quantity"})
    return quantity


def get_current_stock(product_id: int) -> int:
    stock = db.session.query(Product.current_stock).filter(Product.id == product_id).scalar()
    if stock is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return int(stock)


def has_sufficient_stock(product_id: int, quantity: int) -> bool:
    return get_current_stock(product_id) >= _check_quantity(quantity)


def _expire_cached_product(product_id: int) -> None:
    # The UPDATE bypassed the identity map; drop stale column values.
    cached = db.session.identity_map.get(identity_key(Product, product_id))
    if cached is not None:
        db.session.expire(cached, ["current_stock", "version_id", "updated_at"])


def _record_movement(
    product_id: int,
    movement_type: str,
    quantity_delta: int,
    *,
    document_number: str | None,
    user_id: int | None,
    note: str | None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product_id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        stock_after=get_current_stock(product_id),
        document_number=document_number,
        user_id=user_id,
        note=note,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def reduce_stock(
    product_id: int,
    quantity: int,
    *,
    movement_type: str = MOVEMENT_SALE,
    document_number: str | None = None,
    user_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    """
    Atomically check and reduce on-hand stock.

    Raises InsufficientStockError (and changes nothing) when the product
    has less than quantity on hand.
    """
    quantity = _check_quantity(quantity)

    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.current_stock >= quantity)
        .values(
            current_stock=Product.current_stock - quantity,
            version_id=Product.version_id + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    if not result.rowcount:
        current = get_current_stock(product_id)  # raises NotFoundError for unknown ids
        current_app.logger.warning(
            "Insufficient stock for product %s: requested %s, on hand %s (%s)",
            product_id, quantity, current, document_number,
        )
        raise InsufficientStockError(
            "Insufficient stock",
            details={
                "product_id": product_id,
                "requested_quantity": quantity,
                "current_stock": current,
            },
        )

    _expire_cached_product(product_id)
    return _record_movement(
        product_id,
        movement_type,
        -quantity,
        document_number=document_number,
        user_id=user_id,
        note=note,
    )


def increase_stock(
    product_id: int,
    quantity: int,
    *,
    movement_type: str = MOVEMENT_PURCHASE,
    document_number: str | None = None,
    user_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    """Increase on-hand stock. Succeeds for any existing product below MAX_QUANTITY."""
    quantity = _check_quantity(quantity)

    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.current_stock <= MAX_QUANTITY - quantity)
        .values(
            current_stock=Product.current_stock + quantity,
            version_id=Product.version_id + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        current = get_current_stock(product_id)  # raises NotFoundError for unknown ids
        raise InvariantViolationError(
            "Stock would exceed the maximum quantity",
            details={"product_id": product_id, "requested_quantity": quantity, "current_stock": current},
        )

    _expire_cached_product(product_id)
    return _record_movement(
        product_id,
        movement_type,
        quantity,
        document_number=document_number,
        user_id=user_id,
        note=note,
    )


def list_movements(
    *,
    product_id: int | None = None,
    document_number: str | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if document_number is not None:
        q = q.filter(StockMovement.document_number == document_number)
    return q.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc()).limit(limit).all()
