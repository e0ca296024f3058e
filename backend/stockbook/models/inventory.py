from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..money import ZERO, format_money
from ..time_utils import utcnow, to_utc_z

STOCK_IN = "in_stock"
STOCK_LOW = "low_stock"
STOCK_OUT = "out_of_stock"


class Category(db.Model):
    """Product grouping. No lifecycle logic of its own."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    products = db.relationship("Product", back_populates="category", lazy="select")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data plus the authoritative on-hand quantity.

    STOCK OWNERSHIP:
    current_stock is written only by services.stock_service, through a
    conditional UPDATE that checks and mutates in one statement. Catalog
    edits (name, prices, is_active) go through the ORM and are protected by
    version_id optimistic locking, which the stock UPDATE also bumps.

    Products are never deleted while sale/purchase lines reference them;
    is_active=False removes them from new documents instead.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_active_stock", "is_active", "current_stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_code = db.Column(db.String(50), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    purchase_price = db.Column(db.Numeric(15, 2), nullable=False, default=ZERO)
    wholesale_price = db.Column(db.Numeric(15, 2), nullable=False, default=ZERO)
    retail_price = db.Column(db.Numeric(15, 2), nullable=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    unit = db.Column(db.String(30), nullable=False, default="pcs")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category", back_populates="products")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.product_code!r} name={self.name!r} stock={self.current_stock}>"

    def is_in_stock(self) -> bool:
        return self.current_stock > 0

    def has_sufficient_stock(self, quantity: int) -> bool:
        return self.current_stock >= quantity

    def stock_status(self, low_stock_threshold: int = 10) -> str:
        if self.current_stock <= 0:
            return STOCK_OUT
        if self.current_stock <= low_stock_threshold:
            return STOCK_LOW
        return STOCK_IN

    def _margin_against_cost(self, price: Decimal | None) -> Decimal:
        cost = self.purchase_price or ZERO
        if cost <= 0 or price is None:
            return ZERO
        return (price - cost) / cost * 100

    @property
    def wholesale_profit_margin(self) -> Decimal:
        return self._margin_against_cost(self.wholesale_price)

    @property
    def retail_profit_margin(self) -> Decimal:
        return self._margin_against_cost(self.retail_price)

    def to_dict(self, low_stock_threshold: int = 10) -> dict:
        return {
            "id": self.id,
            "product_code": self.product_code,
            "name": self.name,
            "category_id": self.category_id,
            "purchase_price": format_money(self.purchase_price),
            "wholesale_price": format_money(self.wholesale_price),
            "retail_price": format_money(self.retail_price),
            "current_stock": self.current_stock,
            "stock_status": self.stock_status(low_stock_threshold),
            "unit": self.unit,
            "is_active": self.is_active,
            "wholesale_profit_margin": format_money(self.wholesale_profit_margin),
            "retail_profit_margin": format_money(self.retail_profit_margin),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only journal of stock changes.

    One row per stock UPDATE, written in the same transaction. Reporting
    only: Product.current_stock stays the value every check reads.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # OPENING, SALE, SALE_CANCEL, PURCHASE, PURCHASE_CANCEL
    movement_type = db.Column(db.String(32), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    document_number = db.Column(db.String(64), nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "stock_after": self.stock_after,
            "document_number": self.document_number,
            "user_id": self.user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
