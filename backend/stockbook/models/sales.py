from __future__ import annotations

from ..extensions import db
from ..line_items import line_profit, line_profit_margin, line_cost
from ..money import ZERO, format_money
from .documents import LineItemMixin, TransactionDocumentMixin


class Sale(TransactionDocumentMixin, db.Model):
    """
    Sale document.

    LIFECYCLE:
    - created active, stock already reduced for every line
    - mark-as-paid sets paid_amount / change_amount, stock untouched
    - cancel restores stock for every line; cancelled is terminal
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_customer_payment_status", "customer_id", "payment_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "INV-20250101-001")
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    change_amount = db.Column(db.Numeric(15, 2), nullable=False, default=ZERO)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", back_populates="sales")
    details = db.relationship(
        "SaleDetail",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleDetail.id",
    )
    # Stock journal rows written by this sale and its cancellation
    stock_movements = db.relationship(
        "StockMovement",
        primaryjoin="foreign(StockMovement.document_number) == Sale.invoice_number",
        viewonly=True,
        order_by="StockMovement.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} number={self.invoice_number!r} status={self.status} payment={self.payment_status}>"

    def to_dict(self, include_lines: bool = False) -> dict:
        data = self._header_dict()
        data.update({
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "change_amount": format_money(self.change_amount),
            "version_id": self.version_id,
        })
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.details]
            data["stock_movements"] = [m.to_dict() for m in self.stock_movements]
        return data


class SaleDetail(LineItemMixin, db.Model):
    """Individual line items on a sale document."""
    __tablename__ = "sale_details"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    sale = db.relationship("Sale", back_populates="details")
    product = db.relationship("Product")

    @property
    def cost_price(self):
        if self.product is None:
            return ZERO
        return line_cost(self.product.purchase_price, self.quantity)

    @property
    def profit(self):
        if self.product is None:
            return ZERO
        return line_profit(self.total_price, self.product.purchase_price, self.quantity)

    @property
    def profit_margin(self):
        if self.product is None:
            return ZERO
        return line_profit_margin(self.total_price, self.product.purchase_price, self.quantity)

    def to_dict(self) -> dict:
        data = self._line_dict()
        data.update({
            "sale_id": self.sale_id,
            "profit": format_money(self.profit),
            "profit_margin": format_money(self.profit_margin),
        })
        return data
