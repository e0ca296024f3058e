from __future__ import annotations

from ..extensions import db
from .documents import LineItemMixin, TransactionDocumentMixin


class Purchase(TransactionDocumentMixin, db.Model):
    """
    Purchase (stock-in) document from a named supplier.

    Cancelling removes the purchased quantities again and is rejected when
    any product no longer has that much on hand.
    """
    __tablename__ = "purchases"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "PUR-20250101-001")
    purchase_number = db.Column(db.String(64), nullable=False, unique=True)

    supplier_name = db.Column(db.String(255), nullable=False)
    purchase_date = db.Column(db.Date, nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    details = db.relationship(
        "PurchaseDetail",
        back_populates="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseDetail.id",
    )
    stock_movements = db.relationship(
        "StockMovement",
        primaryjoin="foreign(StockMovement.document_number) == Purchase.purchase_number",
        viewonly=True,
        order_by="StockMovement.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} number={self.purchase_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = False) -> dict:
        data = self._header_dict()
        data.update({
            "purchase_number": self.purchase_number,
            "supplier_name": self.supplier_name,
            "purchase_date": self.purchase_date.isoformat() if self.purchase_date else None,
            "version_id": self.version_id,
        })
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.details]
            data["stock_movements"] = [m.to_dict() for m in self.stock_movements]
        return data


class PurchaseDetail(LineItemMixin, db.Model):
    """Individual line items on a purchase document."""
    __tablename__ = "purchase_details"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    purchase = db.relationship("Purchase", back_populates="details")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        data = self._line_dict()
        data["purchase_id"] = self.purchase_id
        return data
