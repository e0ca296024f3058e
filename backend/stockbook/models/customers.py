from __future__ import annotations

from ..extensions import db
from ..money import ZERO, format_money
from ..time_utils import utcnow, to_utc_z


class Customer(db.Model):
    """
    Customer master data with a credit limit.

    Credit exposure is never stored here; services.credit_service
    recomputes it from active credit sales on every check.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.CheckConstraint("credit_limit >= 0", name="ck_customers_credit_limit_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_code = db.Column(db.String(50), nullable=False, unique=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)

    credit_limit = db.Column(db.Numeric(15, 2), nullable=False, default=ZERO)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sales = db.relationship("Sale", back_populates="customer", lazy="select")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_code": self.customer_code,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "credit_limit": format_money(self.credit_limit),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
