# Overview: Service-layer operations for categories, products and customers.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import InvariantViolationError, NotFoundError
from ..extensions import db
from ..models import Category, Customer, Product
from ..money import MAX_QUANTITY, non_negative_money
from . import stock_service
from .concurrency import run_in_transaction
from .sequence_service import next_customer_code, next_product_code


def _require_name(name: str | None, field: str = "name") -> str:
    name = (name or "").strip()
    if not name:
        raise InvariantViolationError(f"{field} is required", details={"field": field})
    return name


def create_category(name: str) -> Category:
    name = _require_name(name)

    def _op() -> Category:
        existing = db.session.query(Category).filter(Category.name == name).first()
        if existing:
            return existing
        category = Category(name=name)
        db.session.add(category)
        db.session.flush()
        return category

    return run_in_transaction(_op)


def category_product_counts(category_id: int) -> dict:
    category = db.session.query(Category).filter(Category.id == category_id).first()
    if category is None:
        raise NotFoundError("Category not found", details={"category_id": category_id})

    total = db.session.query(func.count(Product.id)).filter(Product.category_id == category_id).scalar()
    active = db.session.query(func.count(Product.id)).filter(
        Product.category_id == category_id,
        Product.is_active.is_(True),
    ).scalar()
    return {
        "category_id": category.id,
        "name": category.name,
        "total_products_count": int(total or 0),
        "active_products_count": int(active or 0),
    }


def create_product(
    *,
    name: str,
    category_id: int,
    purchase_price,
    wholesale_price,
    retail_price=None,
    current_stock: int = 0,
    unit: str | None = None,
    is_active: bool = True,
) -> Product:
    """
    Create a product with a generated code (PRD-0001...).

    Opening stock is recorded as an OPENING stock movement.
    """
    name = _require_name(name)
    purchase_price = non_negative_money(purchase_price, "purchase_price")
    wholesale_price = non_negative_money(wholesale_price, "wholesale_price")
    retail_price = None if retail_price is None else non_negative_money(retail_price, "retail_price")
    if (
        isinstance(current_stock, bool)
        or not isinstance(current_stock, int)
        or not 0 <= current_stock <= MAX_QUANTITY
    ):
        raise InvariantViolationError("current_stock must be a non-negative integer", details={"field": "current_stock"})
    unit = (unit or current_app.config.get("DEFAULT_UNIT", "pcs")).strip()

    def _op() -> Product:
        category = db.session.query(Category).filter(Category.id == category_id).first()
        if category is None:
            raise NotFoundError("Category not found", details={"category_id": category_id})

        product = Product(
            product_code=next_product_code(),
            name=name,
            category_id=category.id,
            purchase_price=purchase_price,
            wholesale_price=wholesale_price,
            retail_price=retail_price,
            current_stock=0,
            unit=unit,
            is_active=is_active,
        )
        db.session.add(product)
        db.session.flush()

        if current_stock:
            stock_service.increase_stock(
                product.id,
                current_stock,
                movement_type=stock_service.MOVEMENT_OPENING,
                note="Opening stock",
            )

        current_app.logger.info("Product %s created (%s)", product.product_code, product.name)
        return product

    return run_in_transaction(_op)


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def update_product(product_id: int, **changes) -> Product:
    """
    Catalog edit of name, unit and prices.

    Stock is not editable here; it changes only through documents.
    """
    allowed = {"name", "unit", "purchase_price", "wholesale_price", "retail_price", "category_id"}
    unknown = set(changes) - allowed
    if unknown:
        raise InvariantViolationError(
            f"Fields not writable: {', '.join(sorted(unknown))}",
            details={"fields": sorted(unknown)},
        )

    cleaned = {}
    for key, value in changes.items():
        if key in ("name", "unit"):
            cleaned[key] = _require_name(value, key)
        elif key == "retail_price" and value is None:
            cleaned[key] = None
        elif key == "category_id":
            cleaned[key] = value
        else:
            cleaned[key] = non_negative_money(value, key)

    def _op() -> Product:
        product = get_product(product_id)
        if "category_id" in cleaned:
            if db.session.query(Category.id).filter(Category.id == cleaned["category_id"]).scalar() is None:
                raise NotFoundError("Category not found", details={"category_id": cleaned["category_id"]})
        for key, value in cleaned.items():
            setattr(product, key, value)
        db.session.flush()
        return product

    return run_in_transaction(_op)


def set_product_active(product_id: int, active: bool) -> Product:
    """Soft exclusion: inactive products stay on historical lines but not on new ones."""
    def _op() -> Product:
        product = get_product(product_id)
        product.is_active = bool(active)
        db.session.flush()
        current_app.logger.info(
            "Product %s %s", product.product_code, "activated" if active else "deactivated",
        )
        return product

    return run_in_transaction(_op)


def list_products(
    *,
    status: str | None = None,
    active_only: bool = True,
    threshold: int | None = None,
    category_id: int | None = None,
) -> list[Product]:
    """
    status: None, "in_stock" (stock > 0), "low_stock" (0 < stock <= threshold)
    or "out_of_stock" (stock == 0).
    """
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)

    q = db.session.query(Product)
    if active_only:
        q = q.filter(Product.is_active.is_(True))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)

    if status == "in_stock":
        q = q.filter(Product.current_stock > 0)
    elif status == "low_stock":
        q = q.filter(Product.current_stock > 0, Product.current_stock <= threshold)
    elif status == "out_of_stock":
        q = q.filter(Product.current_stock == 0)
    elif status is not None:
        raise InvariantViolationError(f"Invalid stock status: {status}")

    return q.order_by(Product.name, Product.id).all()


def low_stock_products(threshold: int | None = None) -> list[Product]:
    return list_products(status="low_stock", threshold=threshold)


def out_of_stock_products() -> list[Product]:
    return list_products(status="out_of_stock")


def create_customer(
    *,
    name: str,
    phone: str | None = None,
    email: str | None = None,
    address: str | None = None,
    credit_limit=0,
) -> Customer:
    name = _require_name(name)
    credit_limit = non_negative_money(credit_limit, "credit_limit")

    def _op() -> Customer:
        customer = Customer(
            customer_code=next_customer_code(),
            name=name,
            phone=phone,
            email=email,
            address=address,
            credit_limit=credit_limit,
        )
        db.session.add(customer)
        db.session.flush()
        current_app.logger.info("Customer %s created (%s)", customer.customer_code, customer.name)
        return customer

    return run_in_transaction(_op)


def get_customer_by_code(customer_code: str) -> Customer:
    customer = db.session.query(Customer).filter(Customer.customer_code == customer_code).first()
    if customer is None:
        raise NotFoundError("Customer not found", details={"customer_code": customer_code})
    return customer


def update_credit_limit(customer_id: int, credit_limit) -> Customer:
    """
    Change a customer's limit.

    Existing credit sales are not re-checked, so remaining credit can
    become negative.
    """
    credit_limit = non_negative_money(credit_limit, "credit_limit")

    def _op() -> Customer:
        customer = db.session.query(Customer).filter(Customer.id == customer_id).first()
        if customer is None:
            raise NotFoundError("Customer not found", details={"customer_id": customer_id})
        customer.credit_limit = credit_limit
        db.session.flush()
        return customer

    return run_in_transaction(_op)
