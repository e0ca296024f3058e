# Overview: Fixed-precision money helpers shared by models and services.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import InvariantViolationError

# Maximum price: 9,999,999,999,999.99 (fits NUMERIC(15, 2))
MAX_AMOUNT = Decimal("9999999999999.99")

# Quantities and stock counts fit a 32-bit INTEGER column
MAX_QUANTITY = 2_147_483_647

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Coerce int/str/Decimal to a 2-dp Decimal (half-up). Floats go through str()."""
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise InvariantViolationError("amount must be a number")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvariantViolationError(f"invalid amount: {value!r}")
    if not amount.is_finite():
        raise InvariantViolationError(f"invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def non_negative_money(value, field: str) -> Decimal:
    amount = to_money(value)
    if amount < ZERO:
        raise InvariantViolationError(f"{field} cannot be negative", details={"field": field})
    if amount > MAX_AMOUNT:
        raise InvariantViolationError(f"{field} is too large", details={"field": field})
    return amount


def positive_quantity(value, field: str = "quantity") -> int:
    """Quantities are strict integers > 0 (bools, floats and numeric strings with decimals rejected)."""
    if isinstance(value, bool):
        raise InvariantViolationError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip("-").isdigit():
            raise InvariantViolationError(f"{field} must be an integer", details={"field": field})
        try:
            value = int(stripped)
        except ValueError:
            raise InvariantViolationError(f"{field} is too large", details={"field": field})
    if not isinstance(value, int):
        raise InvariantViolationError(f"{field} must be an integer", details={"field": field})
    if value <= 0:
        raise InvariantViolationError(f"{field} must be greater than zero", details={"field": field})
    if value > MAX_QUANTITY:
        raise InvariantViolationError(f"{field} is too large", details={"field": field})
    return value


def format_money(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(to_money(value))
