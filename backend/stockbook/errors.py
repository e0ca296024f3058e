# Overview: Typed failures raised by the stock, credit and document services.

"""
Every service failure is one of these. Document operations roll the
session back before the error reaches the caller, so a caller that
catches one never observes a partially applied document.
"""


class LedgerError(Exception):
    """Base class for ledger operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(LedgerError):
    """Referenced record does not exist."""


class InvariantViolationError(LedgerError, ValueError):
    """Input rejected before it reaches the ledger (bad quantity, price, status...)."""


class InsufficientStockError(LedgerError):
    """A stock reduction asked for more than the product has on hand."""


class CreditLimitExceededError(LedgerError):
    """Accepting the credit sale would push the customer past their limit."""


class InvalidTransitionError(LedgerError):
    """The document's current state does not permit the requested transition."""
