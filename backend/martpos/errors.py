# Overview: Typed failures raised by the cart, checkout and credit services.

"""
POS error taxonomy

Every validation failure carries enough detail for the cashier to
self-correct (exact shortfall numbers live in ``details``). Lookup misses
are NOT errors: catalog and customer lookups return None / [] instead.

HTTP mapping lives on the class (``status_code``) so routes can stay thin.
"""

from __future__ import annotations

from decimal import Decimal


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class PosError(Exception):
    """Base class for all POS operation errors."""
    code = "POS_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "code": self.code,
            "details": _jsonable(self.details),
        }


class ValidationError(PosError):
    """Malformed input (bad quantity, bad amount, unknown payment method)."""
    code = "VALIDATION_ERROR"


class InvalidIdentity(PosError):
    """A product/customer id that is not a clean positive integer."""
    code = "INVALID_IDENTITY"

    def __init__(self, message: str, *, value=None):
        super().__init__(message, details={"value": repr(value)})
        self.value = value


class NotInCart(PosError):
    code = "NOT_IN_CART"
    status_code = 404


class OutOfStock(PosError):
    code = "OUT_OF_STOCK"
    status_code = 409

    def __init__(self, product_name: str, product_id=None):
        super().__init__(
            f'"{product_name}" is out of stock',
            details={"product_id": product_id, "available": 0},
        )


class StockExceeded(PosError):
    """Cart quantity would exceed the last confirmed stock figure."""
    code = "STOCK_EXCEEDED"
    status_code = 409

    def __init__(self, product_name: str, max_quantity: int, product_id=None):
        super().__init__(
            f'Only {max_quantity} of "{product_name}" available',
            details={"product_id": product_id, "max_quantity": max_quantity},
        )
        self.max_quantity = max_quantity


class InsufficientStock(PosError):
    """Authoritative stock re-read at commit time cannot cover the line."""
    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, product_id, product_name: str, available: int, requested: int):
        super().__init__(
            f'Insufficient stock for "{product_name}". '
            f"Available: {available}, Requested: {requested}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.available = available
        self.requested = requested


class EmptyCart(PosError):
    code = "EMPTY_CART"

    def __init__(self):
        super().__init__("Cart is empty")


class CustomerRequired(PosError):
    code = "CUSTOMER_REQUIRED"

    def __init__(self):
        super().__init__("Please select a customer for credit sale")


class CustomerNotFound(PosError):
    code = "CUSTOMER_NOT_FOUND"
    status_code = 404

    def __init__(self, customer_id):
        super().__init__(
            f"Customer {customer_id} not found or inactive",
            details={"customer_id": customer_id},
        )


class CreditLimitExceeded(PosError):
    code = "CREDIT_LIMIT_EXCEEDED"

    def __init__(
        self,
        *,
        available_credit: Decimal,
        requested: Decimal,
        credit_limit: Decimal,
        outstanding_balance: Decimal,
    ):
        if credit_limit <= 0:
            message = "Customer has no credit allowance"
        else:
            message = (
                f"Credit limit exceeded. Available credit: {available_credit}, "
                f"Requested: {requested}"
            )
        super().__init__(
            message,
            details={
                "available_credit": available_credit,
                "requested": requested,
                "credit_limit": credit_limit,
                "outstanding_balance": outstanding_balance,
            },
        )
        self.available_credit = available_credit


InsufficientCredit = CreditLimitExceeded


class SplitPaymentMismatch(PosError):
    code = "SPLIT_PAYMENT_MISMATCH"

    def __init__(self, expected: Decimal, actual: Decimal):
        super().__init__(
            f"Split payments total {actual} but sale total is {expected}",
            details={"expected": expected, "actual": actual, "difference": expected - actual},
        )
        self.expected = expected
        self.actual = actual


class InsufficientTender(PosError):
    code = "INSUFFICIENT_TENDER"

    def __init__(self, total: Decimal, tendered: Decimal):
        super().__init__(
            f"Amount tendered {tendered} is less than total {total}",
            details={"total": total, "tendered": tendered, "shortfall": total - tendered},
        )


class PaymentError(PosError):
    """Payment plan or customer payment breaks a business rule."""
    code = "PAYMENT_ERROR"


class CommitInProgress(PosError):
    code = "COMMIT_IN_PROGRESS"
    status_code = 409

    def __init__(self, session_key):
        super().__init__(
            "A sale is already being completed for this session",
            details={"session_key": session_key},
        )


class CommitFailed(PosError):
    """
    The atomic write did not complete.

    Retryable, but the caller must re-read stock / balances (or the sale
    status) before retrying: do not assume nothing happened.
    """
    code = "COMMIT_FAILED"
    status_code = 503

    def __init__(self, message: str = "Sale could not be completed", details: dict | None = None):
        merged = {"retryable": True, "reconcile_required": True}
        merged.update(details or {})
        super().__init__(message, details=merged)
