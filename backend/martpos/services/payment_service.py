# Overview: Payment plans for checkout; parsing and structural validation of how a sale is settled.

"""
Payment Plans

WHY: A sale is settled in exactly one of these ways:

- cash:   amount tendered, change = tendered - total (tendered >= total)
- card:   settled in full by card
- momo:   settled in full by mobile money
- credit: deferred to a customer account (customer required, credit check);
          an optional part payment now leaves balance_due on the account
- split:  ordered parts {method, amount} across cash/card/momo whose sum
          must equal the total exactly

Plans are plain values. Whether a plan is acceptable for a given total,
stock position or customer is decided by the checkout engine at commit time,
not here; parsing only rejects plans that are malformed on their face.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Union

from ..errors import PaymentError
from ..identity import CustomerId
from ..money import ZERO, to_money


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_CARD = "card"
METHOD_MOMO = "momo"
METHOD_CREDIT = "credit"
METHOD_SPLIT = "split"

VALID_METHODS = [METHOD_CASH, METHOD_CARD, METHOD_MOMO, METHOD_CREDIT, METHOD_SPLIT]

# Methods a split part may use
SPLIT_PART_METHODS = [METHOD_CASH, METHOD_CARD, METHOD_MOMO]

_ALIASES = {
    "mobile-money": METHOD_MOMO,
    "mobile_money": METHOD_MOMO,
    "mobilemoney": METHOD_MOMO,
}


def normalize_method(method: str | None) -> str:
    m = (method or METHOD_CASH).strip().lower()
    return _ALIASES.get(m, m) or METHOD_CASH


# =============================================================================
# PLAN TYPES
# =============================================================================

@dataclass(frozen=True)
class CashPlan:
    # None means exact tender (tendered == total)
    amount_tendered: Decimal | None = None
    method = METHOD_CASH


@dataclass(frozen=True)
class CardPlan:
    reference_number: str | None = None
    method = METHOD_CARD


@dataclass(frozen=True)
class MobileMoneyPlan:
    reference_number: str | None = None
    method = METHOD_MOMO


@dataclass(frozen=True)
class CreditPlan:
    customer_id: CustomerId | None = None
    amount_paid: Decimal = ZERO
    # Tender used for amount_paid, when there is one
    paid_method: str = METHOD_CASH
    method = METHOD_CREDIT


@dataclass(frozen=True)
class SplitPart:
    method: str
    amount: Decimal
    reference_number: str | None = None


@dataclass(frozen=True)
class SplitPlan:
    parts: tuple[SplitPart, ...] = field(default_factory=tuple)
    method = METHOD_SPLIT

    @property
    def total(self) -> Decimal:
        return sum((p.amount for p in self.parts), ZERO)


PaymentPlan = Union[CashPlan, CardPlan, MobileMoneyPlan, CreditPlan, SplitPlan]


# =============================================================================
# PARSING
# =============================================================================

def parse_payment_plan(payload: dict | None) -> PaymentPlan:
    """
    Build a plan from a request body.

    Accepts {"method": "cash", "amount_tendered": "50.00"},
    {"method": "credit", "customer_id": 7, "amount_paid": "10"},
    {"method": "split", "parts": [{"method": "cash", "amount": "20"}, ...]}.
    A non-empty "split_payments" list also selects a split plan.

    Raises:
        PaymentError: unknown method or malformed amounts
        InvalidIdentity: customer_id present but not a clean integer
    """
    payload = payload or {}
    parts = payload.get("parts") or payload.get("split_payments")
    method = normalize_method(payload.get("method") or payload.get("payment_method"))
    if parts:
        method = METHOD_SPLIT

    if method not in VALID_METHODS:
        raise PaymentError(
            f"Invalid payment method: {method}. Must be one of {VALID_METHODS}",
            details={"method": method},
        )

    if method == METHOD_CASH:
        tendered = payload.get("amount_tendered")
        if tendered is None or tendered == "":
            return CashPlan()
        amount = _amount(tendered, "amount_tendered")
        if amount <= ZERO:
            raise PaymentError("Amount tendered must be positive")
        return CashPlan(amount_tendered=amount)

    if method == METHOD_CARD:
        return CardPlan(reference_number=_reference(payload))

    if method == METHOD_MOMO:
        return MobileMoneyPlan(reference_number=_reference(payload))

    if method == METHOD_CREDIT:
        raw_customer = payload.get("customer_id")
        customer_id = None
        if raw_customer not in (None, ""):
            customer_id = CustomerId.parse(raw_customer)
        amount_paid = _amount(payload.get("amount_paid"), "amount_paid")
        if amount_paid < ZERO:
            raise PaymentError("Amount paid cannot be negative")
        paid_method = normalize_method(payload.get("paid_method"))
        if paid_method not in SPLIT_PART_METHODS:
            raise PaymentError(f"Invalid method for part payment: {paid_method}")
        return CreditPlan(customer_id=customer_id, amount_paid=amount_paid, paid_method=paid_method)

    return SplitPlan(parts=tuple(_split_part(i, p) for i, p in enumerate(parts or [])))


def _split_part(index: int, raw: dict) -> SplitPart:
    method = normalize_method(raw.get("method"))
    if method not in SPLIT_PART_METHODS:
        raise PaymentError(
            f"Invalid split payment method at index {index}: {method}",
            details={"index": index, "method": method},
        )
    amount = _amount(raw.get("amount"), f"parts[{index}].amount")
    if amount <= ZERO:
        raise PaymentError(
            f"Invalid split payment amount at index {index}: {amount}",
            details={"index": index, "amount": amount},
        )
    return SplitPart(method=method, amount=amount, reference_number=_reference(raw))


def _amount(value, name: str) -> Decimal:
    try:
        return to_money(value)
    except ValueError:
        raise PaymentError(f"{name} must be a number", details={name: repr(value)})


def _reference(payload: dict) -> str | None:
    ref = payload.get("reference_number") or payload.get("reference")
    ref = str(ref).strip() if ref is not None else ""
    return ref or None
