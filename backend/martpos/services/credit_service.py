# Overview: Service-layer operations for customer credit; open credit sales, balances and account payments.

"""
Credit Ledger View

Read side:
- open_credit_sales_for(customer): credit sales with balance_due > 0,
  newest first. Read-only; settlement is recorded through payments.
- credit_status(customer): limit, outstanding balance, available credit.

Write side:
- record_customer_payment: reduces the customer's outstanding balance
  (and, when earmarked, one sale's balance_due) in a single transaction.
  A payment may not exceed what is owed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..errors import CustomerNotFound, PaymentError, ValidationError
from ..extensions import db
from ..identity import CustomerId
from ..models import Customer, CustomerPayment
from ..money import ZERO, to_cents, to_money
from ..time_utils import to_utc_z
from .activity_service import record_activity
from .data_store import PaymentInput, get_store
from .payment_service import SPLIT_PART_METHODS, normalize_method


@dataclass(frozen=True)
class OpenCreditSale:
    sale_id: int
    sale_number: str
    final_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    created_at: datetime | None

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "sale_number": self.sale_number,
            "final_amount": str(self.final_amount),
            "amount_paid": str(self.amount_paid),
            "balance_due": str(self.balance_due),
            "created_at": to_utc_z(self.created_at),
        }


@dataclass(frozen=True)
class CreditStatus:
    customer_id: int
    name: str
    credit_limit: Decimal
    outstanding_balance: Decimal

    @property
    def available_credit(self) -> Decimal:
        return max(self.credit_limit - self.outstanding_balance, ZERO)

    @property
    def can_buy_on_credit(self) -> bool:
        return self.credit_limit > ZERO and self.available_credit > ZERO

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "name": self.name,
            "credit_limit": str(self.credit_limit),
            "outstanding_balance": str(self.outstanding_balance),
            "available_credit": str(self.available_credit),
            "can_buy_on_credit": self.can_buy_on_credit,
        }


def open_credit_sales_for(customer_id, *, store=None) -> list[OpenCreditSale]:
    """
    Unpaid credit sales for one customer, newest first.

    An unknown customer yields an empty list, not an error.
    """
    store = store or get_store()
    customer_id = CustomerId.parse(customer_id)
    return [
        OpenCreditSale(
            sale_id=sale.id,
            sale_number=sale.sale_number,
            final_amount=sale.final_amount,
            amount_paid=sale.amount_paid,
            balance_due=sale.balance_due,
            created_at=sale.created_at,
        )
        for sale in store.list_open_credit_sales(customer_id)
    ]


def credit_status(customer_id, *, store=None) -> CreditStatus:
    store = store or get_store()
    customer = _active_customer(CustomerId.parse(customer_id), store)
    return _status(customer)


def credit_customers(*, store=None) -> list[CreditStatus]:
    """Active customers who may buy on account (positive limit)."""
    store = store or get_store()
    return [
        _status(c) for c in store.list_active_customers()
        if c.credit_limit_cents > 0
    ]


def record_customer_payment(
    customer_id,
    amount,
    payment_method: str = "cash",
    sale_id=None,
    reference_number: str | None = None,
    notes: str | None = None,
    recorded_by: str | None = None,
    *,
    store=None,
) -> CustomerPayment:
    """
    Record money received against a customer's account.

    Raises:
        ValidationError: non-positive or malformed amount, bad sale id
        PaymentError: unknown method, or amount exceeds what is owed
        CustomerNotFound: no such active customer
        CommitFailed: write did not complete; re-read balance before retrying
    """
    store = store or get_store()
    customer_id = CustomerId.parse(customer_id)

    try:
        amount = to_money(amount)
    except ValueError:
        raise ValidationError("amount must be a number", details={"amount": repr(amount)})
    if amount <= ZERO:
        raise ValidationError("Payment amount must be positive", details={"amount": amount})

    method = normalize_method(payment_method)
    if method not in SPLIT_PART_METHODS:
        raise PaymentError(
            f"Invalid payment method: {method}. Must be one of {SPLIT_PART_METHODS}",
            details={"method": method},
        )

    if sale_id in ("", None):
        sale_id = None
    elif isinstance(sale_id, bool) or not str(sale_id).strip().isdigit():
        raise ValidationError("sale_id must be a positive integer", details={"sale_id": repr(sale_id)})
    else:
        sale_id = int(str(sale_id).strip())

    customer = _active_customer(customer_id, store)

    payment = store.record_customer_payment(PaymentInput(
        customer_id=customer_id,
        amount=amount,
        payment_method=method,
        sale_id=sale_id,
        reference_number=(reference_number or "").strip() or None,
        notes=notes,
        recorded_by=recorded_by,
    ))

    current_app.logger.info(
        "Customer payment %s recorded: customer %s paid %s %s via %s",
        payment.id, customer_id, current_app.config.get("CURRENCY_PREFIX", "GHS"), amount, method,
    )

    record_activity(
        action_type="customer_payment",
        entity_type="customer",
        entity_id=customer_id.value,
        description=f"Payment of {amount} received from {customer.name}",
        new_values={"amount": str(amount), "payment_method": method, "sale_id": sale_id},
        user_id=recorded_by,
    )

    return payment


def payments_for(customer_id, *, store=None) -> list[CustomerPayment]:
    """Payment history for one customer, newest first."""
    store = store or get_store()
    return store.list_customer_payments(CustomerId.parse(customer_id))


def _active_customer(customer_id: CustomerId, store) -> Customer:
    customer = store.get_customer(customer_id)
    if customer is None or not customer.is_active:
        raise CustomerNotFound(customer_id.value)
    return customer


def _status(customer: Customer) -> CreditStatus:
    return CreditStatus(
        customer_id=customer.id,
        name=customer.name,
        credit_limit=customer.credit_limit,
        outstanding_balance=customer.outstanding_balance,
    )


def create_customer(
    *,
    name: str,
    phone: str | None = None,
    email: str | None = None,
    address: str | None = None,
    credit_limit=ZERO,
) -> Customer:
    """
    Register a customer account.

    New customers get no credit (limit 0) unless a limit is given.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    try:
        limit = to_money(credit_limit)
    except ValueError:
        raise ValidationError("credit_limit must be a number")
    if limit < ZERO:
        raise ValidationError("credit_limit cannot be negative", details={"credit_limit": limit})

    customer = Customer(
        name=name,
        phone=(phone or "").strip() or None,
        email=(email or "").strip() or None,
        address=(address or "").strip() or None,
        credit_limit_cents=to_cents(limit),
        outstanding_balance_cents=0,
        is_active=True,
    )
    db.session.add(customer)
    db.session.commit()
    return customer
