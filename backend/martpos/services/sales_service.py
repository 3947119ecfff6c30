"""
Sales Service - Cart-to-Sale commit engine

WHY: Turning a cart into a sale touches many rows at once (N stock
decrements, a sale header, N sale lines, tender rows and, on credit, the
customer balance). Callers must observe either all of it or none of it.

VALIDATION ORDER (fail fast, nothing written, each step narrows the message):
1. cart not empty
2. every line carries a clean positive-integer product id
3. stock re-read per line (the cart snapshot is never trusted here)
4. credit: customer selected, live balance + amount due within a positive limit
5. split: parts sum to the total exactly
6. cash: tendered >= total

Only then is the store asked to write, as one transaction. Unit prices come
from the cart lines (what the customer was shown), not from the catalog.

NOT IDEMPOTENT: every call that reaches the write produces a new sale. Use
a CheckoutGuard so one user action maps to one call.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..cart import Cart, CartLine
from ..errors import (
    CreditLimitExceeded,
    CustomerNotFound,
    CustomerRequired,
    EmptyCart,
    InsufficientStock,
    InsufficientTender,
    PaymentError,
    SplitPaymentMismatch,
    ValidationError,
)
from ..identity import require_product_id
from ..models import Sale
from ..money import TWOPLACES, ZERO, to_money
from .activity_service import record_activity
from .concurrency import CheckoutGuard
from .data_store import SaleInput, SaleLineInput, TenderInput, get_store
from .payment_service import (
    METHOD_CASH,
    CardPlan,
    CashPlan,
    CreditPlan,
    MobileMoneyPlan,
    SplitPlan,
)


def commit_sale(
    cart,
    plan,
    cashier_id: str,
    *,
    discount=ZERO,
    store=None,
    guard: CheckoutGuard | None = None,
    session_key=None,
) -> Sale:
    """
    Validate ``cart`` against live stock/credit and commit it as one sale.

    Args:
        cart: a Cart (cleared on success) or a snapshot of CartLines
        plan: CashPlan | CardPlan | MobileMoneyPlan | CreditPlan | SplitPlan
        cashier_id: who rang the sale up
        discount: absolute discount off the subtotal
        store: data-access collaborator (defaults to the SQL store)
        guard: optional CheckoutGuard; refuses a second in-flight commit
        session_key: guard key, defaults to cashier_id

    Returns:
        The committed Sale

    Raises:
        EmptyCart, InvalidIdentity, InsufficientStock, CustomerRequired,
        CustomerNotFound, CreditLimitExceeded, SplitPaymentMismatch,
        InsufficientTender, PaymentError, ValidationError: nothing written
        CommitFailed: the write did not complete; re-read before retrying
        CommitInProgress: another commit holds this session
    """
    if guard is None:
        return _commit(cart, plan, cashier_id, discount=discount, store=store)
    with guard.hold(session_key if session_key is not None else cashier_id):
        return _commit(cart, plan, cashier_id, discount=discount, store=store)


def _commit(cart, plan, cashier_id, *, discount, store) -> Sale:
    store = store or get_store()
    cashier_id = str(cashier_id or "").strip()
    if not cashier_id:
        raise ValidationError("cashier_id is required")

    lines = cart.snapshot() if isinstance(cart, Cart) else tuple(cart)

    # 1. Cart non-empty
    if not lines:
        raise EmptyCart()

    # 2. Identity check; plain ints from a caller-built snapshot become ProductIds
    checked = []
    for line in lines:
        product_id = require_product_id(line.product_id)
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity < 1:
            raise ValidationError(
                f'Invalid quantity for "{line.name}". Quantity must be at least 1.',
                details={"product_id": int(product_id), "quantity": line.quantity},
            )
        checked.append(CartLine(
            product_id=product_id,
            name=line.name,
            unit_price=line.unit_price,
            quantity=line.quantity,
            stock=getattr(line, "stock", None),
        ))
    lines = tuple(checked)

    # 3. Authoritative stock re-read
    for line in lines:
        available = store.get_product_stock(line.product_id)
        if available < line.quantity:
            raise InsufficientStock(
                product_id=int(line.product_id),
                product_name=line.name,
                available=available,
                requested=line.quantity,
            )

    subtotal, discount, tax, final = compute_totals(lines, discount)

    sale_input = dict(
        cashier_id=cashier_id,
        lines=tuple(
            SaleLineInput(
                product_id=line.product_id,
                product_name=line.name,
                quantity=line.quantity,
                unit_price=to_money(line.unit_price),
            )
            for line in lines
        ),
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        final_amount=final,
        payment_method=plan.method,
    )

    # 4. Credit
    if isinstance(plan, CreditPlan):
        sale_input.update(_settle_credit(plan, final, store))

    # 5. Split
    elif isinstance(plan, SplitPlan):
        actual = plan.total
        if actual != final:
            raise SplitPaymentMismatch(expected=final, actual=actual)
        sale_input.update(
            amount_paid=final,
            amount_tendered=actual,
            tenders=tuple(
                TenderInput(method=p.method, amount=p.amount, reference_number=p.reference_number)
                for p in plan.parts
            ),
        )

    # 6. Cash
    elif isinstance(plan, CashPlan):
        tendered = plan.amount_tendered if plan.amount_tendered is not None else final
        if tendered < final:
            raise InsufficientTender(total=final, tendered=tendered)
        sale_input.update(
            amount_paid=final,
            amount_tendered=tendered,
            change=tendered - final,
            tenders=(TenderInput(method=METHOD_CASH, amount=final),),
        )

    elif isinstance(plan, (CardPlan, MobileMoneyPlan)):
        sale_input.update(
            amount_paid=final,
            amount_tendered=final,
            tenders=(TenderInput(method=plan.method, amount=final, reference_number=plan.reference_number),),
        )

    else:
        raise PaymentError(f"Unsupported payment plan: {plan!r}")

    sale = store.create_sale(SaleInput(**sale_input))

    if isinstance(cart, Cart):
        cart.clear()

    current_app.logger.info(
        "Sale %s committed: %s %s via %s by cashier %s",
        sale.sale_number, current_app.config.get("CURRENCY_PREFIX", "GHS"),
        final, plan.method, cashier_id,
    )

    record_activity(
        action_type="sale_create",
        entity_type="sale",
        entity_id=sale.id,
        description=f"Sale {sale.sale_number} completed ({plan.method})",
        new_values={
            "sale_number": sale.sale_number,
            "final_amount": str(final),
            "payment_method": plan.method,
            "items": len(lines),
        },
        user_id=cashier_id,
    )

    return sale


def compute_totals(lines, discount=ZERO) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    """
    Returns (subtotal, discount, tax, final).

    final = subtotal - discount + tax, tax = TAX_RATE * (subtotal - discount).
    """
    try:
        subtotal = to_money(sum((to_money(l.unit_price) * l.quantity for l in lines), ZERO))
    except ValueError:
        raise ValidationError("cart total is out of range")
    try:
        discount = to_money(discount)
    except ValueError:
        raise ValidationError("discount must be a number")
    if discount < ZERO or discount > subtotal:
        raise ValidationError(
            "Discount must be between 0 and the subtotal",
            details={"discount": discount, "subtotal": subtotal},
        )

    rate = Decimal(str(current_app.config.get("TAX_RATE", 0) or 0))
    tax = ((subtotal - discount) * rate).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    final = subtotal - discount + tax
    return subtotal, discount, tax, final


def _settle_credit(plan: CreditPlan, final: Decimal, store) -> dict:
    if plan.customer_id is None:
        raise CustomerRequired()

    if plan.amount_paid >= final:
        raise PaymentError(
            "Amount paid now must be less than the sale total for a credit sale",
            details={"amount_paid": plan.amount_paid, "total": final},
        )

    customer = store.get_customer(plan.customer_id)
    if customer is None or not customer.is_active:
        raise CustomerNotFound(plan.customer_id.value)

    balance_due = final - plan.amount_paid
    limit = customer.credit_limit
    balance = customer.outstanding_balance
    available = max(limit - balance, ZERO)

    if limit <= ZERO or balance + balance_due > limit:
        raise CreditLimitExceeded(
            available_credit=available,
            requested=balance_due,
            credit_limit=limit,
            outstanding_balance=balance,
        )

    tenders = ()
    if plan.amount_paid > ZERO:
        tenders = (TenderInput(method=plan.paid_method, amount=plan.amount_paid),)

    return dict(
        customer_id=plan.customer_id,
        is_credit=True,
        amount_paid=plan.amount_paid,
        amount_tendered=plan.amount_paid if plan.amount_paid > ZERO else None,
        balance_due=balance_due,
        tenders=tenders,
    )


def get_sale(sale_id: int, *, store=None) -> Sale | None:
    store = store or get_store()
    return store.get_sale(sale_id)


def latest_sale_for_cashier(cashier_id: str, *, store=None) -> Sale | None:
    """
    Most recent sale rung up by ``cashier_id``.

    Used after CommitFailed to check whether the sale landed before retrying.
    """
    store = store or get_store()
    return store.latest_sale_for_cashier(str(cashier_id))
