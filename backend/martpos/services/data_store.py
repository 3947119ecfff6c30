# Overview: Data-access collaborator backed by SQLAlchemy; every checkout write is one transaction.

"""
Data store

The checkout engine talks to persistence only through this interface, so a
remote backend (or a test double) can stand in for the SQL store:

    get_product_by_code(code)                   -> Product | None
    search_products_by_name(text, limit,
                            prefix_first=False) -> list[Product]
    get_product(product_id)                     -> Product | None
    get_product_stock(product_id)               -> int
    get_customer(customer_id)                   -> Customer | None
    create_sale(SaleInput)                      -> Sale            (atomic)
    record_customer_payment(PaymentInput)       -> CustomerPayment (atomic)

ATOMICITY (create_sale):
- Sale header, sale lines, tender rows, stock decrements and the customer
  balance increase are written in ONE transaction and committed once.
- Stock is decremented with a conditional UPDATE (stock >= requested). A
  pre-read elsewhere can be stale; this statement cannot. Zero rows updated
  means another terminal won the race: the whole transaction is rolled back
  and InsufficientStock is raised with the fresh figure.
- The customer balance uses the same pattern against the credit limit.
- Any other failure, including a value the database cannot store, is rolled
  back and surfaced as CommitFailed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import case, update

from ..errors import (
    CommitFailed,
    CreditLimitExceeded,
    CustomerNotFound,
    InsufficientStock,
    PaymentError,
    PosError,
)
from ..extensions import db
from ..identity import CustomerId, ProductId
from ..models import Customer, CustomerPayment, Product, Sale, SaleLine, SalePayment
from ..money import ZERO, from_cents, to_cents
from .concurrency import run_with_retry
from .document_service import next_sale_number


@dataclass(frozen=True)
class SaleLineInput:
    product_id: ProductId
    product_name: str
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class TenderInput:
    method: str
    amount: Decimal
    reference_number: str | None = None


@dataclass(frozen=True)
class SaleInput:
    cashier_id: str
    payment_method: str
    lines: tuple[SaleLineInput, ...]
    subtotal: Decimal
    final_amount: Decimal
    amount_paid: Decimal
    discount: Decimal = ZERO
    tax: Decimal = ZERO
    amount_tendered: Decimal | None = None
    balance_due: Decimal = ZERO
    change: Decimal = ZERO
    customer_id: CustomerId | None = None
    is_credit: bool = False
    tenders: tuple[TenderInput, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PaymentInput:
    customer_id: CustomerId
    amount: Decimal
    payment_method: str = "cash"
    sale_id: int | None = None
    reference_number: str | None = None
    notes: str | None = None
    recorded_by: str | None = None


class SqlAlchemyStore:
    """Default store: the application's own database via db.session."""

    # ------------------------------------------------------------------
    # Catalog reads
    # ------------------------------------------------------------------

    def get_product_by_code(self, code: str) -> Product | None:
        if not code:
            return None
        return (
            db.session.query(Product)
            .filter(Product.barcode == code, Product.is_active.is_(True))
            .first()
        )

    def search_products_by_name(self, fragment: str, limit: int, *, prefix_first: bool = False) -> list[Product]:
        """
        Case-insensitive substring match, name ascending.

        With ``prefix_first`` names starting with the fragment sort ahead of
        the rest before the limit is applied.
        """
        if not fragment:
            return []
        escaped = _escape_like(fragment)
        order = [Product.name.asc(), Product.id.asc()]
        if prefix_first:
            starts = Product.name.ilike(f"{escaped}%", escape="\\")
            order.insert(0, case((starts, 0), else_=1))
        return (
            db.session.query(Product)
            .filter(
                Product.name.ilike(f"%{escaped}%", escape="\\"),
                Product.is_active.is_(True),
            )
            .order_by(*order)
            .limit(limit)
            .all()
        )

    def get_product(self, product_id: ProductId) -> Product | None:
        return db.session.get(Product, product_id.value)

    def get_product_stock(self, product_id: ProductId) -> int:
        """Authoritative stock; inactive or missing products have none."""
        stock = (
            db.session.query(Product.stock_quantity)
            .filter(Product.id == product_id.value, Product.is_active.is_(True))
            .scalar()
        )
        return int(stock or 0)

    def list_low_stock(self, threshold: int | None = None) -> list[Product]:
        q = db.session.query(Product).filter(Product.is_active.is_(True))
        if threshold is None:
            q = q.filter(Product.stock_quantity <= Product.min_stock_level)
        else:
            q = q.filter(Product.stock_quantity < threshold)
        return q.order_by(Product.stock_quantity.asc(), Product.name.asc()).all()

    # ------------------------------------------------------------------
    # Customer reads
    # ------------------------------------------------------------------

    def get_customer(self, customer_id: CustomerId) -> Customer | None:
        return (
            db.session.query(Customer)
            .filter(Customer.id == customer_id.value)
            .populate_existing()
            .first()
        )

    def list_active_customers(self) -> list[Customer]:
        return (
            db.session.query(Customer)
            .filter(Customer.is_active.is_(True))
            .order_by(Customer.name.asc(), Customer.id.asc())
            .all()
        )

    def list_open_credit_sales(self, customer_id: CustomerId) -> list[Sale]:
        return (
            db.session.query(Sale)
            .filter(
                Sale.customer_id == customer_id.value,
                Sale.is_credit.is_(True),
                Sale.balance_due_cents > 0,
            )
            .order_by(Sale.created_at.desc(), Sale.id.desc())
            .all()
        )

    def list_customer_payments(self, customer_id: CustomerId) -> list[CustomerPayment]:
        return (
            db.session.query(CustomerPayment)
            .filter(CustomerPayment.customer_id == customer_id.value)
            .order_by(CustomerPayment.created_at.desc(), CustomerPayment.id.desc())
            .all()
        )

    def get_sale(self, sale_id: int) -> Sale | None:
        return db.session.get(Sale, sale_id)

    def latest_sale_for_cashier(self, cashier_id: str) -> Sale | None:
        return (
            db.session.query(Sale)
            .filter(Sale.cashier_id == cashier_id)
            .order_by(Sale.id.desc())
            .first()
        )

    # ------------------------------------------------------------------
    # Atomic writes
    # ------------------------------------------------------------------

    def create_sale(self, sale_input: SaleInput) -> Sale:
        def _op():
            try:
                sale = self._write_sale(sale_input)
                db.session.commit()
                return sale
            except Exception:
                db.session.rollback()
                raise

        return _run_atomic(_op, "Sale could not be completed")

    def record_customer_payment(self, payment: PaymentInput) -> CustomerPayment:
        def _op():
            try:
                row = self._write_customer_payment(payment)
                db.session.commit()
                return row
            except Exception:
                db.session.rollback()
                raise

        return _run_atomic(_op, "Customer payment could not be recorded")

    # ------------------------------------------------------------------
    # Internal helpers (run inside the open transaction)
    # ------------------------------------------------------------------

    def _write_sale(self, sale_input: SaleInput) -> Sale:
        requested: dict[ProductId, int] = {}
        names: dict[ProductId, str] = {}
        for line in sale_input.lines:
            requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
            names[line.product_id] = line.product_name

        for product_id, qty in requested.items():
            result = db.session.execute(
                update(Product)
                .where(
                    Product.id == product_id.value,
                    Product.is_active.is_(True),
                    Product.stock_quantity >= qty,
                )
                .values(stock_quantity=Product.stock_quantity - qty)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InsufficientStock(
                    product_id=product_id.value,
                    product_name=names[product_id],
                    available=self.get_product_stock(product_id),
                    requested=qty,
                )

        if sale_input.is_credit and sale_input.balance_due > 0:
            self._charge_customer(sale_input.customer_id, sale_input.balance_due)

        sale = Sale(
            sale_number=next_sale_number(),
            status="completed",
            cashier_id=sale_input.cashier_id,
            customer_id=sale_input.customer_id.value if sale_input.customer_id else None,
            payment_method=sale_input.payment_method,
            is_credit=sale_input.is_credit,
            subtotal_cents=to_cents(sale_input.subtotal),
            discount_cents=to_cents(sale_input.discount),
            tax_cents=to_cents(sale_input.tax),
            final_cents=to_cents(sale_input.final_amount),
            amount_paid_cents=to_cents(sale_input.amount_paid),
            amount_tendered_cents=(
                to_cents(sale_input.amount_tendered)
                if sale_input.amount_tendered is not None else None
            ),
            balance_due_cents=to_cents(sale_input.balance_due),
            change_cents=to_cents(sale_input.change),
        )
        db.session.add(sale)
        db.session.flush()

        for line in sale_input.lines:
            db.session.add(SaleLine(
                sale_id=sale.id,
                product_id=line.product_id.value,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price_cents=to_cents(line.unit_price),
                line_total_cents=to_cents(line.line_total),
            ))

        for tender in sale_input.tenders:
            db.session.add(SalePayment(
                sale_id=sale.id,
                method=tender.method,
                amount_cents=to_cents(tender.amount),
                reference_number=tender.reference_number,
            ))

        db.session.flush()
        return sale

    def _charge_customer(self, customer_id: CustomerId, amount: Decimal) -> None:
        cents = to_cents(amount)
        result = db.session.execute(
            update(Customer)
            .where(
                Customer.id == customer_id.value,
                Customer.is_active.is_(True),
                Customer.credit_limit_cents > 0,
                Customer.outstanding_balance_cents + cents <= Customer.credit_limit_cents,
            )
            .values(outstanding_balance_cents=Customer.outstanding_balance_cents + cents)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        customer = self.get_customer(customer_id)
        if customer is None or not customer.is_active:
            raise CustomerNotFound(customer_id.value)
        raise CreditLimitExceeded(
            available_credit=max(customer.credit_limit - customer.outstanding_balance, ZERO),
            requested=amount,
            credit_limit=customer.credit_limit,
            outstanding_balance=customer.outstanding_balance,
        )

    def _write_customer_payment(self, payment: PaymentInput) -> CustomerPayment:
        cents = to_cents(payment.amount)

        result = db.session.execute(
            update(Customer)
            .where(
                Customer.id == payment.customer_id.value,
                Customer.outstanding_balance_cents >= cents,
            )
            .values(outstanding_balance_cents=Customer.outstanding_balance_cents - cents)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            customer = self.get_customer(payment.customer_id)
            if customer is None:
                raise CustomerNotFound(payment.customer_id.value)
            raise PaymentError(
                "Payment exceeds outstanding balance",
                details={
                    "amount": payment.amount,
                    "outstanding_balance": customer.outstanding_balance,
                },
            )

        if payment.sale_id is not None:
            result = db.session.execute(
                update(Sale)
                .where(
                    Sale.id == payment.sale_id,
                    Sale.customer_id == payment.customer_id.value,
                    Sale.is_credit.is_(True),
                    Sale.balance_due_cents >= cents,
                )
                .values(
                    balance_due_cents=Sale.balance_due_cents - cents,
                    amount_paid_cents=Sale.amount_paid_cents + cents,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                sale = (
                    db.session.query(Sale)
                    .filter(Sale.id == payment.sale_id)
                    .populate_existing()
                    .first()
                )
                details = {"sale_id": payment.sale_id, "amount": payment.amount}
                if sale is None or sale.customer_id != payment.customer_id.value or not sale.is_credit:
                    raise PaymentError("Sale is not an open credit sale for this customer", details=details)
                details["balance_due"] = from_cents(sale.balance_due_cents)
                raise PaymentError("Payment exceeds the sale's balance due", details=details)

        row = CustomerPayment(
            customer_id=payment.customer_id.value,
            sale_id=payment.sale_id,
            amount_cents=cents,
            payment_method=payment.payment_method,
            reference_number=payment.reference_number,
            notes=payment.notes,
            recorded_by=payment.recorded_by,
        )
        db.session.add(row)
        db.session.flush()
        return row


def _run_atomic(op, failure_message: str):
    try:
        return run_with_retry(op)
    except PosError:
        raise
    except Exception as exc:
        # any write failure leaves nothing behind and reaches the caller as CommitFailed
        db.session.rollback()
        raise CommitFailed(failure_message, details={"reason": exc.__class__.__name__}) from exc


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


_default_store: SqlAlchemyStore | None = None


def get_store() -> SqlAlchemyStore:
    global _default_store
    if _default_store is None:
        _default_store = SqlAlchemyStore()
    return _default_store
