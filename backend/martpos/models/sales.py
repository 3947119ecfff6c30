from __future__ import annotations

from ..extensions import db
from ..money import from_cents
from martpos.time_utils import to_utc_z


class Sale(db.Model):
    """
    Committed sale header.

    WHY: A Sale only exists as the result of a successful checkout. It is
    written in the same transaction as its lines, the stock decrements and
    (for credit) the customer balance increase, so partial sales never exist.

    AMOUNTS (all in cents):
    - subtotal: sum of line totals
    - final: subtotal - discount + tax
    - amount_paid: what was settled now (0 for pure credit)
    - balance_due: final - amount_paid, only > 0 for credit sales
    - change: tendered - final for cash
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("sale_number", name="uq_sales_sale_number"),
        db.Index("ix_sales_customer_credit", "customer_id", "is_credit", "balance_due_cents"),
        db.Index("ix_sales_created", "created_at"),
        db.CheckConstraint("balance_due_cents >= 0", name="ck_sales_balance_due_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "S-000123")
    sale_number = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    cashier_id = db.Column(db.String(64), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    payment_method = db.Column(db.String(16), nullable=False)  # cash, card, momo, credit, split
    is_credit = db.Column(db.Boolean, nullable=False, default=False)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    final_cents = db.Column(db.Integer, nullable=False)

    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_tendered_cents = db.Column(db.Integer, nullable=True)
    balance_due_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))

    @property
    def total_amount(self):
        return from_cents(self.subtotal_cents)

    @property
    def discount_amount(self):
        return from_cents(self.discount_cents)

    @property
    def tax_amount(self):
        return from_cents(self.tax_cents)

    @property
    def final_amount(self):
        return from_cents(self.final_cents)

    @property
    def amount_paid(self):
        return from_cents(self.amount_paid_cents)

    @property
    def amount_tendered(self):
        if self.amount_tendered_cents is None:
            return None
        return from_cents(self.amount_tendered_cents)

    @property
    def balance_due(self):
        return from_cents(self.balance_due_cents)

    @property
    def change_amount(self):
        return from_cents(self.change_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_number": self.sale_number,
            "status": self.status,
            "cashier_id": self.cashier_id,
            "customer_id": self.customer_id,
            "payment_method": self.payment_method,
            "is_credit": self.is_credit,
            "total_amount": str(self.total_amount),
            "discount_amount": str(self.discount_amount),
            "tax_amount": str(self.tax_amount),
            "final_amount": str(self.final_amount),
            "amount_paid": str(self.amount_paid),
            "amount_tendered": str(self.amount_tendered) if self.amount_tendered is not None else None,
            "balance_due": str(self.balance_due),
            "change_amount": str(self.change_amount),
            "created_at": to_utc_z(self.created_at),
        }


class SaleLine(db.Model):
    """Individual line items on a committed sale."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Name as printed on the receipt at sale time
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True, order_by="SaleLine.id"))
    product = db.relationship("Product")

    @property
    def unit_price(self):
        return from_cents(self.unit_price_cents)

    @property
    def line_total(self):
        return from_cents(self.line_total_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "line_total": str(self.line_total),
        }


class SalePayment(db.Model):
    """
    Tender breakdown of a sale.

    One row per split part; a single-method sale has one row for the amount
    settled now. A pure credit sale with nothing paid has none.
    """
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    method = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference_number = db.Column(db.String(128), nullable=True)

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True, order_by="SalePayment.id"))

    @property
    def amount(self):
        return from_cents(self.amount_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "method": self.method,
            "amount": str(self.amount),
            "reference_number": self.reference_number,
        }
