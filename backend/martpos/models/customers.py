from __future__ import annotations

from ..extensions import db
from ..money import from_cents
from martpos.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer account for credit ("on account") sales.

    BALANCE INVARIANT:
    outstanding_balance_cents only changes through a committed credit Sale
    (increase) or a recorded CustomerPayment (decrease). Nothing else writes it.

    CREDIT LIMIT:
    0 means no credit allowed. There is no "unlimited" value.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.CheckConstraint("outstanding_balance_cents >= 0", name="ck_customers_balance_nonnegative"),
        db.CheckConstraint("credit_limit_cents >= 0", name="ck_customers_limit_nonnegative"),
        db.Index("ix_customers_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    outstanding_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def credit_limit(self):
        return from_cents(self.credit_limit_cents)

    @property
    def outstanding_balance(self):
        return from_cents(self.outstanding_balance_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "credit_limit": str(self.credit_limit),
            "outstanding_balance": str(self.outstanding_balance),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CustomerPayment(db.Model):
    """
    Payment received against a customer's account.

    Optionally earmarked to one open credit sale (sale_id); otherwise it
    reduces the general outstanding balance only.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "customer_payments"
    __table_args__ = (
        db.Index("ix_customer_payments_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    reference_number = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    recorded_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))
    sale = db.relationship("Sale", backref=db.backref("customer_payments", lazy=True))

    @property
    def amount(self):
        return from_cents(self.amount_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "sale_number": self.sale.sale_number if self.sale else None,
            "amount": str(self.amount),
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
        }
