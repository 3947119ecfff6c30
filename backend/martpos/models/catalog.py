from __future__ import annotations

from ..extensions import db
from ..money import from_cents
from martpos.time_utils import to_utc_z


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "is_active": self.is_active}


class Product(db.Model):
    """
    Product master data.

    IDENTITY vs. BARCODE:
    - id is the integer primary key and the only thing carts and sale lines
      reference.
    - barcode is the scannable code printed on the packaging. It is looked up
      exactly (case-sensitive) and is never used as an identity.

    STOCK:
    stock_quantity here is authoritative. Anything a client holds is a snapshot;
    checkout re-reads it and decrements it with a conditional update.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_nonnegative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=True, unique=True, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    # Authoritative storage in cents (services convert to Decimal)
    retail_price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=10)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    @property
    def retail_price(self):
        return from_cents(self.retail_price_cents)

    @property
    def cost_price(self):
        return from_cents(self.cost_price_cents) if self.cost_price_cents is not None else None

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.min_stock_level

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "category_id": self.category_id,
            "category": self.category.name if self.category else "Uncategorized",
            "price": str(self.retail_price),
            "cost_price": str(self.cost_price) if self.cost_price is not None else None,
            "stock": self.stock_quantity,
            "min_stock_level": self.min_stock_level,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
