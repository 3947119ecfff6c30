# Overview: In-memory cart owned by one terminal session; never persisted.

"""
Cart

Invariants:
- At most one line per product id. Scanning the same product again bumps
  the quantity instead of adding a line.
- A line's quantity never exceeds the last confirmed stock figure; the
  mutation is refused with StockExceeded and the line is left unchanged.
- Increasing a quantity re-reads stock through ``stock_source`` rather than
  trusting the snapshot taken when the product was added.
- ``total`` is recomputed on every mutation.
- Lines whose product id is not a clean positive integer are purged by the
  integrity sweep and never reach checkout.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Callable, Iterable

from flask import current_app, has_app_context

from .errors import InvalidIdentity, NotInCart, OutOfStock, StockExceeded, ValidationError
from .identity import ProductId, is_valid_product_id, require_product_id
from .money import ZERO, to_money

StockSource = Callable[[ProductId], int]


@dataclass
class CartLine:
    product_id: ProductId
    name: str
    unit_price: Decimal
    quantity: int = 1
    stock: int | None = None  # last-known, advisory only

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": int(self.product_id),
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "stock": self.stock,
            "line_total": str(self.line_total),
        }


class Cart:
    def __init__(self, stock_source: StockSource):
        self._stock_source = stock_source
        self._lines: dict[ProductId, CartLine] = {}
        self.total: Decimal = ZERO

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def lines(self) -> list[CartLine]:
        if self._sweep():
            self._recalculate()
        return list(self._lines.values())

    def snapshot(self) -> tuple[CartLine, ...]:
        """Detached copies of the lines, safe to hand to checkout."""
        return tuple(replace(line) for line in self.lines)

    def get(self, product_id) -> CartLine | None:
        return self._lines.get(require_product_id(product_id))

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self):
        return iter(self.lines)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, product) -> CartLine:
        """
        Add one unit of ``product`` (anything with id, name, retail_price,
        stock_quantity).
        """
        product_id = require_product_id(product.id)
        stock = int(product.stock_quantity or 0)

        if stock <= 0:
            raise OutOfStock(product.name, product_id=product_id.value)

        line = self._lines.get(product_id)
        if line is None:
            line = CartLine(
                product_id=product_id,
                name=product.name,
                unit_price=to_money(product.retail_price),
                quantity=1,
                stock=stock,
            )
            self._lines[product_id] = line
        else:
            if line.quantity + 1 > stock:
                line.stock = stock
                raise StockExceeded(line.name, stock, product_id=product_id.value)
            line.quantity += 1
            line.stock = stock

        self._changed()
        return line

    def remove(self, product_id) -> None:
        """Drop the whole line, whatever its quantity."""
        self._lines.pop(require_product_id(product_id), None)
        self._changed()

    def change_quantity(self, product_id, delta: int) -> CartLine:
        product_id = require_product_id(product_id)
        line = self._lines.get(product_id)
        if line is None:
            raise NotInCart("Product is not in the cart", details={"product_id": product_id.value})
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError("quantity change must be a whole number")

        new_quantity = max(1, line.quantity + delta)
        if new_quantity > line.quantity:
            available = int(self._stock_source(product_id))
            line.stock = available
            if new_quantity > available:
                raise StockExceeded(line.name, max(available, 0), product_id=product_id.value)

        line.quantity = new_quantity
        self._changed()
        return line

    def clear(self) -> None:
        self._lines.clear()
        self._changed()

    # ------------------------------------------------------------------
    # Rebuilding from client payloads
    # ------------------------------------------------------------------

    @classmethod
    def restore(cls, items: Iterable[dict], stock_source: StockSource, *, product_source=None) -> "Cart":
        """
        Rebuild a cart from a client payload (checkout request).

        Ids go through the boundary parse; items that fail it are dropped by
        the sweep rather than coerced. Quantities must be positive integers.
        ``product_source(product_id)`` fills in the catalog name and price for
        items sent without them.
        """
        cart = cls(stock_source)
        for raw in items:
            try:
                product_id = ProductId.parse(raw.get("product_id", raw.get("id")))
            except InvalidIdentity:
                _log_purge(raw)
                continue

            quantity = raw.get("quantity", 1)
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
                raise ValidationError(
                    "quantity must be a whole number of at least 1",
                    details={"product_id": product_id.value, "quantity": quantity},
                )

            price = raw.get("unit_price", raw.get("price"))
            name = raw.get("name")
            product = None
            if (price is None or not name) and product_source is not None:
                product = product_source(product_id)
            if price is None:
                if product is None:
                    raise ValidationError("unit price required", details={"product_id": product_id.value})
                price = product.retail_price
            if not name:
                name = product.name if product is not None else f"Product {product_id}"
            try:
                unit_price = to_money(price)
            except ValueError:
                raise ValidationError("invalid unit price", details={"product_id": product_id.value})
            if unit_price < 0:
                raise ValidationError("unit price cannot be negative", details={"product_id": product_id.value})

            existing = cart._lines.get(product_id)
            if existing is not None:
                existing.quantity += quantity
                continue
            cart._lines[product_id] = CartLine(
                product_id=product_id,
                name=str(name),
                unit_price=unit_price,
                quantity=quantity,
                stock=raw.get("stock"),
            )
        cart._changed()
        return cart

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _sweep(self) -> list[CartLine]:
        purged = [
            line for line in self._lines.values()
            if not is_valid_product_id(line.product_id)
        ]
        if purged:
            self._lines = {
                key: line for key, line in self._lines.items()
                if is_valid_product_id(line.product_id)
            }
            for line in purged:
                _log_purge(line)
        return purged

    def _changed(self) -> None:
        self._sweep()
        self._recalculate()

    def _recalculate(self) -> None:
        self.total = sum((line.line_total for line in self._lines.values()), ZERO)


def _log_purge(item) -> None:
    if has_app_context():
        current_app.logger.warning("Removing cart item with invalid product id: %r", item)
