# Overview: Service-layer operations for catalog lookup; scanned-code vs. typed-name resolution.

"""
Catalog Lookup

A hardware scanner emits a fast burst of characters ending in a synthetic
Enter; a person typing a product name produces slow keystrokes that should
drive incremental suggestions instead. The two paths are told apart by
``is_barcode_shaped``:

- letters/digits only, no whitespace, and at least N characters
  (N = 8 while passively classifying keystrokes, 3 on an explicit Enter)

Resolution of one submitted string:
1. barcode-shaped -> exact code lookup first, name search only on a miss
2. otherwise      -> name search only; never a code lookup

Known ambiguity: a long all-digit name fragment is classified as a code.
It still falls through to name search when no product carries that code.
"""

from __future__ import annotations

import re
import time
from typing import Callable

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..identity import ProductId
from ..models import Category, Product
from ..money import ZERO, to_cents, to_money
from .data_store import get_store

_BARCODE_CHARS = re.compile(r"[A-Za-z0-9]+")

MODE_PASSIVE = "passive"
MODE_CONFIRM = "confirm"


def barcode_min_length(mode: str = MODE_CONFIRM) -> int:
    if mode == MODE_PASSIVE:
        return current_app.config.get("BARCODE_MIN_LENGTH_PASSIVE", 8)
    if mode == MODE_CONFIRM:
        return current_app.config.get("BARCODE_MIN_LENGTH_CONFIRM", 3)
    raise ValueError(f"unknown lookup mode: {mode}")


def is_barcode_shaped(text: str | None, min_length: int) -> bool:
    """
    True when ``text`` looks like a scanned code rather than a typed name.

    >>> is_barcode_shaped("7891234567", 8)
    True
    >>> is_barcode_shaped("milk 2l", 3)
    False
    """
    if not text:
        return False
    return len(text) >= min_length and _BARCODE_CHARS.fullmatch(text) is not None


def find_by_code(code: str, *, store=None) -> Product | None:
    store = store or get_store()
    return store.get_product_by_code(code.strip()) if code else None


def find_by_name(fragment: str, limit: int = 1, *, store=None) -> list[Product]:
    store = store or get_store()
    fragment = (fragment or "").strip()
    if not fragment:
        return []
    return store.search_products_by_name(fragment, limit)


def search_by_name_prefix(fragment: str, limit: int | None = None, *, store=None) -> list[Product]:
    """
    Suggestions for the live search box.

    Substring matches, with names that START with the fragment ranked first.
    Fragments shorter than SEARCH_MIN_CHARS return nothing.
    """
    fragment = (fragment or "").strip()
    if len(fragment) < current_app.config.get("SEARCH_MIN_CHARS", 2):
        return []
    if limit is None:
        limit = current_app.config.get("SEARCH_DEFAULT_LIMIT", 10)

    store = store or get_store()
    return store.search_products_by_name(fragment, limit, prefix_first=True)


def resolve_input(text: str, *, mode: str = MODE_CONFIRM, store=None) -> Product | None:
    """Resolve a scanned or typed string to one product, or None."""
    store = store or get_store()
    trimmed = (text or "").strip()
    if not trimmed:
        return None

    if is_barcode_shaped(trimmed, barcode_min_length(mode)):
        product = store.get_product_by_code(trimmed)
        if product is not None:
            return product

    matches = store.search_products_by_name(trimmed, 1)
    return matches[0] if matches else None


def current_stock(product_id, *, store=None) -> int:
    store = store or get_store()
    return store.get_product_stock(ProductId.parse(product_id))


def low_stock_products(threshold: int | None = None, *, store=None) -> list[Product]:
    """Products at or below their min_stock_level, or below ``threshold``."""
    store = store or get_store()
    return store.list_low_stock(threshold)


class SuggestionSearch:
    """
    Debounced live search with last-write-wins by request generation.

    Each keystroke calls ``submit`` and gets a new generation. Results are
    only accepted for the newest generation, whatever order responses
    arrive in, so stale results never overwrite newer input.
    """

    def __init__(
        self,
        search: Callable[[str, int], list],
        *,
        debounce_seconds: float = 0.3,
        limit: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._search = search
        self._debounce = debounce_seconds
        self._limit = limit
        self._clock = clock
        self.generation = 0
        self.fragment = ""
        self.results: list = []
        self._last_keystroke = None

    def submit(self, fragment: str) -> int:
        self.generation += 1
        self.fragment = fragment
        self._last_keystroke = self._clock()
        return self.generation

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def ready(self) -> bool:
        """True once the debounce window has passed since the last keystroke."""
        if self._last_keystroke is None:
            return False
        return self._clock() - self._last_keystroke >= self._debounce

    def run(self, generation: int) -> list | None:
        """Run the search for ``generation``; None if it was superseded."""
        if not self.is_current(generation):
            return None
        results = self._search(self.fragment, self._limit)
        if not self.deliver(generation, results):
            return None
        return results

    def deliver(self, generation: int, results: list) -> bool:
        if not self.is_current(generation):
            return False
        self.results = list(results)
        return True

    def clear(self) -> None:
        self.generation += 1
        self.fragment = ""
        self.results = []
        self._last_keystroke = None


def create_product(
    *,
    name: str,
    retail_price,
    barcode: str | None = None,
    stock_quantity: int = 0,
    cost_price=None,
    min_stock_level: int | None = None,
    category_name: str | None = None,
) -> Product:
    """
    Add a product to the catalog (bootstrap / back-office use).

    Raises:
        ValidationError: missing name, negative price or stock, duplicate barcode
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    barcode = (barcode or "").strip() or None
    if barcode is not None and db.session.query(Product).filter_by(barcode=barcode).first():
        raise ValidationError(f"Barcode {barcode} is already assigned", details={"barcode": barcode})

    try:
        price = to_money(retail_price)
        cost = to_money(cost_price) if cost_price is not None else None
    except ValueError:
        raise ValidationError("prices must be numbers")
    if price < ZERO or (cost is not None and cost < ZERO):
        raise ValidationError("prices cannot be negative")
    if isinstance(stock_quantity, bool) or not isinstance(stock_quantity, int) or stock_quantity < 0:
        raise ValidationError("stock_quantity must be a whole number >= 0")
    if min_stock_level is None:
        min_stock_level = current_app.config.get("DEFAULT_MIN_STOCK_LEVEL", 10)

    category = None
    if category_name:
        category = db.session.query(Category).filter_by(name=category_name).first()
        if category is None:
            category = Category(name=category_name)
            db.session.add(category)

    product = Product(
        name=name,
        barcode=barcode,
        category=category,
        retail_price_cents=to_cents(price),
        cost_price_cents=to_cents(cost) if cost is not None else None,
        stock_quantity=stock_quantity,
        min_stock_level=min_stock_level,
        is_active=True,
    )
    db.session.add(product)
    db.session.commit()
    return product
