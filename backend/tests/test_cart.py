# Overview: Pytest coverage for the in-memory cart.

"""
Cart Tests

Covers:
- Repeated adds merge into one line and never pass the known stock
- Quantity increases re-read stock instead of trusting the snapshot
- Lines with malformed product ids are purged before checkout
- Rebuilding a cart from a checkout payload
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from martpos.cart import Cart, CartLine
from martpos.errors import InvalidIdentity, NotInCart, OutOfStock, StockExceeded, ValidationError
from martpos.identity import ProductId


def product(id=1, name="Milk 1L", price="12.50", stock=10):
    return SimpleNamespace(id=id, name=name, retail_price=Decimal(price), stock_quantity=stock)


class LiveStock:
    """Stock source backed by a dict; records every re-read."""

    def __init__(self, **stock):
        self.stock = {int(k.lstrip("p")): v for k, v in stock.items()}
        self.reads = []

    def __call__(self, product_id):
        self.reads.append(product_id)
        return self.stock.get(product_id.value, 0)


class TestAdd:
    def test_repeated_adds_merge_into_one_line(self):
        cart = Cart(LiveStock(p1=10))
        milk = product()

        for _ in range(4):
            cart.add(milk)

        assert len(cart) == 1
        assert cart.get(1).quantity == 4
        assert cart.total == Decimal("50.00")
        assert cart.item_count == 4

    def test_add_stops_at_known_stock(self):
        cart = Cart(LiveStock(p1=2))
        milk = product(stock=2)
        cart.add(milk)
        cart.add(milk)

        with pytest.raises(StockExceeded) as exc:
            cart.add(milk)

        assert exc.value.max_quantity == 2
        assert exc.value.details["max_quantity"] == 2
        assert cart.get(1).quantity == 2
        assert cart.total == Decimal("25.00")

    def test_out_of_stock_product_is_refused(self):
        cart = Cart(LiveStock())
        with pytest.raises(OutOfStock):
            cart.add(product(stock=0))
        assert cart.is_empty
        assert cart.total == Decimal("0.00")

    @pytest.mark.parametrize("bad_id", ["7891234567", "12", 0, -4, None, 1.5])
    def test_malformed_id_is_rejected_not_coerced(self, bad_id):
        cart = Cart(LiveStock())
        with pytest.raises(InvalidIdentity):
            cart.add(product(id=bad_id))
        assert cart.is_empty

    def test_lines_keep_insertion_order(self):
        cart = Cart(LiveStock(p1=5, p2=5))
        cart.add(product(id=2, name="Bread"))
        cart.add(product(id=1, name="Milk 1L"))
        assert [line.name for line in cart.lines] == ["Bread", "Milk 1L"]


class TestMutations:
    def test_remove_drops_whole_line(self):
        cart = Cart(LiveStock(p1=10))
        for _ in range(5):
            cart.add(product())
        cart.remove(1)
        assert cart.is_empty
        assert cart.total == Decimal("0.00")

    def test_increase_uses_fresh_stock_not_snapshot(self):
        live = LiveStock(p1=5)
        cart = Cart(live)
        cart.add(product(stock=5))

        # Another terminal sold most of it since the scan
        live.stock[1] = 1

        with pytest.raises(StockExceeded) as exc:
            cart.change_quantity(1, 1)

        assert exc.value.max_quantity == 1
        assert live.reads == [ProductId(1)]
        line = cart.get(1)
        assert line.quantity == 1
        assert line.stock == 1

    def test_increase_within_live_stock(self):
        cart = Cart(LiveStock(p1=5))
        cart.add(product(stock=5))
        line = cart.change_quantity(1, 3)
        assert line.quantity == 4
        assert cart.total == Decimal("50.00")

    def test_decrease_floors_at_one_without_stock_read(self):
        live = LiveStock(p1=5)
        cart = Cart(live)
        cart.add(product(stock=5))
        cart.add(product(stock=5))

        line = cart.change_quantity(1, -10)

        assert line.quantity == 1
        assert live.reads == []
        assert cart.total == Decimal("12.50")

    def test_change_quantity_of_missing_line(self):
        cart = Cart(LiveStock())
        with pytest.raises(NotInCart):
            cart.change_quantity(3, 1)

    def test_clear(self):
        cart = Cart(LiveStock(p1=5, p2=5))
        cart.add(product(id=1))
        cart.add(product(id=2, name="Bread", price="8.00"))
        cart.clear()
        assert cart.is_empty
        assert cart.total == Decimal("0.00")


class TestIntegritySweep:
    def test_leaked_barcode_line_is_purged(self):
        cart = Cart(LiveStock(p1=5))
        cart.add(product())
        # A code path that stored the scanned code in the id field
        cart._lines["7891234567"] = CartLine(
            product_id="7891234567", name="Ghost", unit_price=Decimal("99.00"), quantity=1
        )

        lines = cart.lines

        assert [line.name for line in lines] == ["Milk 1L"]
        assert cart.total == Decimal("12.50")

    def test_snapshot_is_detached(self):
        cart = Cart(LiveStock(p1=5))
        cart.add(product())
        snap = cart.snapshot()
        snap[0].quantity = 99
        assert cart.get(1).quantity == 1


class TestRestore:
    def test_malformed_ids_are_dropped(self):
        cart = Cart.restore(
            [
                {"product_id": 1, "name": "Milk 1L", "price": "12.50", "quantity": 2},
                {"product_id": "ABC-123", "name": "Ghost", "price": "1.00", "quantity": 1},
                {"name": "No id", "price": "1.00"},
            ],
            LiveStock(p1=5),
        )
        assert len(cart) == 1
        assert cart.total == Decimal("25.00")

    def test_duplicate_ids_merge(self):
        cart = Cart.restore(
            [
                {"product_id": 1, "name": "Milk 1L", "price": "12.50", "quantity": 2},
                {"product_id": "1", "name": "Milk 1L", "price": "12.50", "quantity": 1},
            ],
            LiveStock(p1=5),
        )
        assert cart.get(1).quantity == 3

    def test_missing_name_and_price_come_from_catalog(self):
        catalog = {1: product(name="Milk 1L", price="12.50")}
        cart = Cart.restore(
            [{"product_id": 1, "quantity": 2}],
            LiveStock(p1=5),
            product_source=lambda pid: catalog.get(pid.value),
        )
        line = cart.get(1)
        assert line.name == "Milk 1L"
        assert line.unit_price == Decimal("12.50")

    def test_sent_price_wins_over_catalog(self):
        catalog = {1: product(price="14.00")}
        cart = Cart.restore(
            [{"product_id": 1, "name": "Milk 1L", "price": "12.50"}],
            LiveStock(p1=5),
            product_source=lambda pid: catalog.get(pid.value),
        )
        assert cart.get(1).unit_price == Decimal("12.50")

    @pytest.mark.parametrize("quantity", [0, -1, "2", 1.5, True])
    def test_bad_quantity_is_rejected(self, quantity):
        with pytest.raises(ValidationError):
            Cart.restore([{"product_id": 1, "price": "1.00", "quantity": quantity}], LiveStock(p1=5))

    def test_negative_price_is_rejected(self):
        with pytest.raises(ValidationError):
            Cart.restore([{"product_id": 1, "price": "-1.00"}], LiveStock(p1=5))
