# Overview: Pytest coverage for the cart-to-sale commit engine.

"""
Sale Commit Tests

Covers:
- Cash change and insufficient tender
- Split payments must match the total exactly
- Credit limit enforcement against the live balance
- All-or-nothing: a failure at any step leaves stock and balances untouched
- Oversell race closed by the conditional stock decrement
- Sale numbering, discount and tax, activity trail
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from martpos.cart import Cart, CartLine
from martpos.errors import (
    CommitFailed,
    CommitInProgress,
    CreditLimitExceeded,
    CustomerNotFound,
    CustomerRequired,
    EmptyCart,
    InsufficientStock,
    InsufficientTender,
    InvalidIdentity,
    PaymentError,
    SplitPaymentMismatch,
    ValidationError,
)
from martpos.identity import CustomerId
from martpos.models import ActivityLog, Customer, Product, Sale, SaleLine
from martpos.services import activity_service, data_store, sales_service
from martpos.services.concurrency import CheckoutGuard
from martpos.services.payment_service import (
    CardPlan,
    CashPlan,
    CreditPlan,
    MobileMoneyPlan,
    SplitPart,
    SplitPlan,
)


class StaleStockStore:
    """
    Wraps the real store but answers stock pre-reads with a fixed figure,
    as if the pre-read happened before another terminal's sale landed.
    """

    def __init__(self, inner, stock):
        self._inner = inner
        self._stock = stock

    def get_product_stock(self, product_id):
        return self._stock

    def __getattr__(self, name):
        return getattr(self._inner, name)


def fill(cart, product, times):
    for _ in range(times):
        cart.add(product)
    return cart


def sale_count(db_session):
    return db_session.query(Sale).count()


@pytest.fixture
def milk(make_product):
    return make_product(name="Milk 1L", price="12.50", stock=10)


@pytest.fixture
def cart_3750(cart, milk):
    """Three units of milk: total 37.50."""
    return fill(cart, milk, 3)


class TestCash:
    def test_change_is_exact(self, db_session, cart_3750, milk, fresh):
        sale = sales_service.commit_sale(cart_3750, CashPlan(Decimal("50.00")), "cashier-1")

        assert sale.final_amount == Decimal("37.50")
        assert sale.amount_tendered == Decimal("50.00")
        assert sale.change_amount == Decimal("12.50")
        assert sale.amount_paid == Decimal("37.50")
        assert sale.balance_due == Decimal("0.00")
        assert sale.payment_method == "cash"

        assert fresh(Product, milk.id).stock_quantity == 7
        assert [(l.product_id, l.quantity, l.unit_price, l.line_total) for l in sale.lines] == [
            (milk.id, 3, Decimal("12.50"), Decimal("37.50"))
        ]
        assert [(p.method, p.amount) for p in sale.payments] == [("cash", Decimal("37.50"))]
        assert cart_3750.is_empty

    def test_short_tender_is_rejected_before_any_write(self, db_session, cart_3750, milk, fresh):
        with pytest.raises(InsufficientTender) as exc:
            sales_service.commit_sale(cart_3750, CashPlan(Decimal("30.00")), "cashier-1")

        assert exc.value.details["shortfall"] == Decimal("7.50")
        assert fresh(Product, milk.id).stock_quantity == 10
        assert sale_count(db_session) == 0
        # Cart survives a failed commit
        assert cart_3750.get(milk.id).quantity == 3

    def test_exact_tender_when_amount_omitted(self, db_session, cart_3750):
        sale = sales_service.commit_sale(cart_3750, CashPlan(), "cashier-1")
        assert sale.amount_tendered == Decimal("37.50")
        assert sale.change_amount == Decimal("0.00")


class TestCardAndMobileMoney:
    def test_card_settles_in_full(self, db_session, cart_3750):
        sale = sales_service.commit_sale(cart_3750, CardPlan(reference_number="AUTH-1"), "cashier-1")
        assert sale.payment_method == "card"
        assert sale.amount_paid == Decimal("37.50")
        assert [(p.method, p.reference_number) for p in sale.payments] == [("card", "AUTH-1")]

    def test_mobile_money(self, db_session, cart_3750):
        sale = sales_service.commit_sale(cart_3750, MobileMoneyPlan(), "cashier-1")
        assert sale.payment_method == "momo"
        assert sale.change_amount == Decimal("0.00")


class TestSplit:
    def test_parts_summing_to_total_commit(self, db_session, cart_3750):
        plan = SplitPlan(parts=(
            SplitPart("cash", Decimal("20.00")),
            SplitPart("momo", Decimal("17.50"), reference_number="MM-55"),
        ))
        sale = sales_service.commit_sale(cart_3750, plan, "cashier-1")

        assert sale.payment_method == "split"
        assert [(p.method, p.amount) for p in sale.payments] == [
            ("cash", Decimal("20.00")),
            ("momo", Decimal("17.50")),
        ]

    def test_one_cent_short_is_rejected(self, db_session, cart_3750, milk, fresh):
        plan = SplitPlan(parts=(
            SplitPart("cash", Decimal("20.00")),
            SplitPart("card", Decimal("17.49")),
        ))
        with pytest.raises(SplitPaymentMismatch) as exc:
            sales_service.commit_sale(cart_3750, plan, "cashier-1")

        assert exc.value.expected == Decimal("37.50")
        assert exc.value.actual == Decimal("37.49")
        assert fresh(Product, milk.id).stock_quantity == 10
        assert sale_count(db_session) == 0

    def test_overpaid_split_is_rejected(self, db_session, cart_3750):
        plan = SplitPlan(parts=(SplitPart("cash", Decimal("40.00")),))
        with pytest.raises(SplitPaymentMismatch):
            sales_service.commit_sale(cart_3750, plan, "cashier-1")


class TestCredit:
    def test_over_limit_reports_available_credit(self, db_session, cart, make_product, make_customer, fresh):
        item = make_product(name="Rice 5kg", price="25.00", stock=5)
        customer = make_customer(credit_limit="100.00", balance="80.00")
        cart.add(item)

        with pytest.raises(CreditLimitExceeded) as exc:
            sales_service.commit_sale(cart, CreditPlan(CustomerId(customer.id)), "cashier-1")

        assert exc.value.available_credit == Decimal("20.00")
        assert exc.value.details["requested"] == Decimal("25.00")
        assert fresh(Customer, customer.id).outstanding_balance == Decimal("80.00")
        assert fresh(Product, item.id).stock_quantity == 5
        assert sale_count(db_session) == 0

    def test_within_limit_raises_balance(self, db_session, cart, make_product, make_customer, fresh):
        item = make_product(name="Sugar 1kg", price="15.00", stock=5)
        customer = make_customer(credit_limit="100.00", balance="80.00")
        cart.add(item)

        sale = sales_service.commit_sale(cart, CreditPlan(CustomerId(customer.id)), "cashier-1")

        assert sale.is_credit
        assert sale.customer_id == customer.id
        assert sale.amount_paid == Decimal("0.00")
        assert sale.balance_due == Decimal("15.00")
        assert sale.payments == []
        assert fresh(Customer, customer.id).outstanding_balance == Decimal("95.00")
        assert fresh(Product, item.id).stock_quantity == 4

    def test_partial_payment_charges_only_balance_due(self, db_session, cart_3750, make_customer, fresh):
        customer = make_customer(credit_limit="30.00")
        plan = CreditPlan(CustomerId(customer.id), amount_paid=Decimal("10.00"))

        sale = sales_service.commit_sale(cart_3750, plan, "cashier-1")

        assert sale.amount_paid == Decimal("10.00")
        assert sale.balance_due == Decimal("27.50")
        assert [(p.method, p.amount) for p in sale.payments] == [("cash", Decimal("10.00"))]
        assert fresh(Customer, customer.id).outstanding_balance == Decimal("27.50")

    def test_paying_everything_now_is_not_a_credit_sale(self, db_session, cart_3750, make_customer):
        customer = make_customer(credit_limit="100.00")
        plan = CreditPlan(CustomerId(customer.id), amount_paid=Decimal("37.50"))
        with pytest.raises(PaymentError):
            sales_service.commit_sale(cart_3750, plan, "cashier-1")

    def test_customer_required(self, db_session, cart_3750):
        with pytest.raises(CustomerRequired):
            sales_service.commit_sale(cart_3750, CreditPlan(), "cashier-1")

    def test_zero_limit_blocks_all_credit(self, db_session, cart, make_product, make_customer):
        item = make_product(price="1.00")
        customer = make_customer(credit_limit="0")
        cart.add(item)

        with pytest.raises(CreditLimitExceeded) as exc:
            sales_service.commit_sale(cart, CreditPlan(CustomerId(customer.id)), "cashier-1")
        assert "no credit allowance" in str(exc.value)

    def test_unknown_or_inactive_customer(self, db_session, cart_3750, make_customer):
        with pytest.raises(CustomerNotFound):
            sales_service.commit_sale(cart_3750, CreditPlan(CustomerId(99999)), "cashier-1")

        inactive = make_customer(credit_limit="500", is_active=False)
        with pytest.raises(CustomerNotFound):
            sales_service.commit_sale(cart_3750, CreditPlan(CustomerId(inactive.id)), "cashier-1")

    def test_limit_rechecked_inside_the_write(self, db_session, cart, make_product, make_customer, fresh):
        """A balance raised after the pre-check still cannot push past the limit."""
        item = make_product(price="15.00", stock=5)
        customer = make_customer(credit_limit="100.00", balance="80.00")
        cart.add(item)

        class RacingStore(StaleStockStore):
            def create_sale(self, sale_input):
                # Another terminal's credit sale lands between pre-check and write
                db_session.query(Customer).filter_by(id=customer.id).update(
                    {"outstanding_balance_cents": 9000}
                )
                db_session.commit()
                return self._inner.create_sale(sale_input)

        with pytest.raises(CreditLimitExceeded) as exc:
            sales_service.commit_sale(
                cart, CreditPlan(CustomerId(customer.id)), "cashier-1",
                store=RacingStore(data_store.get_store(), 5),
            )

        assert exc.value.available_credit == Decimal("10.00")
        assert fresh(Customer, customer.id).outstanding_balance == Decimal("90.00")
        assert fresh(Product, item.id).stock_quantity == 5
        assert sale_count(db_session) == 0


class TestStock:
    def test_stock_reread_at_commit(self, db_session, cart, make_product, fresh):
        item = make_product(stock=5)
        fill(cart, item, 3)

        # Sold elsewhere after it was scanned
        db_session.query(Product).filter_by(id=item.id).update({"stock_quantity": 2})
        db_session.commit()

        with pytest.raises(InsufficientStock) as exc:
            sales_service.commit_sale(cart, CashPlan(), "cashier-1")

        assert exc.value.available == 2
        assert exc.value.requested == 3
        assert sale_count(db_session) == 0

    def test_sole_unit_race_has_one_winner(self, db_session, store, make_product, fresh):
        item = make_product(stock=1)
        first = Cart(store.get_product_stock)
        second = Cart(store.get_product_stock)
        first.add(item)
        second.add(item)

        # Both pre-reads saw one unit; the first write lands
        sales_service.commit_sale(first, CashPlan(), "cashier-1", store=StaleStockStore(store, 1))

        with pytest.raises(InsufficientStock) as exc:
            sales_service.commit_sale(second, CashPlan(), "cashier-2", store=StaleStockStore(store, 1))

        assert exc.value.available == 0
        assert fresh(Product, item.id).stock_quantity == 0
        assert sale_count(db_session) == 1

    def test_failed_second_line_undoes_first_decrement(self, db_session, store, cart, make_product, fresh):
        rice = make_product(name="Rice", stock=10)
        oil = make_product(name="Oil", stock=5)
        cart.add(rice)
        fill(cart, oil, 2)

        db_session.query(Product).filter_by(id=oil.id).update({"stock_quantity": 1})
        db_session.commit()

        with pytest.raises(InsufficientStock) as exc:
            sales_service.commit_sale(cart, CashPlan(), "cashier-1", store=StaleStockStore(store, 99))

        assert exc.value.details["product_name"] == "Oil"
        assert fresh(Product, rice.id).stock_quantity == 10
        assert fresh(Product, oil.id).stock_quantity == 1
        assert sale_count(db_session) == 0
        assert db_session.query(SaleLine).count() == 0


class TestValidationOrder:
    def test_empty_cart(self, db_session, cart):
        with pytest.raises(EmptyCart):
            sales_service.commit_sale(cart, CashPlan(), "cashier-1")

    def test_malformed_id_in_snapshot(self, db_session):
        lines = [CartLine(product_id="7891234567", name="Ghost", unit_price=Decimal("1.00"))]
        with pytest.raises(InvalidIdentity):
            sales_service.commit_sale(lines, CashPlan(), "cashier-1")

    def test_snapshot_with_plain_int_ids_commits(self, db_session, milk, fresh):
        lines = [CartLine(product_id=milk.id, name="Milk 1L", unit_price=Decimal("12.50"), quantity=2)]

        sale = sales_service.commit_sale(lines, CashPlan(), "cashier-1")

        assert sale.final_amount == Decimal("25.00")
        assert sale.lines[0].product_id == milk.id
        assert fresh(Product, milk.id).stock_quantity == 8

    def test_oversized_snapshot_total_is_a_validation_error(self, db_session, milk):
        lines = [CartLine(product_id=milk.id, name="Milk 1L", unit_price=Decimal("1e26"), quantity=5)]
        with pytest.raises(ValidationError):
            sales_service.commit_sale(lines, CashPlan(), "cashier-1")

    def test_stock_checked_before_tender(self, db_session, cart, make_product):
        item = make_product(stock=1)
        cart.add(item)
        db_session.query(Product).filter_by(id=item.id).update({"stock_quantity": 0})
        db_session.commit()

        with pytest.raises(InsufficientStock):
            sales_service.commit_sale(cart, CashPlan(Decimal("0.01")), "cashier-1")

    def test_cashier_required(self, db_session, cart_3750):
        with pytest.raises(ValidationError):
            sales_service.commit_sale(cart_3750, CashPlan(), "  ")


class TestTotals:
    def test_discount(self, db_session, cart_3750):
        sale = sales_service.commit_sale(
            cart_3750, CashPlan(Decimal("30.00")), "cashier-1", discount="7.50"
        )
        assert sale.total_amount == Decimal("37.50")
        assert sale.discount_amount == Decimal("7.50")
        assert sale.final_amount == Decimal("30.00")
        assert sale.change_amount == Decimal("0.00")

    @pytest.mark.parametrize("discount", ["-1", "37.51", "abc"])
    def test_discount_out_of_range(self, db_session, cart_3750, discount):
        with pytest.raises(ValidationError):
            sales_service.commit_sale(cart_3750, CashPlan(), "cashier-1", discount=discount)

    def test_tax_applies_after_discount(self, app, db_session, cart_3750, monkeypatch):
        monkeypatch.setitem(app.config, "TAX_RATE", Decimal("0.10"))
        sale = sales_service.commit_sale(cart_3750, CashPlan(), "cashier-1", discount="7.50")
        assert sale.tax_amount == Decimal("3.00")
        assert sale.final_amount == Decimal("33.00")


class TestCommitSemantics:
    def test_sale_numbers_are_sequential(self, db_session, cart, milk):
        cart.add(milk)
        first = sales_service.commit_sale(cart, CashPlan(), "cashier-1")
        cart.add(milk)
        second = sales_service.commit_sale(cart, CashPlan(), "cashier-1")

        assert first.sale_number == "S-000001"
        assert second.sale_number == "S-000002"

    def test_database_failure_is_commit_failed_and_rolled_back(
        self, db_session, cart_3750, milk, fresh, monkeypatch
    ):
        def broken_numbering():
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(data_store, "next_sale_number", broken_numbering)

        with pytest.raises(CommitFailed) as exc:
            sales_service.commit_sale(cart_3750, CashPlan(), "cashier-1")

        assert exc.value.details["retryable"] is True
        assert exc.value.details["reconcile_required"] is True
        assert fresh(Product, milk.id).stock_quantity == 10
        assert sale_count(db_session) == 0
        assert not cart_3750.is_empty

    def test_unstorable_amount_is_commit_failed_and_session_stays_usable(
        self, db_session, cart, milk, fresh
    ):
        lines = [CartLine(product_id=milk.id, name="Milk 1L", unit_price=Decimal("1e20"), quantity=1)]

        with pytest.raises(CommitFailed):
            sales_service.commit_sale(lines, CashPlan(), "cashier-1")

        assert fresh(Product, milk.id).stock_quantity == 10
        assert sale_count(db_session) == 0

        cart.add(milk)
        sale = sales_service.commit_sale(cart, CashPlan(), "cashier-1")
        assert sale.sale_number == "S-000001"
        assert fresh(Product, milk.id).stock_quantity == 9

    def test_second_commit_in_same_session_is_refused(self, db_session, cart_3750, milk, fresh):
        guard = CheckoutGuard()
        with guard.hold("terminal-1"):
            with pytest.raises(CommitInProgress):
                sales_service.commit_sale(
                    cart_3750, CashPlan(), "cashier-1", guard=guard, session_key="terminal-1"
                )

        assert fresh(Product, milk.id).stock_quantity == 10
        assert not guard.is_busy("terminal-1")

        sale = sales_service.commit_sale(
            cart_3750, CashPlan(), "cashier-1", guard=guard, session_key="terminal-1"
        )
        assert sale.id is not None

    def test_activity_trail_written(self, db_session, cart_3750):
        sale = sales_service.commit_sale(cart_3750, CashPlan(), "cashier-1")
        entry = db_session.query(ActivityLog).filter_by(action_type="sale_create").one()
        assert entry.entity_id == str(sale.id)
        assert entry.user_id == "cashier-1"
        assert entry.new_values["final_amount"] == "37.50"

    def test_activity_trail_failure_does_not_undo_sale(self, db_session, cart_3750, milk, fresh, monkeypatch):
        def broken_log(**kwargs):
            raise SQLAlchemyError("activity_logs is locked")

        monkeypatch.setattr(activity_service, "ActivityLog", broken_log)

        sale = sales_service.commit_sale(cart_3750, CashPlan(), "cashier-1")

        assert fresh(Sale, sale.id).sale_number == "S-000001"
        assert fresh(Product, milk.id).stock_quantity == 7
        assert db_session.query(ActivityLog).count() == 0

    def test_latest_sale_for_cashier(self, db_session, cart, milk):
        cart.add(milk)
        sale = sales_service.commit_sale(cart, CashPlan(), "cashier-9")
        assert sales_service.latest_sale_for_cashier("cashier-9").id == sale.id
        assert sales_service.latest_sale_for_cashier("nobody") is None
