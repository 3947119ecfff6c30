"""
Pytest fixtures for the POS backend tests.

Provides test database setup, catalog/customer factories, and test client.
"""

import pytest
from martpos import create_app
from martpos.cart import Cart
from martpos.extensions import db
from martpos.models import Customer, Product
from martpos.money import to_cents
from martpos.services.data_store import get_store


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def store():
    return get_store()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name, price, stock, barcode=None, ...)"""
    def _make(name="Milk 1L", price="12.50", stock=10, barcode=None, min_stock_level=10, is_active=True):
        product = Product(
            name=name,
            barcode=barcode,
            retail_price_cents=to_cents(price),
            stock_quantity=stock,
            min_stock_level=min_stock_level,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    """Factory: make_customer(name, credit_limit, balance)"""
    def _make(name="Ama Owusu", credit_limit="0", balance="0", is_active=True):
        customer = Customer(
            name=name,
            credit_limit_cents=to_cents(credit_limit),
            outstanding_balance_cents=to_cents(balance),
            is_active=is_active,
        )
        db_session.add(customer)
        db_session.commit()
        return customer
    return _make


@pytest.fixture(scope='function')
def cart(store):
    """Empty cart wired to the live stock figure."""
    return Cart(store.get_product_stock)


@pytest.fixture(scope='function')
def fresh(db_session):
    """fresh(Model, id): re-read a row, bypassing the identity map."""
    def _fresh(model, obj_id):
        return db_session.query(model).filter_by(id=obj_id).populate_existing().one()
    return _fresh
