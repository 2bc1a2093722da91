"""
Pytest fixtures for stockroom backend tests.

Provides an in-memory database, per-test table wipe, catalog factories and
a test client.
"""

import pytest
from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import Customer, Product
from stockroom.services.products_service import create_product


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'TX_RETRY_ATTEMPTS': 2,
    'TX_RETRY_BACKOFF_SECONDS': 0,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
def make_product(db_session):
    """Factory: create a product through the service so initial stock hits the ledger."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "sku": f"SKU-{counter['n']:03d}",
            "name": f"Product {counter['n']}",
            "price_cents": 1000,
            "cost_price_cents": 400,
            "stock": 0,
        }
        fields.update(overrides)
        return create_product(**fields)

    return _make


@pytest.fixture(scope='function')
def customer(db_session):
    """Create a customer."""
    c = Customer(name="Ada Buyer", email="ada@example.com")
    db_session.add(c)
    db_session.commit()
    return c


def reload(instance):
    """Re-read a row, discarding whatever the identity map holds."""
    return db.session.get(type(instance), instance.id, populate_existing=True)


def stock_of(product) -> int:
    return db.session.get(Product, product.id, populate_existing=True).stock
