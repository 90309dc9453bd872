"""
Pytest fixtures for Khata backend tests.

Provides test database setup, store/engine handles, sample catalog rows and
the test client.
"""

import pytest

from khata import create_app
from khata.extensions import db
from khata.services.billing_service import get_billing_engine
from khata.services.concurrency import unit_of_work


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
def engine(db_session):
    """The billing engine wired by create_app()."""
    return get_billing_engine()


@pytest.fixture(scope='function')
def catalog(engine):
    return engine.catalog


@pytest.fixture(scope='function')
def ledger(engine):
    return engine.ledger


@pytest.fixture(scope='function')
def make_product(catalog):
    """Factory: create and commit a product; returns it."""
    def _make(**fields):
        patch = {"name": "Aashirvaad Atta (5kg)", "category": "Kirana", "price_cents": 23500, "stock_quantity": 20}
        patch.update(fields)
        with unit_of_work(catalog.session):
            product = catalog.create(patch)
        return product
    return _make


@pytest.fixture(scope='function')
def make_customer(ledger):
    """Factory: create and commit a customer; returns it."""
    def _make(**fields):
        patch = {"name": "Rahul Sharma", "phone": "9876543210", "address": "Flat 101, Omkar Apt"}
        patch.update(fields)
        with unit_of_work(ledger.session):
            customer = ledger.create_customer(patch)
        return customer
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Atta: stock 20, price 23500."""
    return make_product(sku="ATA-001")


@pytest.fixture(scope='function')
def customer(make_customer):
    return make_customer()
