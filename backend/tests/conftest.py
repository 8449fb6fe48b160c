"""
Pytest fixtures for the commerce engine tests.

Provides test database setup, tenant fixtures, and test client.
"""

import pytest
from pos_engine import create_app
from pos_engine.extensions import db
from pos_engine.models import Branch, Customer, Product, Staff, Store
from pos_engine.models.inventory import MOVEMENT_RECEIVE
from pos_engine.services import stock_ledger_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DB_RETRY_BACKOFF': 0,
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
def store(db_session):
    store = Store(name="Store A", code="A")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def other_store(db_session):
    store = Store(name="Store B", code="B")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def branch(db_session, store):
    branch = Branch(store_id=store.id, branch_name="Main")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session, store):
    branch = Branch(store_id=store.id, branch_name="Riverside")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def staff(db_session, store):
    staff = Staff(store_id=store.id, display_name="Cashier", email="cashier@a.test")
    db_session.add(staff)
    db_session.commit()
    return staff


@pytest.fixture(scope='function')
def customer(db_session, store):
    customer = Customer(store_id=store.id, customer_code="C1", full_name="Jane Doe", phone_last4="1234")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def products(db_session, store):
    """Three products: coffee (500), tea (300, redeemable for 5 points), cake (1000)."""
    items = {
        "coffee": Product(store_id=store.id, product_name="Coffee", base_price_cents=500),
        "tea": Product(store_id=store.id, product_name="Tea", base_price_cents=300, points_to_redeem=5),
        "cake": Product(store_id=store.id, product_name="Cake", base_price_cents=1000),
    }
    db_session.add_all(items.values())
    db_session.commit()
    return items


@pytest.fixture(scope='function')
def receive_stock(db_session, store):
    """Put opening stock on a branch through the ledger."""
    def _receive(branch_id, product_id, quantity):
        stock_ledger_service.adjust(store.id, branch_id, product_id, quantity, MOVEMENT_RECEIVE, None)
        db_session.commit()
    return _receive


@pytest.fixture(scope='function')
def headers(store, branch, staff):
    return {
        "X-Store-Id": str(store.id),
        "X-Branch-Id": str(branch.id),
        "X-Staff-Id": str(staff.id),
    }
