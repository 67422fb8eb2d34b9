"""
Pytest fixtures for marketplace backend tests.

Provides the app on in-memory SQLite, a per-test table wipe, a pinned
clock, and a small marketplace (customer, approved vendor, products).
"""

from datetime import datetime

import pytest

from marketplace import create_app
from marketplace.config import TestConfig
from marketplace.extensions import db
from marketplace.models import Product, User, Vendor
from marketplace.ports import reset_ports, set_clock
from marketplace.services import order_service
from marketplace.time_utils import FixedClock


START = datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


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
        reset_ports()


@pytest.fixture(scope='function')
def clock(db_session):
    """Pinned clock registered as the default for every service."""
    fixed = FixedClock(START)
    set_clock(fixed)
    return fixed


@pytest.fixture(scope='function')
def customer(db_session):
    user = User(first_name="Ada", last_name="Buyer", email="ada@example.com", role="customer")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def vendor(db_session):
    """Approved vendor with the default 10% commission."""
    owner = User(first_name="Vic", last_name="Seller", email="vic@example.com", role="vendor")
    db_session.add(owner)
    db_session.flush()
    vendor = Vendor(
        user_id=owner.id,
        business_name="Vic's Electronics",
        business_type="company",
        status="approved",
        commission_rate_bps=1000,
    )
    db_session.add(vendor)
    db_session.commit()
    return vendor


@pytest.fixture(scope='function')
def second_vendor(db_session):
    owner = User(first_name="Wen", last_name="Maker", email="wen@example.com", role="vendor")
    db_session.add(owner)
    db_session.flush()
    vendor = Vendor(
        user_id=owner.id,
        business_name="Wen's Workshop",
        business_type="individual",
        status="approved",
        commission_rate_bps=1500,
    )
    db_session.add(vendor)
    db_session.commit()
    return vendor


@pytest.fixture(scope='function')
def laptop(db_session, vendor):
    product = Product(vendor_id=vendor.id, name="Laptop", sku="LAP-001", price_cents=10000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def shipping_address():
    return {
        "first_name": "Ada",
        "last_name": "Buyer",
        "street": "1 Main St",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62701",
        "country": "US",
    }


@pytest.fixture(scope='function')
def make_order(db_session, clock, customer, vendor, laptop, shipping_address):
    """Factory: create a pending order (defaults: 2 x 100.00, tax 10.00, shipping 5.00)."""
    def _make(**overrides):
        kwargs = {
            "customer_id": customer.id,
            "vendor_id": vendor.id,
            "items": [{"product_id": laptop.id, "name": "Laptop", "price_cents": 10000, "quantity": 2}],
            "shipping_address": shipping_address,
            "payment_method": "stripe",
            "tax_cents": 1000,
            "shipping_cents": 500,
        }
        kwargs.update(overrides)
        return order_service.create_order(**kwargs)

    return _make


@pytest.fixture(scope='function')
def advance(clock):
    """Walk an order through the given statuses in order."""
    def _advance(order_id, *statuses, updated_by=None):
        order = None
        for status in statuses:
            order = order_service.update_status(order_id, status, updated_by=updated_by)
        return order

    return _advance
