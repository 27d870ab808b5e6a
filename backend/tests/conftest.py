"""
Pytest fixtures for ShopLedger backend tests.

Provides the test app and database, staff users with session tokens, and
a product factory that builds stock through the ledger services.
"""

import pytest

from shopledger import create_app
from shopledger.config import TestingConfig
from shopledger.extensions import db
from shopledger.models import Category
from shopledger.services import auth_service, products_service, session_service, transfer_service


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

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

        db.session.rollback()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return auth_service.create_user(
        username="admin", email="admin@shop.test", name="Admin", password=PASSWORD, role="admin"
    )


@pytest.fixture(scope='function')
def salesmen_user(db_session):
    return auth_service.create_user(
        username="counter", email="counter@shop.test", name="Counter", password=PASSWORD, role="salesmen"
    )


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    _, token = session_service.create_session(admin_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def salesmen_headers(salesmen_user):
    _, token = session_service.create_session(salesmen_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def category(db_session):
    c = Category(name="Beverages")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def make_product(db_session, category, admin_user):
    """
    Factory: make_product(name, price_cents, batches=[(qty, unit_cost_cents)], shop=0, sku=None).

    Batches land in the warehouse; ``shop`` units are then moved to the shop
    with a completed transfer.
    """
    def _make(name="Cola", price_cents=1000, batches=((10, 500),), shop=0, sku=None):
        payload = {"name": name, "selling_price_cents": price_cents, "category_id": category.id}
        if sku:
            payload["sku"] = sku
        payload["batches"] = [{"quantity": q, "unit_cost_cents": c} for q, c in batches]
        product = products_service.create_product(payload, user_id=admin_user.id)
        if shop:
            transfer_service.create_transfer(
                product_id=product.id,
                quantity=shop,
                from_location="warehouse",
                to_location="shop",
                user_id=admin_user.id,
                complete_immediately=True,
            )
        return product

    return _make


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
