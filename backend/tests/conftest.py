"""
Pytest fixtures for VoltShop backend tests.

Provides an in-memory database, users for both roles, catalog products with
opening stock, and helpers for placing orders and authenticating.
"""

import pytest

from voltshop import create_app
from voltshop.extensions import db
from voltshop.services import order_service, products_service
from voltshop.services.auth_service import create_user
from voltshop.validation import parse_order_request

PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'LOG_LEVEL': 'WARNING',
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
def admin_user(db_session):
    return create_user("admin", "admin@voltshop.test", PASSWORD, role="admin", name="Shop Admin")


@pytest.fixture(scope='function')
def second_admin(db_session):
    return create_user("ops", "ops@voltshop.test", PASSWORD, role="admin", name="Ops Admin")


@pytest.fixture(scope='function')
def customer(db_session):
    return create_user(
        "alice", "alice@example.com", PASSWORD,
        name="Alice Nakato", phone="0700000001", location="Kampala",
    )


@pytest.fixture(scope='function')
def other_customer(db_session):
    return create_user(
        "bob", "bob@example.com", PASSWORD,
        name="Bob Okello", phone="0700000002", location="Gulu",
    )


@pytest.fixture(scope='function')
def laptop(db_session, admin_user):
    """ThinkPad with 5 units on hand."""
    return products_service.create_product(
        patch={
            "sku": "LEN-X1-G11",
            "name": "ThinkPad X1 Carbon",
            "brand": "Lenovo",
            "category": "laptops",
            "purchase_price_cents": 300_000,
            "selling_price_cents": 450_000,
        },
        user=admin_user,
        opening_stock=5,
    )


@pytest.fixture(scope='function')
def phone(db_session, admin_user):
    """Galaxy with 3 units on hand."""
    return products_service.create_product(
        patch={
            "sku": "SAM-S24",
            "name": "Galaxy S24",
            "brand": "Samsung",
            "category": "phones",
            "purchase_price_cents": 200_000,
            "selling_price_cents": 280_000,
        },
        user=admin_user,
        opening_stock=3,
    )


def order_payload(*lines, location="Kampala", payment_method="onDelivery") -> dict:
    """Checkout body for (product_id, quantity) pairs."""
    return {
        "items": [{"product": product_id, "quantity": quantity} for product_id, quantity in lines],
        "paymentMethod": payment_method,
        "customerInfo": {"name": "Alice Nakato", "phone": "0700000001", "location": location},
    }


def place_order(user, *lines, location="Kampala"):
    """Create an order through the service layer."""
    return order_service.create_order(parse_order_request(order_payload(*lines, location=location)), user)


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture(scope='function')
def customer_headers(client, customer):
    return auth_headers(get_auth_token(client, customer.username))


@pytest.fixture(scope='function')
def other_headers(client, other_customer):
    return auth_headers(get_auth_token(client, other_customer.username))
