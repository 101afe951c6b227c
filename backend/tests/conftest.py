"""
Pytest fixtures for PDV backend tests.

Provides an in-memory database per test, one employee per role with a
logged-in bearer token, and a product factory.
"""

import pytest

from pdv import create_app
from pdv.extensions import db
from pdv.services import auth_service, products_service


PASSWORD = "secret123"


@pytest.fixture(scope='function')
def app():
    """Create application with a fresh in-memory database."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_ROUNDS': 4,
        'OFFLINE_MODE': False,
        'LOYALTY_CENTS_PER_POINT': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


def _make_employee(login: str, role: str, name: str):
    return auth_service.create_employee({
        "name": name,
        "login": login,
        "password": PASSWORD,
        "role": role,
    })


@pytest.fixture(scope='function')
def admin(app):
    return _make_employee("admin", "ADMIN", "Alice Admin")


@pytest.fixture(scope='function')
def manager(app):
    return _make_employee("manager", "MANAGER", "Mario Manager")


@pytest.fixture(scope='function')
def seller(app):
    return _make_employee("seller", "SELLER", "Sam Seller")


def get_auth_token(client, login: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for an employee."""
    response = client.post('/api/auth/login', json={'login': login, 'password': password})
    assert response.status_code == 200, response.get_json()
    return response.get_json()['token']


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.login))


@pytest.fixture(scope='function')
def manager_headers(client, manager):
    return auth_headers(get_auth_token(client, manager.login))


@pytest.fixture(scope='function')
def seller_headers(client, seller):
    return auth_headers(get_auth_token(client, seller.login))


@pytest.fixture(scope='function')
def make_product(app):
    """Factory: make_product(code="P1", price_cents=1000, stock_quantity=10, ...)."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        payload = {
            "code": f"P{counter['n']:03d}",
            "name": f"Product {counter['n']}",
            "category": "General",
            "price_cents": 1000,
            "cost_cents": 500,
            "stock_quantity": 10,
            "min_stock": 2,
        }
        payload.update(overrides)
        return products_service.create_product(payload)

    return _make


def reload(obj):
    """Re-read a row after another session (an API request) changed it."""
    db.session.refresh(obj)
    return obj
