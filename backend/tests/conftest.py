"""
Pytest fixtures for posoffice backend tests.

Provides test database setup, catalog/stock factories, users with both
roles, and the test client.
"""

import pytest
from posoffice import create_app
from posoffice.extensions import db
from posoffice.models import Client, Product
from posoffice.models.auth import ROLE_OPERATOR, ROLE_SUPERVISOR
from posoffice.services import stock_ledger
from posoffice.services.auth_service import create_user


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'INVOICE_STORAGE_PATH': str(tmp_path_factory.mktemp("invoices")),
        'SUPERVISOR_EMAILS': ['boss@posoffice.local'],
        'AUTO_CREATE_CLIENTS': False,
        'ORDER_AUTO_CANCEL_EMPTY': False,
        'ORDER_ENFORCE_MRP_CEILING': True,
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
def make_client(db_session):
    """Factory: make_client("acme") -> Client."""
    def _make(name="acme"):
        c = Client(name=name)
        db_session.add(c)
        db_session.commit()
        return c
    return _make


@pytest.fixture(scope='function')
def make_product(db_session, make_client):
    """Factory: make_product("B1", mrp_cents=1000, stock=5) -> Product."""
    default_client = {}

    def _make(barcode="B1", name=None, mrp_cents=1000, stock=None, client=None, category=None):
        if client is None:
            if "client" not in default_client:
                existing = db_session.query(Client).filter_by(name="acme").first()
                default_client["client"] = existing or make_client("acme")
            client = default_client["client"]
        product = Product(
            client_id=client.id,
            barcode=barcode,
            name=name or f"product {barcode.lower()}",
            mrp_cents=mrp_cents,
            category=category,
        )
        db_session.add(product)
        db_session.commit()
        if stock is not None:
            stock_ledger.set_absolute(product.id, stock)
        return product
    return _make


@pytest.fixture(scope='function')
def supervisor(db_session):
    return create_user("supervisor@test.local", PASSWORD, ROLE_SUPERVISOR)


@pytest.fixture(scope='function')
def operator(db_session):
    return create_user("operator@test.local", PASSWORD, ROLE_OPERATOR)


@pytest.fixture(scope='function')
def supervisor_headers(client, supervisor):
    return auth_headers(get_auth_token(client, supervisor.email, PASSWORD))


@pytest.fixture(scope='function')
def operator_headers(client, operator):
    return auth_headers(get_auth_token(client, operator.email, PASSWORD))


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
