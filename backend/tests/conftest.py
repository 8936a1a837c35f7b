"""
Pytest fixtures for invoicing backend tests.

Provides the test app and database, two tenants (company A and B) with
users and tokens, catalog/customer factories, and a fake payment
provider wired in through httpx.MockTransport.
"""

import re

import httpx
import pytest

from invoicing import create_app
from invoicing.extensions import db
from invoicing.models import Company, User
from invoicing.services import catalog_service, customer_service, integration_service, token_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PUBLIC_BASE_URL': 'https://invoices.test',
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


# =============================================================================
# TENANTS
# =============================================================================

def _make_company(db_session, name: str, email: str, currency: str = "NGN") -> Company:
    company = Company(name=name, currency=currency, is_active=True)
    db_session.add(company)
    db_session.flush()
    db_session.add(User(company_id=company.id, email=email, first_name="Owner"))
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_a(db_session):
    """Company A (first tenant), NGN."""
    return _make_company(db_session, "Acme Ltd", "owner@acme.test")


@pytest.fixture(scope='function')
def company_b(db_session):
    """Company B (second tenant), NGN."""
    return _make_company(db_session, "Beta Inc", "owner@beta.test")


@pytest.fixture(scope='function')
def owner_a(company_a):
    return company_a.users[0]


@pytest.fixture(scope='function')
def owner_b(company_b):
    return company_b.users[0]


@pytest.fixture(scope='function')
def token_a(owner_a):
    _, plaintext = token_service.issue_token(owner_a, name="tests")
    return plaintext


@pytest.fixture(scope='function')
def token_b(owner_b):
    _, plaintext = token_service.issue_token(owner_b, name="tests")
    return plaintext


@pytest.fixture(scope='function')
def headers_a(token_a):
    return auth_headers(token_a)


@pytest.fixture(scope='function')
def headers_b(token_b):
    return auth_headers(token_b)


# =============================================================================
# CATALOG / CUSTOMERS
# =============================================================================

@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(company, name, price, inventory=0, **extra)."""
    def _make(company, name="Product", price=500, inventory=0, **extra):
        payload = {"name": name, "default_price": price, "inventory": inventory}
        payload.update(extra)
        return catalog_service.create_product(company, payload)
    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    def _make(company, firstname="Ada", email=None):
        email = email or f"{firstname.lower()}@customers.test"
        return customer_service.create_customer(company, {"firstname": firstname, "lastname": "Test", "email": email})
    return _make


@pytest.fixture(scope='function')
def customer_a(company_a, make_customer):
    return make_customer(company_a, "Ada")


@pytest.fixture(scope='function')
def paystack_a(company_a):
    return integration_service.configure_integration(
        company_a, "paystack", {"private_key": "sk_test_acme", "public_key": "pk_test_acme", "mode": "test"}
    )


@pytest.fixture(scope='function')
def rave_a(company_a):
    return integration_service.configure_integration(
        company_a, "rave", {"private_key": "FLWSECK-acme", "public_key": "FLWPUBK-acme", "mode": "test"}
    )


# =============================================================================
# FAKE PAYMENT PROVIDER
# =============================================================================

class FakeProvider:
    """
    httpx.MockTransport handler with canned answers.

    on(method, url_pattern, status=200, json=None, exc=None): the first
    registered pattern that matches (re.search on the full URL) answers.
    exc may be a callable taking the request and returning an exception.
    """

    def __init__(self):
        self.routes = []
        self.requests = []

    def on(self, method, pattern, *, status=200, json=None, exc=None):
        self.routes.insert(0, (method.upper(), re.compile(pattern), status, json, exc))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, pattern, status, body, exc in self.routes:
            if request.method == method and pattern.search(str(request.url)):
                if exc is not None:
                    raise exc(request)
                return httpx.Response(status, json=body)
        return httpx.Response(404, json={"status": False, "message": "No route in fake provider"})

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture(scope='function')
def provider(app):
    fake = FakeProvider()
    app.config["GATEWAY_HTTP_TRANSPORT"] = httpx.MockTransport(fake.handler)
    yield fake
    app.config["GATEWAY_HTTP_TRANSPORT"] = None


def paystack_verify_body(reference="REF-1", amount_kobo=400000, status="success", currency="NGN"):
    return {
        "status": True,
        "message": "Verification successful",
        "data": {
            "reference": reference,
            "status": status,
            "amount": amount_kobo,
            "currency": currency,
            "gateway_response": "Successful" if status == "success" else "Declined",
        },
    }


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
