# Overview: Threaded tests for the locked write paths against a file-backed SQLite app.

"""
Concurrency Tests

- Concurrent stock adjustments on one product never lose an update
- Concurrent first verifications of one reference leave one transaction
  and mark the customer paid exactly once
- Concurrent re-verifications of a failed payment settle exactly once

Each test builds its own app on a SQLite file so worker threads get real,
separate connections. A worker that exhausts its retries must leave
nothing behind; the ledger and pivot checks below hold either way.
"""

import threading

import httpx
import pytest

from invoicing import create_app
from invoicing.errors import ConsistencyError
from invoicing.extensions import db
from invoicing.models import (
    Company,
    CustomerOrder,
    Notification,
    PaymentTransaction,
    Product,
    StockEvent,
    User,
)
from invoicing.services import catalog_service, customer_service, integration_service, order_service
from invoicing.services.inventory_service import StockAdjustmentFailed, adjust_product_stock, replay_inventory
from invoicing.services.settlement_service import PaymentFailed, verify_payment

from conftest import FakeProvider, paystack_verify_body

THREADS = 4
ROUNDS = 25
OPENING_STOCK = 1000


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"timeout": 30}},
        'PUBLIC_BASE_URL': 'https://invoices.test',
        'LOG_LEVEL': 'WARNING',
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def seeded(file_app):
    """Company with an owner, a stocked product, a customer on an order, and Paystack configured."""
    with file_app.app_context():
        company = Company(name="Concurrency Ltd", currency="NGN", is_active=True)
        db.session.add(company)
        db.session.flush()
        db.session.add(User(company_id=company.id, email="owner@concurrency.test", first_name="Owner"))
        db.session.commit()

        product = catalog_service.create_product(company, {
            "name": "Concurrent Widget", "default_price": 100, "inventory": OPENING_STOCK,
        })
        customer = customer_service.create_customer(company, {
            "firstname": "Ada", "lastname": "Test", "email": "ada@concurrency.test",
        })
        order = order_service.create_order(company, {
            "title": "Concurrent invoice",
            "product": {"name": "Consulting", "quantity": 2, "price": 2000},
            "customers": [customer.uuid],
        })
        integration_service.configure_integration(
            company, "paystack", {"private_key": "sk_test_concurrency", "mode": "test"}
        )
        ids = {
            "company_id": company.id,
            "product_id": product.id,
            "product_uuid": product.uuid,
            "customer_id": customer.id,
            "customer_uuid": customer.uuid,
            "order_id": order.id,
            "order_uuid": order.uuid,
        }
        db.session.remove()
    return ids


@pytest.fixture
def file_provider(file_app):
    fake = FakeProvider()
    file_app.config["GATEWAY_HTTP_TRANSPORT"] = httpx.MockTransport(fake.handler)
    return fake


def _run_threads(target, count=THREADS):
    barrier = threading.Barrier(count)

    def runner():
        barrier.wait()
        target()

    threads = [threading.Thread(target=runner) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()


class TestConcurrentStockAdjustments:

    def test_concurrent_subtracts_lose_no_update(self, file_app, seeded):
        applied = []
        dropped = []
        errors = []
        lock = threading.Lock()

        def worker():
            with file_app.app_context():
                try:
                    company = db.session.get(Company, seeded["company_id"])
                    for _ in range(ROUNDS):
                        try:
                            adjust_product_stock(company, seeded["product_uuid"], action="subtract", quantity=1)
                            with lock:
                                applied.append(1)
                        except StockAdjustmentFailed:
                            with lock:
                                dropped.append(1)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        _run_threads(worker)

        assert errors == []
        assert len(applied) + len(dropped) == THREADS * ROUNDS
        assert applied

        with file_app.app_context():
            inventory = db.session.get(Product, seeded["product_id"]).inventory
            events = (
                db.session.query(StockEvent)
                .filter_by(product_id=seeded["product_id"])
                .order_by(StockEvent.id)
                .all()
            )
            assert inventory == OPENING_STOCK - len(applied)
            assert len(events) == len(applied) + 1
            assert replay_inventory(events) == inventory


class TestConcurrentSettlement:

    def _settle_concurrently(self, file_app, seeded):
        outcomes = []
        errors = []
        lock = threading.Lock()

        def worker():
            with file_app.app_context():
                try:
                    result = verify_payment(
                        seeded["order_uuid"], "paystack", seeded["customer_uuid"], {"reference": "REF-1"}
                    )
                    with lock:
                        outcomes.append(result.newly_paid)
                except ConsistencyError:
                    with lock:
                        outcomes.append(None)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        _run_threads(worker)
        return outcomes, errors

    def _assert_settled_once(self, file_app, seeded, outcomes, errors):
        assert errors == []
        assert outcomes.count(True) == 1

        with file_app.app_context():
            transactions = db.session.query(PaymentTransaction).all()
            assert [(t.reference, t.customer_id, t.is_successful) for t in transactions] == [
                ("REF-1", seeded["customer_id"], True)
            ]
            pivot = (
                db.session.query(CustomerOrder)
                .filter_by(order_id=seeded["order_id"], customer_id=seeded["customer_id"])
                .one()
            )
            assert pivot.is_paid is True
            assert pivot.paid_at is not None
            assert db.session.query(Notification).count() == 1

    def test_concurrent_first_verifications(self, file_app, seeded, file_provider):
        file_provider.on("GET", r"/transaction/verify/REF-1$", json=paystack_verify_body("REF-1"))

        outcomes, errors = self._settle_concurrently(file_app, seeded)

        self._assert_settled_once(file_app, seeded, outcomes, errors)

    def test_concurrent_reverifications_after_failure(self, file_app, seeded, file_provider):
        file_provider.on("GET", r"/transaction/verify/REF-1$", json=paystack_verify_body("REF-1", status="failed"))
        with file_app.app_context():
            with pytest.raises(PaymentFailed):
                verify_payment(seeded["order_uuid"], "paystack", seeded["customer_uuid"], {"reference": "REF-1"})
            db.session.remove()

        file_provider.on("GET", r"/transaction/verify/REF-1$", json=paystack_verify_body("REF-1"))
        outcomes, errors = self._settle_concurrently(file_app, seeded)

        self._assert_settled_once(file_app, seeded, outcomes, errors)
