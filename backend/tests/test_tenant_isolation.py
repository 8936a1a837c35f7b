# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-company access is denied for core resources.

These tests create two companies, each with its own user and token, then
verify that:
1. Company A cannot read or write Company B's data
2. Cross-company lookups answer 404, exactly like missing rows
3. Lists only ever contain the caller's own rows
"""

import pytest

from invoicing.errors import NotFoundError
from invoicing.extensions import db
from invoicing.models import Product
from invoicing.services import catalog_service, order_service
from invoicing.services.tenant_service import (
    get_company_by_uuid,
    require_company_record,
    require_company_records,
    scoped_query,
)


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_require_company_record_own(self, company_a, make_product):
        product = make_product(company_a, "Mine", 10)
        assert require_company_record(Product, company_a, product.uuid).id == product.id

    def test_require_company_record_cross_tenant(self, company_a, company_b, make_product):
        product = make_product(company_b, "Theirs", 10)
        with pytest.raises(NotFoundError):
            require_company_record(Product, company_a, product.uuid)

    def test_require_company_records_drops_foreign_ids(self, company_a, company_b, make_product):
        mine = make_product(company_a, "Mine", 10)
        theirs = make_product(company_b, "Theirs", 10)
        found = require_company_records(Product, company_a, [mine.uuid, theirs.uuid])
        assert [p.id for p in found] == [mine.id]

    def test_scoped_query_hides_deleted(self, company_a, make_product):
        product = make_product(company_a, "Gone", 10)
        catalog_service.delete_product(company_a, product.uuid)
        assert scoped_query(Product, company_a).count() == 0
        assert scoped_query(Product, company_a, include_deleted=True).count() == 1

    def test_inactive_company_not_found(self, company_a):
        company_a.is_active = False
        db.session.commit()
        with pytest.raises(NotFoundError):
            get_company_by_uuid(company_a.uuid)


class TestCrossTenantApi:

    def test_products(self, client, headers_a, company_b, make_product):
        theirs = make_product(company_b, "Theirs", 10, inventory=3)

        assert client.get(f"/api/products/{theirs.uuid}", headers=headers_a).status_code == 404
        assert client.put(f"/api/products/{theirs.uuid}", json={"name": "Mine"}, headers=headers_a).status_code == 404
        assert client.delete(f"/api/products/{theirs.uuid}", headers=headers_a).status_code == 404
        response = client.post(
            f"/api/products/{theirs.uuid}/stocks", json={"action": "subtract", "quantity": 1}, headers=headers_a
        )
        assert response.status_code == 404
        assert client.get("/api/products", headers=headers_a).json["items"] == []

        db.session.expire_all()
        fresh = db.session.get(Product, theirs.id)
        assert fresh.name == "Theirs"
        assert fresh.inventory == 3
        assert fresh.deleted_at is None

    def test_orders(self, client, headers_a, company_b):
        theirs = order_service.create_order(company_b, {"title": "Theirs", "product": {"name": "X", "price": 1}})
        assert client.get(f"/api/orders/{theirs.uuid}", headers=headers_a).status_code == 404
        assert client.delete(f"/api/orders/{theirs.uuid}", headers=headers_a).status_code == 404
        assert client.get("/api/orders", headers=headers_a).json["items"] == []

    def test_categories_and_customers(self, client, headers_a, headers_b):
        client.post("/api/categories", json={"name": "B only"}, headers=headers_b)
        client.post("/api/customers", json={"firstname": "Bee", "email": "bee@x.test"}, headers=headers_b)

        assert client.get("/api/categories", headers=headers_a).json["count"] == 0
        assert client.get("/api/customers", headers=headers_a).json["count"] == 0
        assert client.get("/api/categories", headers=headers_b).json["count"] == 1

    def test_same_customer_email_in_two_companies(self, client, headers_a, headers_b):
        payload = {"firstname": "Ada", "email": "ada@x.test"}
        assert client.post("/api/customers", json=payload, headers=headers_a).status_code == 201
        assert client.post("/api/customers", json=payload, headers=headers_b).status_code == 201
        assert client.post("/api/customers", json=payload, headers=headers_a).status_code == 409
