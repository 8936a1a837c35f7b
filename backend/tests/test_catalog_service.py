# Overview: Pytest coverage for products, currency prices and categories.

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from invoicing.errors import ConflictError, ValidationError
from invoicing.extensions import db
from invoicing.models import Product, ProductPrice, StockEvent
from invoicing.services import catalog_service, inventory_service
from invoicing.services.catalog_service import CategoryNotFound
from invoicing.services.inventory_service import ProductNotFound, StockAdjustmentFailed


class TestProducts:

    def test_create_with_opening_stock_and_prices(self, company_a):
        product = catalog_service.create_product(company_a, {
            "name": "Widget",
            "default_price": "1500",
            "inventory": 4,
            "prices": [{"currency": "usd", "price": 2.5}],
        })
        assert product.unit_price == Decimal("1500.00")
        assert product.inventory == 4
        assert [(p.currency, p.unit_price) for p in product.prices] == [("USD", Decimal("2.50"))]

        events = db.session.query(StockEvent).filter_by(product_id=product.id).all()
        assert [(e.action, e.quantity, e.comment) for e in events] == [("add", 4, "Opening stock")]

    def test_failed_opening_stock_leaves_no_product(self, company_a, monkeypatch):
        def failing(product_id, action, quantity, comment, floor):
            raise OperationalError("UPDATE products", {}, Exception("simulated failure"))

        monkeypatch.setattr(inventory_service, "_adjust_locked", failing)

        with pytest.raises(StockAdjustmentFailed):
            catalog_service.create_product(company_a, {"name": "Widget", "default_price": 10, "inventory": 5})

        assert db.session.query(Product).filter_by(name="Widget").count() == 0
        assert db.session.query(StockEvent).count() == 0

    def test_name_required(self, company_a):
        with pytest.raises(ValidationError):
            catalog_service.create_product(company_a, {"default_price": 10})

    def test_unknown_field_rejected(self, company_a):
        with pytest.raises(ValidationError):
            catalog_service.create_product(company_a, {"name": "X", "company_id": 99})

    def test_invalid_currency_rejected(self, company_a):
        with pytest.raises(ValidationError) as exc:
            catalog_service.create_product(company_a, {"name": "X", "prices": [{"currency": "XYZ", "price": 1}]})
        assert "not a valid ISO currency" in exc.value.message
        assert db.session.query(Product).count() == 0

    def test_barcode_unique(self, company_a, company_b, make_product):
        make_product(company_a, "A", 10, barcode="12345")
        with pytest.raises(ConflictError):
            make_product(company_b, "B", 10, barcode="12345")

    def test_barcode_max_length(self, company_a, make_product):
        with pytest.raises(ValidationError):
            make_product(company_a, "A", 10, barcode="1" * 26)

    def test_update_replaces_prices_and_collapses_duplicates(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100, prices=[
            {"currency": "USD", "price": 1},
            {"currency": "EUR", "price": 1},
        ])
        catalog_service.update_product(company_a, product.uuid, {"prices": [
            {"currency": "USD", "price": 3},
            {"currency": "GBP", "price": 2},
            {"currency": "usd", "price": 99},
        ]})
        rows = db.session.query(ProductPrice).filter_by(product_id=product.id).order_by(ProductPrice.currency).all()
        assert [(r.currency, r.unit_price) for r in rows] == [("GBP", Decimal("2.00")), ("USD", Decimal("3.00"))]

    def test_update_without_prices_keeps_them(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100, prices=[{"currency": "USD", "price": 1}])
        catalog_service.update_product(company_a, product.uuid, {"name": "Renamed"})
        assert len(db.session.get(Product, product.id).prices) == 1

    def test_update_rejected_prices_leave_existing(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100, prices=[{"currency": "USD", "price": 1}])
        with pytest.raises(ValidationError):
            catalog_service.update_product(company_a, product.uuid, {"prices": [{"currency": "ZZZ", "price": 1}]})
        assert [p.currency for p in db.session.get(Product, product.id).prices] == ["USD"]

    def test_inventory_not_writable_by_update(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100, inventory=2)
        with pytest.raises(ValidationError):
            catalog_service.update_product(company_a, product.uuid, {"inventory": 50})

    def test_soft_delete_hides_product(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100)
        catalog_service.delete_product(company_a, product.uuid)
        assert db.session.get(Product, product.id).deleted_at is not None
        with pytest.raises(ProductNotFound):
            catalog_service.get_product(company_a, product.uuid)

    def test_list_search_and_pagination(self, company_a, make_product):
        for name in ("Apple juice", "Banana", "Apple pie"):
            make_product(company_a, name, 10)
        result = catalog_service.list_products(company_a, search="apple")
        assert [p["name"] for p in result["items"]] == ["Apple juice", "Apple pie"]

        paged = catalog_service.list_products(company_a, page=2, per_page=2)
        assert paged["count"] == 1
        assert paged["pagination"]["total"] == 3


class TestPriceInCurrency:

    def test_override_wins(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100, prices=[{"currency": "USD", "price": 2}])
        assert catalog_service.price_in_currency(product, "USD", company_a) == Decimal("2.00")

    def test_company_currency_uses_default_price(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100)
        assert catalog_service.price_in_currency(product, "NGN", company_a) == Decimal("100.00")

    def test_missing_currency(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100)
        with pytest.raises(ValidationError):
            catalog_service.price_in_currency(product, "EUR", company_a)


class TestCategories:

    def test_add_remove_sync(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100)
        drinks = catalog_service.create_category(company_a, {"name": "Drinks"})
        snacks = catalog_service.create_category(company_a, {"name": "Snacks"})
        promo = catalog_service.create_category(company_a, {"name": "Promo"})

        catalog_service.add_categories(company_a, product.uuid, {"ids": [drinks.uuid, snacks.uuid]})
        assert {c.slug for c in product.categories} == {"drinks", "snacks"}

        catalog_service.remove_categories(company_a, product.uuid, {"id": drinks.uuid})
        assert {c.slug for c in product.categories} == {"snacks"}

        catalog_service.sync_categories(company_a, product.uuid, {"ids": [promo.uuid, drinks.uuid]})
        assert {c.slug for c in product.categories} == {"promo", "drinks"}

        listed = catalog_service.list_products(company_a, category_uuid=promo.uuid)
        assert [p["id"] for p in listed["items"]] == [product.uuid]

    def test_duplicate_category(self, company_a):
        catalog_service.create_category(company_a, {"name": "Drinks"})
        with pytest.raises(ConflictError):
            catalog_service.create_category(company_a, {"name": "drinks"})

    def test_other_company_category_not_found(self, company_a, company_b, make_product):
        product = make_product(company_a, "Widget", 100)
        theirs = catalog_service.create_category(company_b, {"name": "Theirs"})
        with pytest.raises(CategoryNotFound):
            catalog_service.add_categories(company_a, product.uuid, {"id": theirs.uuid})
        assert product.categories == []

    def test_delete_category_detaches(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100)
        drinks = catalog_service.create_category(company_a, {"name": "Drinks"})
        catalog_service.add_categories(company_a, product.uuid, {"id": drinks.uuid})
        catalog_service.delete_category(company_a, drinks.uuid)
        assert db.session.get(Product, product.id).categories == []
