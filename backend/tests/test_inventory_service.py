# Overview: Pytest coverage for the stock ledger.

"""
Inventory Ledger Tests

- Inventory never goes below the call site's floor
- Every adjustment records exactly one StockEvent with the requested quantity
- Replaying the ledger reproduces the inventory column
- A failed adjustment leaves neither an event nor an inventory change
"""

import pytest
from sqlalchemy.exc import IntegrityError

from invoicing.extensions import db
from invoicing.models import Product, StockEvent
from invoicing.services import inventory_service
from invoicing.services.inventory_service import (
    ProductNotFound,
    StockAdjustmentFailed,
    adjust_product_stock,
    apply_stock_action,
    list_stock_events,
    replay_inventory,
    scan_barcode,
)
from invoicing.validation import ValidationError


def _events(product):
    return db.session.query(StockEvent).filter_by(product_id=product.id).order_by(StockEvent.id).all()


class TestApplyStockAction:

    @pytest.mark.parametrize(
        "current,action,quantity,floor,expected",
        [
            (5, "add", 3, 0, 8),
            (5, "subtract", 3, 0, 2),
            (2, "subtract", 10, 0, 0),
            (3, "subtract", 3, 0, 0),
            (3, "subtract", 5, 1, 1),
            (10, "subtract", 9, 1, 1),
            (0, "subtract", 1, 0, 0),
        ],
    )
    def test_transitions(self, current, action, quantity, floor, expected):
        assert apply_stock_action(current, action, quantity, floor) == expected

    def test_unknown_action(self):
        with pytest.raises(ValidationError):
            apply_stock_action(1, "steal", 1, 0)


class TestAdjustStock:

    def test_subtract_then_clamp_at_zero(self, company_a, make_product):
        """5 -> subtract 3 -> 2 -> subtract 10 -> 0; the ledger keeps the requested 10."""
        product = make_product(company_a, "Widget", 100, inventory=5)

        event = adjust_product_stock(company_a, product.uuid, action="subtract", quantity=3)
        assert event.action == "subtract"
        assert event.quantity == 3
        assert db.session.get(Product, product.id).inventory == 2

        event = adjust_product_stock(company_a, product.uuid, action="subtract", quantity=10)
        assert event.quantity == 10
        assert db.session.get(Product, product.id).inventory == 0

        actions = [(e.action, e.quantity) for e in _events(product)]
        assert actions == [("add", 5), ("subtract", 3), ("subtract", 10)]

    def test_add(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100)
        adjust_product_stock(company_a, product.uuid, action="add", quantity=7, comment="Delivery")
        assert db.session.get(Product, product.id).inventory == 7
        assert _events(product)[-1].comment == "Delivery"

    def test_manual_floor_is_configurable(self, app, company_a, make_product, monkeypatch):
        monkeypatch.setitem(app.config, "STOCK_FLOOR_MANUAL", 2)
        product = make_product(company_a, "Widget", 100, inventory=5)
        adjust_product_stock(company_a, product.uuid, action="subtract", quantity=10)
        assert db.session.get(Product, product.id).inventory == 2

    @pytest.mark.parametrize("quantity", [0, -1, "abc", None, 1.5])
    def test_invalid_quantity_writes_nothing(self, company_a, make_product, quantity):
        product = make_product(company_a, "Widget", 100, inventory=4)
        with pytest.raises(ValidationError):
            adjust_product_stock(company_a, product.uuid, action="subtract", quantity=quantity)
        assert len(_events(product)) == 1
        assert db.session.get(Product, product.id).inventory == 4

    def test_invalid_action_writes_nothing(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100, inventory=4)
        with pytest.raises(ValidationError):
            adjust_product_stock(company_a, product.uuid, action="remove", quantity=1)
        assert len(_events(product)) == 1

    def test_storage_failure_rolls_back_event_and_inventory(self, company_a, make_product, monkeypatch):
        product = make_product(company_a, "Widget", 100, inventory=4)

        def failing(product_id, action, quantity, comment, floor):
            db.session.add(StockEvent(product_id=product_id, action=action, quantity=quantity, comment=comment))
            db.session.flush()
            raise IntegrityError("UPDATE products", {}, Exception("simulated failure"))

        monkeypatch.setattr(inventory_service, "_adjust_locked", failing)

        with pytest.raises(StockAdjustmentFailed):
            adjust_product_stock(company_a, product.uuid, action="subtract", quantity=2)

        assert len(_events(product)) == 1
        assert db.session.get(Product, product.id).inventory == 4

    def test_other_company_product_not_found(self, company_a, company_b, make_product):
        product_b = make_product(company_b, "Theirs", 100, inventory=4)
        with pytest.raises(ProductNotFound):
            adjust_product_stock(company_a, product_b.uuid, action="subtract", quantity=1)
        assert db.session.get(Product, product_b.id).inventory == 4


class TestLedgerConsistency:

    def test_replay_matches_inventory_after_interleaving(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100, inventory=3)
        sequence = [
            ("subtract", 1), ("add", 4), ("subtract", 10), ("add", 2),
            ("subtract", 2), ("subtract", 1), ("add", 9), ("subtract", 3),
        ]
        for action, quantity in sequence:
            adjust_product_stock(company_a, product.uuid, action=action, quantity=quantity)
            inventory = db.session.get(Product, product.id).inventory
            assert inventory >= 0
            assert replay_inventory(_events(product)) == inventory

    def test_barcode_ledger_replays_with_barcode_floor(self, company_a, make_product):
        product = make_product(company_a, "Scanned", 100, inventory=6, barcode="SCAN-0001")
        for quantity in (2, 5, 1, 1):
            scan_barcode(company_a, "SCAN-0001", action="subtract", quantity=quantity)
        inventory = db.session.get(Product, product.id).inventory
        assert inventory == 1
        assert replay_inventory(_events(product), floor=1) == inventory

    def test_mixed_call_sites_replay_with_stored_floors(self, company_a, make_product):
        product = make_product(company_a, "Mixed", 100, barcode="MIX-0001")
        adjust_product_stock(company_a, product.uuid, action="add", quantity=1)
        adjust_product_stock(company_a, product.uuid, action="subtract", quantity=1)
        scan_barcode(company_a, "MIX-0001", action="subtract", quantity=1)
        adjust_product_stock(company_a, product.uuid, action="add", quantity=3)
        adjust_product_stock(company_a, product.uuid, action="subtract", quantity=9)

        events = _events(product)
        assert [e.floor for e in events] == [0, 0, 1, 0, 0]
        assert db.session.get(Product, product.id).inventory == 0
        assert replay_inventory(events) == 0

        scan_barcode(company_a, "MIX-0001", action="subtract", quantity=1)
        assert db.session.get(Product, product.id).inventory == 1
        assert replay_inventory(_events(product)) == 1


class TestBarcodeScan:

    def test_scan_subtract_stops_at_one(self, company_a, make_product):
        product = make_product(company_a, "Scanned", 100, inventory=3, barcode="0123456789")
        event = scan_barcode(company_a, "0123456789", action="subtract", quantity=5)
        assert event.quantity == 5
        assert db.session.get(Product, product.id).inventory == 1

    def test_scan_defaults_to_one(self, company_a, make_product):
        product = make_product(company_a, "Scanned", 100, inventory=3, barcode="0123456789")
        scan_barcode(company_a, "0123456789", action="add", quantity=None)
        assert db.session.get(Product, product.id).inventory == 4

    def test_unknown_barcode(self, company_a, company_b, make_product):
        make_product(company_b, "Theirs", 100, inventory=3, barcode="B-ONLY")
        with pytest.raises(ProductNotFound):
            scan_barcode(company_a, "B-ONLY", action="subtract")

    def test_blank_barcode(self, company_a):
        with pytest.raises(ValidationError):
            scan_barcode(company_a, "  ", action="subtract")


class TestStockHistory:

    def test_newest_first_and_paginated(self, company_a, make_product):
        product = make_product(company_a, "Widget", 100, inventory=1)
        for quantity in range(1, 13):
            adjust_product_stock(company_a, product.uuid, action="add", quantity=quantity)

        first = list_stock_events(company_a, product.uuid)
        assert first["count"] == 10
        assert first["pagination"]["total"] == 13
        assert first["pagination"]["has_next"] is True
        assert first["items"][0]["quantity"] == 12

        second = list_stock_events(company_a, product.uuid, page=2)
        assert second["count"] == 3
        assert second["items"][-1]["comment"] == "Opening stock"
