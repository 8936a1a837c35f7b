# Overview: Stock ledger; the only code path that changes Product.inventory.

"""
Inventory Invariants (authoritative)

- Every change to Product.inventory goes through adjust_stock(), which
  inserts one StockEvent and updates the product row in the same DB
  transaction. Either both are persisted or neither is.
- StockEvents are append-only and record the requested quantity verbatim
  and the floor that was applied.
- add:      inventory += quantity
- subtract: inventory -= quantity while inventory > quantity, otherwise the
            inventory is set to the call site's floor.
- Floors are per call site and configurable:
    manual adjustments  STOCK_FLOOR_MANUAL  (default 0)
    barcode scans       STOCK_FLOOR_BARCODE (default 1)
    order composition   STOCK_FLOOR_SALE    (default 0)
- The product row is locked (SELECT ... FOR UPDATE) for the
  read-modify-write; version_id turns a lost update into a retry on
  databases that ignore the lock.
"""

from __future__ import annotations

import logging
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ConsistencyError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Company, Product, StockEvent
from ..validation import require_positive_quantity
from .concurrency import lock_for_update, run_with_retry
from .tenant_service import require_company_record, scoped_query

logger = logging.getLogger(__name__)


class StockAdjustmentFailed(ConsistencyError):
    """The stock event insert or the inventory update failed; nothing was persisted."""


class ProductNotFound(NotFoundError):
    pass


STOCK_ACTION_ADD = "add"
STOCK_ACTION_SUBTRACT = "subtract"
VALID_STOCK_ACTIONS = (STOCK_ACTION_ADD, STOCK_ACTION_SUBTRACT)

FLOOR_MANUAL = "manual"
FLOOR_BARCODE = "barcode"
FLOOR_SALE = "sale"

_FLOOR_CONFIG_KEYS = {
    FLOOR_MANUAL: ("STOCK_FLOOR_MANUAL", 0),
    FLOOR_BARCODE: ("STOCK_FLOOR_BARCODE", 1),
    FLOOR_SALE: ("STOCK_FLOOR_SALE", 0),
}


def stock_floor(call_site: str) -> int:
    """Configured inventory floor for a call site ('manual', 'barcode', 'sale')."""
    try:
        key, default = _FLOOR_CONFIG_KEYS[call_site]
    except KeyError:
        raise ValueError(f"unknown stock floor call site: {call_site}")
    return int(current_app.config.get(key, default))


def apply_stock_action(current: int, action: str, quantity: int, floor: int) -> int:
    """Inventory after one ledger event. Pure; shared by adjust_stock and replay_inventory."""
    if action == STOCK_ACTION_ADD:
        return current + quantity
    if action == STOCK_ACTION_SUBTRACT:
        if current > quantity:
            return max(current - quantity, floor)
        return floor
    raise ValidationError(f"action must be one of {', '.join(VALID_STOCK_ACTIONS)}")


def replay_inventory(events: Iterable[StockEvent], floor: int | None = None, opening: int = 0) -> int:
    """
    Recompute inventory from ledger events in order (audit / reconciliation).

    Each event is replayed with the floor stored on it unless `floor`
    overrides it for every event.
    """
    inventory = opening
    for event in events:
        event_floor = event.floor if floor is None else floor
        inventory = apply_stock_action(inventory, event.action, event.quantity, event_floor)
    return inventory


def _validate_adjustment(action, quantity) -> tuple[str, int]:
    if action not in VALID_STOCK_ACTIONS:
        raise ValidationError(f"action must be one of {', '.join(VALID_STOCK_ACTIONS)}")
    return action, require_positive_quantity(quantity)


def _adjust_locked(product_id: int, action: str, quantity: int, comment: str | None, floor: int) -> StockEvent:
    product = (
        lock_for_update(db.session.query(Product).filter_by(id=product_id))
        .populate_existing()
        .one()
    )
    event = StockEvent(product_id=product.id, action=action, quantity=quantity, comment=comment, floor=floor)
    db.session.add(event)
    product.inventory = apply_stock_action(product.inventory, action, quantity, floor)
    db.session.flush()
    return event


def adjust_stock(
    product: Product,
    action: str,
    quantity,
    comment: str | None = None,
    *,
    floor: int | None = None,
    commit: bool = True,
) -> StockEvent:
    """
    Record a stock movement and update the product's inventory atomically.

    Args:
        product: Product to adjust (already resolved inside the caller's company)
        action: 'add' or 'subtract'
        quantity: positive integer
        comment: optional free text stored on the event
        floor: inventory floor for subtract; defaults to the manual floor
        commit: False when the caller owns the surrounding transaction
            (order composition); the caller then commits or rolls back.

    Raises:
        ValidationError: bad action or quantity (nothing written)
        StockAdjustmentFailed: storage failure (nothing written)
    """
    action, quantity = _validate_adjustment(action, quantity)
    if floor is None:
        floor = stock_floor(FLOOR_MANUAL)
    product_id = product.id

    if not commit:
        return _adjust_locked(product_id, action, quantity, comment, floor)

    def _op():
        event = _adjust_locked(product_id, action, quantity, comment, floor)
        db.session.commit()
        return event

    try:
        event = run_with_retry(_op)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Stock adjustment failed for product %s (%s %s)", product_id, action, quantity)
        raise StockAdjustmentFailed("Failed while updating your stocks, please try again later.") from exc

    logger.info(
        "Stock %s %s on product %s -> inventory %s",
        action, quantity, product_id, event.product.inventory,
    )
    return event


def adjust_product_stock(
    company: Company,
    product_uuid: str,
    *,
    action: str,
    quantity,
    comment: str | None = None,
) -> StockEvent:
    """Manual stock adjustment for a company product (manual floor)."""
    product = require_company_record(Product, company, product_uuid, error=ProductNotFound, label="Product")
    return adjust_stock(product, action, quantity, comment, floor=stock_floor(FLOOR_MANUAL))


def scan_barcode(
    company: Company,
    barcode: str,
    *,
    action: str,
    quantity=1,
    comment: str | None = None,
) -> StockEvent:
    """
    Adjust stock for the company product carrying `barcode`.

    Scans default to a quantity of one and subtract down to the barcode
    floor rather than the manual floor.
    """
    if not isinstance(barcode, str) or not barcode.strip():
        raise ValidationError("barcode is required")
    product = scoped_query(Product, company).filter(Product.barcode == barcode.strip()).first()
    if product is None:
        raise ProductNotFound("No product matches that barcode")
    if quantity is None:
        quantity = 1
    return adjust_stock(product, action, quantity, comment, floor=stock_floor(FLOOR_BARCODE))


def list_stock_events(
    company: Company,
    product_uuid: str,
    *,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Stock history for a product, newest first, paginated (default 10 per page)."""
    product = require_company_record(Product, company, product_uuid, error=ProductNotFound, label="Product")

    per_page = min(per_page or 10, 100)
    page = max(page or 1, 1)

    base_query = (
        db.session.query(StockEvent)
        .filter(StockEvent.product_id == product.id)
        .order_by(StockEvent.created_at.desc(), StockEvent.id.desc())
    )
    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    events = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [e.to_dict() for e in events],
        "count": len(events),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
