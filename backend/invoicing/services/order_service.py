# Overview: Order composition, editing rules and reminder schedule.

"""
Order Invariants (authoritative)

- An order sells either one inline product (name/description/quantity/price)
  or a set of OrderItems, never both.
- OrderItems snapshot the product's price in the order currency when the
  order is composed; later price changes never reach them.
- Line-item resolution is all-or-nothing and strictly company-scoped.
- Composing line items takes stock out through inventory_service.adjust_stock
  (sale floor) inside the order's own transaction; re-composing restocks
  the previous items first.
- Lifecycle states and their editable fields are enumerated in
  EDITABLE_FIELDS. Once any customer has paid, writes to frozen fields are
  rejected, not ignored.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from ..errors import ConsistencyError, InvoicingError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Company, Customer, CustomerOrder, Order, OrderItem, PaymentTransaction, Product
from ..money import normalize_currency, to_amount
from ..time_utils import parse_iso_date, utcnow
from ..validation import coerce_bool, require_positive_quantity
from .catalog_service import price_in_currency
from .concurrency import lock_for_update
from .customer_service import CustomerNotFound
from .inventory_service import (
    FLOOR_SALE,
    ProductNotFound,
    STOCK_ACTION_ADD,
    STOCK_ACTION_SUBTRACT,
    adjust_stock,
    stock_floor,
)
from .tenant_service import require_company_record, scoped_query

logger = logging.getLogger(__name__)


class OrderNotFound(NotFoundError):
    pass


# =============================================================================
# LIFECYCLE STATES AND EDITABLE FIELDS
# =============================================================================

ORDER_STATE_OPEN = "open"        # nobody has paid yet
ORDER_STATE_SETTLED = "settled"  # at least one customer has paid

# Request key -> Order column. "products" maps to the OrderItem set.
ORDER_FIELD_MAP = {
    "title": "title",
    "description": "description",
    "currency": "currency",
    "amount": "amount",
    "enable_reminder": "reminder_on",
    "is_quote": "is_quote",
    "due_at": "due_at",
    "product.name": "product_name",
    "product.description": "product_description",
    "product.quantity": "quantity",
    "product.price": "unit_price",
    "products": "items",
}

EDITABLE_FIELDS = {
    ORDER_STATE_OPEN: frozenset(ORDER_FIELD_MAP),
    ORDER_STATE_SETTLED: frozenset({"title", "description", "enable_reminder", "is_quote", "due_at"}),
}


def order_state(order: Order) -> str:
    return ORDER_STATE_OPEN if order.is_fully_editable else ORDER_STATE_SETTLED


def editable_fields(order: Order) -> frozenset:
    return EDITABLE_FIELDS[order_state(order)]


# =============================================================================
# REQUEST PARSING
# =============================================================================

def _flatten_payload(payload: dict) -> dict:
    """{"product": {"name": "x"}} -> {"product.name": "x"}; unknown keys rejected."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    flat: dict = {}
    for key, value in payload.items():
        if key == "product":
            if value is None:
                continue
            if not isinstance(value, dict):
                raise ValidationError("product must be an object")
            for sub_key, sub_value in value.items():
                flat_key = f"product.{sub_key}"
                if flat_key not in ORDER_FIELD_MAP:
                    raise ValidationError(f"Field not allowed: {flat_key}")
                flat[flat_key] = sub_value
        elif key in ORDER_FIELD_MAP or key == "customers":
            flat[key] = value
        else:
            raise ValidationError(f"Field not allowed: {key}")
    return flat


def _has_inline_product(flat: dict) -> bool:
    return any(k.startswith("product.") for k in flat)


def _coerce_field(key: str, value):
    """Validate one flattened request value; returns the column value."""
    if key in ("title", "product.name"):
        if value is None or not str(value).strip():
            raise ValidationError(f"{key} is required")
        text = str(value).strip()
        if len(text) > 80:
            raise ValidationError(f"{key} exceeds max length 80")
        return text
    if key in ("description", "product.description"):
        return None if value is None else str(value).strip()
    if key == "currency":
        return normalize_currency(value)
    if key in ("amount", "product.price"):
        return to_amount(value, field=key)
    if key == "product.quantity":
        return require_positive_quantity(value, key)
    if key in ("enable_reminder", "is_quote"):
        return coerce_bool(key, value)
    if key == "due_at":
        if value is None or value == "":
            return None
        try:
            return parse_iso_date(str(value))
        except ValueError:
            raise ValidationError("due_at must be a date in the format YYYY-MM-DD")
    return value


# =============================================================================
# LINE-ITEM RESOLUTION
# =============================================================================

@dataclass(frozen=True)
class ResolvedItem:
    product: Product
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def _merge_requested(requested) -> list[tuple[str, int]]:
    if not isinstance(requested, list) or not requested:
        raise ValidationError("products must be a non-empty array")
    merged: dict[str, int] = {}
    for entry in requested:
        if not isinstance(entry, dict) or not entry.get("id"):
            raise ValidationError("each product requires an id and a quantity")
        quantity = require_positive_quantity(entry.get("quantity"), "products.quantity")
        product_id = str(entry["id"])
        merged[product_id] = merged.get(product_id, 0) + quantity
    return list(merged.items())


def resolve_order_items(company: Company, requested, currency: str) -> tuple[list[ResolvedItem], Decimal]:
    """
    Resolve [{"id": product uuid, "quantity": n}, ...] into priced items.

    Each item snapshots the product's price in `currency`. A repeated product
    id is merged into one item. Any unknown product (or one owned by another
    company) aborts the whole resolution with ProductNotFound.

    Returns (items, total) where total = sum(quantity * unit_price).
    """
    items: list[ResolvedItem] = []
    total = Decimal("0.00")
    for product_uuid, quantity in _merge_requested(requested):
        product = (
            scoped_query(Product, company)
            .filter(Product.uuid == product_uuid)
            .first()
        )
        if product is None:
            raise ProductNotFound(f"Product {product_uuid} not found")
        unit_price = price_in_currency(product, currency, company)
        item = ResolvedItem(product=product, quantity=quantity, unit_price=unit_price)
        items.append(item)
        total += item.line_total
    return items, total


def _take_stock(items, order: Order, action: str) -> None:
    comment = f"{'Order' if action == STOCK_ACTION_SUBTRACT else 'Order change'} {order.uuid}"
    floor = stock_floor(FLOOR_SALE)
    for item in items:
        adjust_stock(item.product, action, item.quantity, comment, floor=floor, commit=False)


def _replace_items(order: Order, resolved: list[ResolvedItem]) -> None:
    _take_stock(order.items, order, STOCK_ACTION_ADD)
    order.items.clear()
    db.session.flush()
    for item in resolved:
        order.items.append(
            OrderItem(product_id=item.product.id, product=item.product, quantity=item.quantity, unit_price=item.unit_price)
        )
    _take_stock(resolved, order, STOCK_ACTION_SUBTRACT)


def _reprice_items(company: Company, order: Order, currency: str) -> Decimal:
    """Re-snapshot every line item's price in a new order currency; stock is untouched."""
    total = Decimal("0.00")
    for item in order.items:
        item.unit_price = price_in_currency(item.product, currency, company)
        total += item.unit_price * item.quantity
    return total


def _clear_inline_product(order: Order) -> None:
    order.product_name = None
    order.product_description = None
    order.quantity = None
    order.unit_price = None


# =============================================================================
# CUSTOMERS ON AN ORDER
# =============================================================================

def _next_invoice_number(company: Company) -> str:
    locked = lock_for_update(db.session.query(Company).filter_by(id=company.id)).populate_existing().one()
    locked.invoice_sequence = (locked.invoice_sequence or 0) + 1
    return f"{locked.invoice_sequence:06d}"


def _attach_customers(company: Company, order: Order, customer_uuids) -> None:
    if customer_uuids is None:
        return
    if not isinstance(customer_uuids, list):
        raise ValidationError("customers must be an array of customer ids")
    for customer_uuid in dict.fromkeys(str(c) for c in customer_uuids):
        customer = require_company_record(Customer, company, customer_uuid, error=CustomerNotFound, label="Customer")
        order.customer_orders.append(
            CustomerOrder(customer_id=customer.id, customer=customer, invoice_number=_next_invoice_number(company))
        )


# =============================================================================
# CRUD
# =============================================================================

@contextmanager
def _order_write(action: str):
    """One DB transaction per order write; any failure leaves nothing behind."""
    try:
        yield
        db.session.commit()
    except InvoicingError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Failed to %s order", action)
        raise ConsistencyError(f"Failed while trying to {action} the order") from exc


def create_order(company: Company, payload: dict) -> Order:
    """
    Create an order from either an inline "product" or a "products" list.

    Request body:
    {
        "title": "...", "description": "...", "currency": "NGN",
        "amount": 4000,                      (optional; computed when omitted)
        "enable_reminder": 1, "due_at": "2026-12-01", "is_quote": 0,
        "product": {"name", "description", "quantity", "price"}   | or
        "products": [{"id": "<product uuid>", "quantity": 2}, ...],
        "customers": ["<customer uuid>", ...]
    }
    """
    flat = _flatten_payload(payload)
    if "products" in flat and _has_inline_product(flat):
        raise ValidationError("You cannot specify both the product and products key at the same time.")
    if "products" not in flat and not _has_inline_product(flat):
        raise ValidationError("Either product or products is required")

    values = {k: _coerce_field(k, v) for k, v in flat.items() if k not in ("products", "customers")}
    if "title" not in values:
        raise ValidationError("Missing required fields: title")
    currency = values.pop("currency", None) or company.currency
    if values.get("enable_reminder") and not values.get("due_at"):
        raise ValidationError(
            "Since you want to enable reminders, you need to set a due date (due_at) on this order as well."
        )

    order = Order(company_id=company.id, currency=currency, amount=Decimal("0.00"))
    for key, value in values.items():
        setattr(order, ORDER_FIELD_MAP[key], value)

    with _order_write("create"):
        db.session.add(order)
        db.session.flush()
        if "products" in flat:
            resolved, total = resolve_order_items(company, flat["products"], currency)
            _replace_items(order, resolved)
        else:
            if order.product_name is None:
                raise ValidationError("product.name is required")
            if order.unit_price is None:
                raise ValidationError("product.price is required")
            order.quantity = order.quantity or 1
            total = order.unit_price * order.quantity
        if "amount" not in values:
            order.amount = total
        _attach_customers(company, order, flat.get("customers"))

    logger.info("Created order %s for company %s amount=%s %s", order.uuid, company.id, order.amount, order.currency)
    return order


def get_order(company: Company, order_uuid: str) -> Order:
    return require_company_record(Order, company, order_uuid, error=OrderNotFound, label="Order")


def get_public_order(order_uuid: str) -> Order:
    """Order lookup for the unauthenticated checkout links (uuid is the capability)."""
    order = (
        db.session.query(Order)
        .filter(Order.uuid == str(order_uuid), Order.deleted_at.is_(None))
        .first()
    )
    if order is None:
        raise OrderNotFound("Order not found")
    return order


def list_orders(company: Company, *, page: int | None = None, per_page: int | None = None) -> dict:
    per_page = min(per_page or 20, 100)
    page = max(page or 1, 1)
    query = scoped_query(Order, company).order_by(Order.created_at.desc(), Order.id.desc())
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    orders = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [o.to_dict() for o in orders],
        "count": len(orders),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def update_order(company: Company, order_uuid: str, payload: dict) -> Order:
    """
    Update an order.

    Which fields may change is decided by the order's lifecycle state
    (EDITABLE_FIELDS). A frozen field in the request rejects the whole
    update with ValidationError; nothing is written.
    """
    flat = _flatten_payload(payload)
    if "customers" in flat:
        raise ValidationError("Field not allowed: customers")
    order = get_order(company, order_uuid)

    frozen = sorted(k for k in flat if k not in editable_fields(order))
    if frozen:
        raise ValidationError(
            "These fields can no longer be changed because a customer has paid for this order: "
            + ", ".join(frozen)
        )
    if "products" in flat and _has_inline_product(flat):
        raise ValidationError("You cannot specify both the product and products key at the same time.")

    values = {k: _coerce_field(k, v) for k, v in flat.items() if k != "products"}
    if values.get("enable_reminder") and order.due_at is None and "due_at" not in values:
        raise ValidationError(
            "Since you want to enable reminders, you need to set a due date (due_at) on this order as well."
        )

    with _order_write("update"):
        for key, value in values.items():
            setattr(order, ORDER_FIELD_MAP[key], value)

        total = Decimal("0.00")
        if any(k.startswith("product.") for k in values):
            # Switching to (or editing) the inline product drops any line items
            if order.product_name is None:
                raise ValidationError("product.name is required")
            if order.unit_price is None:
                raise ValidationError("product.price is required")
            order.quantity = order.quantity or 1
            total = order.unit_price * order.quantity
            if order.items:
                _take_stock(order.items, order, STOCK_ACTION_ADD)
                order.items.clear()
        elif "products" in flat:
            resolved, total = resolve_order_items(company, flat["products"], order.currency)
            _replace_items(order, resolved)
            _clear_inline_product(order)
        elif "currency" in values and order.items:
            total = _reprice_items(company, order, order.currency)
        if total > 0 and "amount" not in values:
            order.amount = total

    return order


def delete_order(company: Company, order_uuid: str) -> dict:
    """
    Delete an order and return its last representation.

    Orders nobody has paid (and with no transaction on record) are removed
    outright and their line items restocked; otherwise the order is soft-deleted.
    """
    order = get_order(company, order_uuid)
    paid_count = sum(1 for co in order.customer_orders if co.is_paid)
    has_transactions = (
        db.session.query(PaymentTransaction.id).filter_by(order_id=order.id).first() is not None
    )
    snapshot = order.to_dict()

    with _order_write("delete"):
        if paid_count == 0 and not has_transactions:
            _take_stock(order.items, order, STOCK_ACTION_ADD)
            db.session.delete(order)
        else:
            order.deleted_at = utcnow()

    logger.info("Deleted order %s (soft=%s)", snapshot["id"], paid_count > 0 or has_transactions)
    return snapshot


# =============================================================================
# REMINDERS
# =============================================================================

REMINDER_INTERVAL_DAYS = 4


def reminder_dates(order: Order, today: date) -> list[date]:
    """
    Days from `today` to the due date (inclusive) on which a reminder goes out.

    While REMINDER_INTERVAL_DAYS or more days remain, only every fourth day
    counted from the order's creation date; every day after that.
    """
    if order.due_at is None:
        raise NotFoundError(
            "This order does not have a due date set, and so does not support reminders. "
            "You can update the order and set a due date on it."
        )
    if not order.reminder_on:
        raise NotFoundError(
            "Reminders are turned off for this order even though it has a due date set. "
            "You can turn reminders on by setting enable_reminder to 1."
        )

    created_on = (order.created_at or utcnow()).date()
    dates: list[date] = []
    current = today
    while current <= order.due_at:
        days_to_due = (order.due_at - current).days
        days_since_creation = abs((current - created_on).days)
        if days_to_due >= REMINDER_INTERVAL_DAYS and days_since_creation % REMINDER_INTERVAL_DAYS != 0:
            current += timedelta(days=1)
            continue
        dates.append(current)
        current += timedelta(days=1)
    return dates
