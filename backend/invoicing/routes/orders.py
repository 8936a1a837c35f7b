# Overview: Flask API routes for orders, reminders and checkout.

# backend/invoicing/routes/orders.py
"""
Order API Routes

MULTI-TENANT: CRUD and reminder routes require a bearer token and act on
g.company only.

CHECKOUT: /pay and /verify-payment are the customer-facing links sent
with an invoice. They are not token-protected; the order id, the
customer id and the provider's own verification are what authorize them.

FLOW:
1. GET /api/orders/<id>/pay?channel=paystack&customer=<customer id>
   -> 302 to the provider (or JSON with the URL when return_payment_url=1)
2. provider redirects to GET /api/orders/<id>/verify-payment?channel=..&customer=..&reference=..
   -> settlement, JSON result
"""

from flask import Blueprint, g, redirect, request

from ..decorators import require_auth
from ..errors import ValidationError
from ..services import order_service, settlement_service
from ..time_utils import parse_iso_date, to_iso_date, today
from ..validation import coerce_bool
from ._helpers import handle_errors, json_body, page_args

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


# =============================================================================
# ORDER CRUD
# =============================================================================

@orders_bp.get("")
@require_auth
@handle_errors("list orders")
def list_orders_route():
    page, per_page = page_args()
    return order_service.list_orders(g.company, page=page, per_page=per_page)


@orders_bp.post("")
@require_auth
@handle_errors("create order")
def create_order_route():
    """See order_service.create_order for the request body."""
    return order_service.create_order(g.company, json_body()).to_dict(), 201


@orders_bp.get("/<order_id>")
@require_auth
@handle_errors("get order")
def get_order_route(order_id: str):
    return order_service.get_order(g.company, order_id).to_dict()


@orders_bp.put("/<order_id>")
@require_auth
@handle_errors("update order")
def update_order_route(order_id: str):
    """
    Partial update. Once a customer has paid, only title, description,
    enable_reminder, is_quote and due_at may be sent; anything else is a 400.
    """
    return order_service.update_order(g.company, order_id, json_body()).to_dict()


@orders_bp.delete("/<order_id>")
@require_auth
@handle_errors("delete order")
def delete_order_route(order_id: str):
    return order_service.delete_order(g.company, order_id)


@orders_bp.get("/<order_id>/reminders")
@require_auth
@handle_errors("list order reminders")
def order_reminders_route(order_id: str):
    """Query params: from (ISO date, optional; defaults to today)."""
    order = order_service.get_order(g.company, order_id)
    raw_from = request.args.get("from")
    try:
        start = parse_iso_date(raw_from) if raw_from else today()
    except ValueError:
        raise ValidationError("from must be a date (YYYY-MM-DD)")
    dates = order_service.reminder_dates(order, start)
    return {"order_id": order.uuid, "due_at": to_iso_date(order.due_at), "dates": [to_iso_date(d) for d in dates]}


# =============================================================================
# CHECKOUT
# =============================================================================

@orders_bp.get("/<order_id>/pay")
@handle_errors("initialize payment")
def pay_order_route(order_id: str):
    """
    Query params:
    - customer: customer id (required)
    - channel: paystack | rave (optional; the company's first gateway otherwise)
    - return_payment_url: 1 to get {"payment_url": ...} instead of a redirect
    """
    url = settlement_service.initialize_payment(
        order_id, request.args.get("channel"), request.args.get("customer")
    )
    if coerce_bool("return_payment_url", request.args.get("return_payment_url", "0")):
        return {"payment_url": url}
    return redirect(url)


@orders_bp.get("/<order_id>/verify-payment")
@handle_errors("verify payment")
def verify_payment_route(order_id: str):
    """
    Provider callback.

    Query params:
    - channel, customer: required; the callback URL built by /pay carries both
    - provider-specific params (reference, txref, cancelled) pass through
    """
    result = settlement_service.verify_payment(
        order_id, request.args.get("channel"), request.args.get("customer"), request.args
    )
    return {
        "message": "Payment successful." if result.newly_paid else "This payment was already recorded.",
        "order": result.order.to_dict(),
        "customer_order": result.customer_order.to_dict(),
        "transaction": result.transaction.to_dict(),
    }
