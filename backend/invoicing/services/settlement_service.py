# Overview: Checkout and payment settlement for (order, customer) pairs.

"""
Settlement Service

States for one (Order, Customer) pair:

    UNPAID --verify--> [VERIFYING] --success--> PAID
                            |
                            +--failure--> FAILED (retry-eligible, pivot stays unpaid)

VERIFYING is never persisted. PAID is the CustomerOrder pivot with
is_paid=True; paid_at is written once.

INVARIANTS:
- One PaymentTransaction per (reference, channel). Re-verifying a
  reference updates that row; it never inserts a second one.
- A stored reference belongs to exactly one customer and one order.
  Presenting it for anyone else is an AuthorizationError.
- The transaction upsert, the pivot update and the order freeze
  (is_fully_editable=False) commit together or not at all.
- A failed payment still commits its transaction row (audit) and then
  raises PaymentFailed.
- A provider error (GatewayError) happens before any write: nothing changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import AuthorizationError, ConflictError, ConsistencyError, InvoicingError, ValidationError
from ..extensions import db
from ..gateways import GatewayAdapter, GatewayTransaction, build_gateway
from ..models import Customer, CustomerOrder, Order, PaymentIntegration, PaymentTransaction
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .customer_service import CustomerNotFound
from .integration_service import resolve_integration
from .notification_service import notify_payment_completed
from .order_service import get_public_order
from .tenant_service import require_company_record

logger = logging.getLogger(__name__)


class PaymentFailed(InvoicingError):
    """The provider verified the reference but the payment did not succeed."""

    status_code = 402


@dataclass
class SettlementResult:
    order: Order
    customer: Customer
    customer_order: CustomerOrder
    transaction: PaymentTransaction
    newly_paid: bool


# =============================================================================
# HELPERS
# =============================================================================

def gateway_for(integration: PaymentIntegration) -> GatewayAdapter:
    return build_gateway(
        integration.name,
        integration.configuration,
        timeout=current_app.config.get("GATEWAY_TIMEOUT_SECONDS", 30),
        transport=current_app.config.get("GATEWAY_HTTP_TRANSPORT"),
    )


def callback_url(order: Order, channel: str, customer: Customer) -> str:
    base = current_app.config.get("PUBLIC_BASE_URL", "").rstrip("/")
    query = urlencode({"channel": channel, "customer": customer.uuid})
    return f"{base}/api/orders/{order.uuid}/verify-payment?{query}"


def _require_pivot(order: Order, customer: Customer) -> CustomerOrder:
    pivot = (
        db.session.query(CustomerOrder)
        .filter_by(order_id=order.id, customer_id=customer.id)
        .first()
    )
    if pivot is None:
        raise CustomerNotFound("This customer is not billed on this order")
    return pivot


def _resolve_checkout(order_uuid: str, channel: str | None, customer_uuid: str):
    order = get_public_order(order_uuid)
    integration = resolve_integration(order.company, channel)
    if not customer_uuid:
        raise ValidationError("A customer is required to pay for this order")
    customer = require_company_record(
        Customer, order.company, customer_uuid, error=CustomerNotFound, label="Customer"
    )
    pivot = _require_pivot(order, customer)
    return order, integration, customer, pivot


# =============================================================================
# INITIALIZE
# =============================================================================

def initialize_payment(order_uuid: str, channel: str | None, customer_uuid: str) -> str:
    """
    Start a checkout on the provider and return the URL to send the customer to.

    channel may be None, in which case the company's first configured
    gateway is used.
    """
    order, integration, customer, pivot = _resolve_checkout(order_uuid, channel, customer_uuid)
    if pivot.is_paid:
        raise ConflictError("This invoice has already been paid.")

    gateway = gateway_for(integration)
    url = gateway.initialize(order, customer, callback_url(order, gateway.channel, customer))
    logger.info("Initialized %s checkout for order %s customer %s", gateway.channel, order.uuid, customer.uuid)
    return url


# =============================================================================
# VERIFY / SETTLE
# =============================================================================

def _upsert_transaction(order: Order, customer: Customer, verified: GatewayTransaction) -> PaymentTransaction:
    """Find-or-create by (reference, channel) under lock, with the ownership check."""
    transaction = (
        lock_for_update(
            db.session.query(PaymentTransaction).filter_by(
                reference=verified.reference, channel=verified.channel
            )
        )
        .populate_existing()
        .first()
    )
    if transaction is not None:
        if transaction.customer_id != customer.id:
            raise AuthorizationError("This transaction does not belong to your account.")
        if transaction.order_id != order.id:
            raise AuthorizationError("This transaction does not belong to this order.")
    else:
        transaction = PaymentTransaction(
            order_id=order.id,
            customer_id=customer.id,
            channel=verified.channel,
            reference=verified.reference,
        )
        db.session.add(transaction)

    transaction.amount = verified.amount
    transaction.currency = verified.currency
    transaction.response_code = verified.response_code
    transaction.response_description = (verified.response_description or "")[:255] or None
    transaction.json_payload = verified.raw_payload
    # A success is never downgraded by a later, stale re-verification
    transaction.is_successful = bool(transaction.is_successful or verified.success)
    return transaction


def settle(order: Order, customer: Customer, verified: GatewayTransaction) -> SettlementResult:
    """
    Persist a verified provider result.

    Raises AuthorizationError (nothing written) or PaymentFailed (transaction
    written, pivot untouched).
    """
    order_id, customer_id = order.id, customer.id

    def _op():
        locked_order = db.session.get(Order, order_id)
        locked_customer = db.session.get(Customer, customer_id)
        transaction = _upsert_transaction(locked_order, locked_customer, verified)

        pivot = (
            lock_for_update(db.session.query(CustomerOrder).filter_by(order_id=order_id, customer_id=customer_id))
            .populate_existing()
            .one()
        )
        newly_paid = False
        if transaction.is_successful:
            if not pivot.is_paid:
                pivot.is_paid = True
                pivot.paid_at = utcnow()
                newly_paid = True
            locked_order.is_fully_editable = False

        db.session.commit()
        return SettlementResult(
            order=locked_order,
            customer=locked_customer,
            customer_order=pivot,
            transaction=transaction,
            newly_paid=newly_paid,
        )

    try:
        result = run_with_retry(_op, retry_on_conflict=True)
    except InvoicingError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Failed to record %s payment %s for order %s", verified.channel, verified.reference, order.uuid)
        raise ConsistencyError("Failed while trying to record the payment") from exc

    if not result.transaction.is_successful:
        logger.info(
            "Payment %s (%s) for order %s was not successful: %s",
            verified.reference, verified.channel, order.uuid, verified.response_description,
        )
        raise PaymentFailed("The payment transaction failed, try and make a successful payment to continue.")
    return result


def verify_payment(order_uuid: str, channel: str, customer_uuid: str, params) -> SettlementResult:
    """
    Handle the provider's redirect back to us.

    The channel is required: the callback URL built at initialisation always
    names the gateway the customer paid through.

    Order of checks: order, gateway configuration, customer (and its place
    on the order), callback reference, provider verification, persistence,
    then the notification. Only the first successful settlement notifies.
    """
    if not channel or not str(channel).strip():
        raise ValidationError("The payment channel is required to verify a payment.")
    order, integration, customer, _ = _resolve_checkout(order_uuid, channel, customer_uuid)
    gateway = gateway_for(integration)
    reference = gateway.reference_from_callback(params)

    verified = gateway.verify(reference, order)
    result = settle(order, customer, verified)

    if result.newly_paid:
        notify_payment_completed(result.order, result.customer, result.transaction)
    else:
        logger.info("Payment %s for order %s was already settled", reference, order.uuid)
    return result
