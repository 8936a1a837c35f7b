# Overview: Notifications to company users (currently: invoice paid).

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Customer, Notification, Order, PaymentTransaction, User
from ..money import money_str

logger = logging.getLogger(__name__)

KIND_INVOICE_PAID = "invoice_paid"


def payment_recipients(order: Order) -> list[User]:
    """The company's primary user: the first one on record."""
    users = [u for u in order.company.users if u.is_active]
    return users[:1]


def notify_payment_completed(order: Order, customer: Customer, transaction: PaymentTransaction) -> list[Notification]:
    """
    Record an "invoice paid" notification for each recipient.

    Fire-and-forget: a failure here is logged and never undoes the payment,
    which is already committed by the time this runs.
    """
    try:
        recipients = payment_recipients(order)
        if not recipients:
            logger.warning("No user to notify about payment of order %s", order.uuid)
            return []

        payload = {
            "order_id": order.uuid,
            "order_title": order.title,
            "customer_id": customer.uuid,
            "customer_name": " ".join(p for p in (customer.firstname, customer.lastname) if p),
            "amount": money_str(transaction.amount),
            "currency": transaction.currency or order.currency,
            "channel": transaction.channel,
            "reference": transaction.reference,
        }
        notifications = [
            Notification(company_id=order.company_id, user_id=user.id, kind=KIND_INVOICE_PAID, payload=payload)
            for user in recipients
        ]
        db.session.add_all(notifications)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to record payment notification for order %s", order.uuid)
        return []

    logger.info(
        "Order %s paid by customer %s via %s (%s); notified %d user(s)",
        order.uuid, customer.uuid, transaction.channel, transaction.reference, len(notifications),
    )
    return notifications


def list_notifications(user: User, *, unread_only: bool = False) -> list[Notification]:
    query = db.session.query(Notification).filter_by(user_id=user.id, company_id=user.company_id)
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
