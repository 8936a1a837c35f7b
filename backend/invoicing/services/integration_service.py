# Overview: Per-company payment gateway configuration.

from __future__ import annotations

import logging

from ..errors import ValidationError
from ..extensions import db
from ..gateways import GatewayNotConfigured, registered_channels
from ..models import Company, PaymentIntegration

logger = logging.getLogger(__name__)

INTEGRATION_TYPE_PAYMENT = "payment"
VALID_MODES = ("test", "live")


def _payment_integrations(company: Company):
    return (
        db.session.query(PaymentIntegration)
        .filter_by(company_id=company.id, type=INTEGRATION_TYPE_PAYMENT)
        .order_by(PaymentIntegration.id.asc())
    )


def list_integrations(company: Company) -> list[PaymentIntegration]:
    return _payment_integrations(company).all()


def resolve_integration(company: Company, channel: str | None = None) -> PaymentIntegration:
    """
    The company's integration for `channel`, or its first one when no
    channel is named. GatewayNotConfigured when there is none.
    """
    query = _payment_integrations(company)
    if channel:
        query = query.filter(PaymentIntegration.name == channel.strip().lower())
    integration = query.first()
    if integration is None:
        if channel:
            raise GatewayNotConfigured(f"This company has not configured the {channel} payment gateway.")
        raise GatewayNotConfigured("This company has not configured any payment gateway.")
    return integration


def configure_integration(company: Company, channel: str, payload: dict) -> PaymentIntegration:
    """
    Create or replace the company's configuration for one channel.

    Request body: {"private_key": "...", "public_key": "...", "mode": "live"}
    """
    channel = (channel or "").strip().lower()
    if channel not in registered_channels():
        raise ValidationError(
            f"Unsupported payment channel: {channel or '(none)'}. Use one of: {', '.join(registered_channels())}"
        )
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    private_key = (payload.get("private_key") or "").strip()
    if not private_key:
        raise ValidationError("private_key is required")
    public_key = (payload.get("public_key") or "").strip() or None
    mode = (payload.get("mode") or "live").strip().lower()
    if mode not in VALID_MODES:
        raise ValidationError("mode must be one of: test, live")

    integration = _payment_integrations(company).filter(PaymentIntegration.name == channel).first()
    if integration is None:
        integration = PaymentIntegration(company_id=company.id, type=INTEGRATION_TYPE_PAYMENT, name=channel)
        db.session.add(integration)
    integration.configuration = {"private_key": private_key, "public_key": public_key, "mode": mode}
    db.session.commit()

    logger.info("Configured %s integration for company %s (mode=%s)", channel, company.id, mode)
    return integration


def remove_integration(company: Company, channel: str) -> None:
    integration = resolve_integration(company, channel)
    db.session.delete(integration)
    db.session.commit()
