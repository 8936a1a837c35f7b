"""Paystack: amounts in kobo (minor units), bearer secret key."""

from __future__ import annotations

import json
import logging
from decimal import Decimal, ROUND_HALF_UP
from urllib.parse import quote

from ..errors import ValidationError
from ..money import TWO_PLACES
from .base import GatewayAdapter, GatewayTransaction, register_gateway

logger = logging.getLogger(__name__)

PAYSTACK_BASE_URL = "https://api.paystack.co"


@register_gateway
class PaystackGateway(GatewayAdapter):
    channel = "paystack"
    reference_param = "reference"

    def to_provider_units(self, amount) -> int:
        """Major units -> kobo."""
        return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.config_value('private_key')}",
            "Accept": "application/json",
        }

    def initialize(self, order, customer, callback_url: str) -> str:
        if not customer.email:
            raise ValidationError("The customer needs an email address to pay with Paystack.")
        payload = {
            "amount": self.to_provider_units(order.amount),
            "currency": order.currency,
            "email": customer.email,
            "callback_url": callback_url,
            "metadata": json.dumps({
                "cart_id": order.id,
                "custom_fields": [
                    {"display_name": "Paid via", "variable_name": "paid_via", "value": "Invoice"},
                ],
            }),
        }
        body = self.request_json(
            "POST", f"{PAYSTACK_BASE_URL}/transaction/initialize", json=payload, headers=self._headers()
        )
        data = body.get("data") or {}
        if not body.get("status") or not data.get("authorization_url"):
            raise self.fail(body.get("message") or "Paystack could not start the payment.", context={"order": order.uuid})
        return data["authorization_url"]

    def verify(self, reference: str, order) -> GatewayTransaction:
        """
        Verify `reference` with Paystack.

        SECURITY: The reference comes from the callback query string. It is
        sent as one escaped path segment, and the reference Paystack reports
        back must be the same one, otherwise a crafted reference could store
        someone else's payment under a fresh (reference, channel) key.
        """
        body = self.request_json(
            "GET", f"{PAYSTACK_BASE_URL}/transaction/verify/{quote(reference, safe='')}", headers=self._headers()
        )
        if not body.get("status"):
            raise self.fail(
                body.get("message") or "Paystack could not verify the payment.",
                context={"reference": reference, "order": order.uuid},
            )
        data = body.get("data") or {}
        if data.get("reference") != reference:
            raise self.fail(
                "Paystack verified a different transaction than the one requested.",
                context={"reference": reference, "reported": data.get("reference"), "order": order.uuid},
            )
        amount = (Decimal(data.get("amount") or 0) / 100).quantize(TWO_PLACES)
        currency = data.get("currency")
        description = data.get("gateway_response")

        success = data.get("status") == "success"
        if success and amount < Decimal(order.amount):
            success = False
            description = f"Amount paid ({amount}) is less than the order amount ({order.amount})"
        if success and currency and currency != order.currency:
            success = False
            description = f"Payment was made in {currency}, the order is in {order.currency}"

        return GatewayTransaction(
            channel=self.channel,
            reference=reference,
            success=success,
            amount=amount,
            currency=currency,
            response_code=data.get("status"),
            response_description=description,
            raw_payload=body,
        )
