"""Flutterwave Rave (v2 hosted pay): amounts in major units, public/secret key pair."""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from ..money import TWO_PLACES
from .base import GatewayAdapter, GatewayTransaction, PaymentCancelled, register_gateway

logger = logging.getLogger(__name__)

RAVE_PAY_ENDPOINTS = {
    "live": "https://api.ravepay.co/flwv3-pug/getpaidx/api/v2/hosted/pay",
    "test": "https://ravesandboxapi.flutterwave.com/flwv3-pug/getpaidx/api/v2/hosted/pay",
}

RAVE_VERIFY_ENDPOINTS = {
    "live": "https://api.ravepay.co/flwv3-pug/getpaidx/api/v2/verify",
    "test": "https://ravesandboxapi.flutterwave.com/flwv3-pug/getpaidx/api/v2/verify",
}

SUCCESS_CHARGE_CODES = ("00", "0")


@register_gateway
class RaveGateway(GatewayAdapter):
    channel = "rave"
    reference_param = "txref"

    def to_provider_units(self, amount) -> Decimal:
        """Rave takes the amount as-is, in major units."""
        return Decimal(amount).quantize(TWO_PLACES)

    def new_txref(self, customer) -> str:
        return f"{customer.id}-{uuid.uuid4().hex[:13]}"

    def reference_from_callback(self, params) -> str:
        if str(params.get("cancelled", "")).lower() == "true":
            raise PaymentCancelled("You cancelled the payment. You may try again at a later time.")
        return super().reference_from_callback(params)

    def initialize(self, order, customer, callback_url: str) -> str:
        payload = {
            "txref": self.new_txref(customer),
            "PBFPubKey": self.config_value("public_key"),
            "customer_email": customer.email,
            "amount": float(self.to_provider_units(order.amount)),
            "currency": order.currency,
            "redirect_url": callback_url,
        }
        body = self.request_json("POST", RAVE_PAY_ENDPOINTS[self.mode], json=payload)
        link = (body.get("data") or {}).get("link")
        if body.get("status") != "success" or not link:
            raise self.fail(body.get("message") or "Rave could not start the payment.", context={"order": order.uuid})
        return link

    def verify(self, reference: str, order) -> GatewayTransaction:
        payload = {"txref": reference, "SECKEY": self.config_value("private_key")}
        body = self.request_json("POST", RAVE_VERIFY_ENDPOINTS[self.mode], json=payload)
        if body.get("status") != "success":
            raise self.fail(
                body.get("message") or "Rave could not verify the payment.",
                context={"reference": reference, "order": order.uuid},
            )
        data = body.get("data") or {}
        if data.get("txref") not in (None, reference):
            raise self.fail(
                "Rave verified a different transaction than the one requested.",
                context={"reference": reference, "reported": data.get("txref"), "order": order.uuid},
            )
        amount = Decimal(str(data.get("amount") or 0)).quantize(TWO_PLACES)
        currency = data.get("currency")
        charge_code = str(data.get("chargecode") or "")
        description = data.get("chargemessage") or data.get("status")

        success = data.get("status") == "successful" and charge_code in SUCCESS_CHARGE_CODES
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
            response_code=charge_code or None,
            response_description=description,
            raw_payload=body,
        )
