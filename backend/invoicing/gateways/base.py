"""
Payment gateway adapters.

Each provider is one GatewayAdapter subclass registered under its channel
name. Adapters talk to the provider over httpx and hand back a
GatewayTransaction, the one shape the settlement code understands.

Amount units differ per provider (Paystack wants minor units, Rave major
units); each adapter states its own rule in to_provider_units().
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import httpx

from ..errors import GatewayError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class GatewayNotConfigured(NotFoundError):
    """The company has no integration for the requested channel."""


class PaymentCancelled(ValidationError):
    """The customer cancelled on the provider's page."""


@dataclass(frozen=True)
class GatewayTransaction:
    """Provider verification result, normalized."""
    channel: str
    reference: str
    success: bool
    amount: Decimal
    currency: str | None = None
    response_code: str | None = None
    response_description: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)


class GatewayAdapter(ABC):
    """
    Capability set every provider implements:

    - to_provider_units(amount): order amount in the provider's unit
    - initialize(order, customer, callback_url) -> redirect URL
    - verify(reference, order) -> GatewayTransaction
    - reference_from_callback(params): the reference in the provider's redirect
    """

    channel: str = ""
    reference_param: str = "reference"

    def __init__(
        self,
        configuration: dict | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.configuration = dict(configuration or {})
        self.timeout = timeout
        self.transport = transport

    # ---------------------------------------------------------------------
    # provider contract
    # ---------------------------------------------------------------------

    @abstractmethod
    def to_provider_units(self, amount: Decimal):
        raise NotImplementedError

    @abstractmethod
    def initialize(self, order, customer, callback_url: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def verify(self, reference: str, order) -> GatewayTransaction:
        raise NotImplementedError

    def reference_from_callback(self, params) -> str:
        reference = (params.get(self.reference_param) or "").strip()
        if not reference:
            raise ValidationError(f"No payment reference was provided by the {self.channel} payment gateway.")
        return reference

    # ---------------------------------------------------------------------
    # helpers
    # ---------------------------------------------------------------------

    def config_value(self, name: str, *, required: bool = True) -> str | None:
        value = self.configuration.get(name)
        if required and not value:
            raise GatewayNotConfigured(f"The {self.channel} integration is missing its {name}")
        return value

    @property
    def mode(self) -> str:
        mode = str(self.configuration.get("mode") or "").strip().lower()
        return mode if mode in ("test", "live") else "live"

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def request_json(self, method: str, url: str, **kwargs) -> dict:
        """
        Call the provider and return its JSON body.

        Timeouts, transport errors, non-JSON bodies and 5xx answers all
        become GatewayError. 4xx bodies are returned so the adapter can
        surface the provider's own message.
        """
        try:
            with self._client() as client:
                response = client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.error("%s %s timed out: %s", self.channel, url, exc)
            raise GatewayError("The payment provider took too long to respond. Please try again.", channel=self.channel) from exc
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", self.channel, url, exc)
            raise GatewayError("Could not reach the payment provider. Please try again.", channel=self.channel) from exc

        if response.status_code >= 500:
            logger.error("%s %s answered HTTP %s", self.channel, url, response.status_code)
            raise GatewayError(
                f"The payment provider is unavailable (HTTP {response.status_code}). Please try again.",
                channel=self.channel,
            )
        try:
            body = response.json()
        except ValueError as exc:
            logger.error("%s %s answered a non-JSON body (HTTP %s)", self.channel, url, response.status_code)
            raise GatewayError("The payment provider sent an unreadable response.", channel=self.channel) from exc
        if not isinstance(body, dict):
            raise GatewayError("The payment provider sent an unreadable response.", channel=self.channel)
        return body

    def fail(self, message: str, *, context: dict | None = None) -> GatewayError:
        logger.error("%s gateway error: %s %s", self.channel, message, context or {})
        return GatewayError(message, channel=self.channel)


# =============================================================================
# REGISTRY
# =============================================================================

_REGISTRY: dict[str, type[GatewayAdapter]] = {}


def register_gateway(cls: type[GatewayAdapter]) -> type[GatewayAdapter]:
    """Class decorator: make an adapter available under cls.channel."""
    if not cls.channel:
        raise ValueError(f"{cls.__name__} must define a channel name")
    _REGISTRY[cls.channel] = cls
    return cls


def registered_channels() -> list[str]:
    return sorted(_REGISTRY)


def get_gateway_class(channel: str) -> type[GatewayAdapter]:
    try:
        return _REGISTRY[channel]
    except KeyError:
        raise GatewayNotConfigured(f"Unsupported payment channel: {channel}")


def build_gateway(
    channel: str,
    configuration: dict | None,
    *,
    timeout: float = 30.0,
    transport: httpx.BaseTransport | None = None,
) -> GatewayAdapter:
    return get_gateway_class(channel)(configuration, timeout=timeout, transport=transport)
