from .base import (
    GatewayAdapter,
    GatewayNotConfigured,
    GatewayTransaction,
    PaymentCancelled,
    build_gateway,
    get_gateway_class,
    register_gateway,
    registered_channels,
)
# Importing the providers registers them
from .paystack import PaystackGateway
from .rave import RaveGateway

__all__ = [
    'GatewayAdapter', 'GatewayNotConfigured', 'GatewayTransaction', 'PaymentCancelled',
    'build_gateway', 'get_gateway_class', 'register_gateway', 'registered_channels',
    'PaystackGateway', 'RaveGateway',
]
