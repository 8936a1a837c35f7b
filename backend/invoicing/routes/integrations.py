# Overview: Flask API routes for the company's payment gateway settings.

"""
Payment Integration Routes

SECURITY: Secret keys are write-only; responses only say whether a key is set.
"""

from flask import Blueprint, g

from ..decorators import require_auth
from ..gateways import registered_channels
from ..services import integration_service
from ._helpers import handle_errors, json_body

integrations_bp = Blueprint("integrations", __name__, url_prefix="/api/integrations")


@integrations_bp.get("")
@require_auth
@handle_errors("list integrations")
def list_integrations_route():
    integrations = integration_service.list_integrations(g.company)
    return {
        "items": [i.to_dict() for i in integrations],
        "available_channels": registered_channels(),
    }


@integrations_bp.put("/<channel>")
@require_auth
@handle_errors("configure integration")
def configure_integration_route(channel: str):
    """Request body: {"private_key": "...", "public_key": "...", "mode": "test" | "live"}"""
    return integration_service.configure_integration(g.company, channel, json_body()).to_dict()


@integrations_bp.delete("/<channel>")
@require_auth
@handle_errors("remove integration")
def remove_integration_route(channel: str):
    integration_service.remove_integration(g.company, channel)
    return {"ok": True}
