# Overview: Flask API routes for the signed-in user's notifications.

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..services import notification_service
from ..validation import coerce_bool
from ._helpers import handle_errors

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
@handle_errors("list notifications")
def list_notifications_route():
    unread_only = coerce_bool("unread", request.args.get("unread", "0"))
    notifications = notification_service.list_notifications(g.current_user, unread_only=unread_only)
    return {"items": [n.to_dict() for n in notifications], "count": len(notifications)}
