# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import token_service


def require_auth(f):
    """
    Require a bearer token and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User
    - g.company: The user's Company (tenant context) - passed explicitly
      into every service call by the route

    SECURITY: Returns 401 if:
    - No Authorization header
    - Unknown or revoked token
    - User or company deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        context = token_service.resolve_token(token)
        if not context:
            return jsonify({"error": "Invalid or revoked token"}), 401

        g.current_user = context.user
        g.company = context.company
        g.api_token = context.token

        return f(*args, **kwargs)

    return decorated_function
