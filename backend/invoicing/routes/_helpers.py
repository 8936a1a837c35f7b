# Overview: Shared request parsing and error translation for the API blueprints.

from functools import wraps

from flask import current_app, jsonify, request

from ..errors import InvoicingError, error_response


def json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def page_args() -> tuple[int | None, int | None]:
    return request.args.get("page", type=int), request.args.get("per_page", type=int)


def handle_errors(action: str):
    """
    Translate service errors to JSON responses.

    InvoicingError subclasses map to their own status. Anything else is
    logged with the traceback and answered with a generic 500.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except InvoicingError as e:
                body, status = error_response(e)
                return jsonify(body), status
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500
        return decorated_function
    return decorator
