"""
Error taxonomy for the invoicing backend.

Every error carries the HTTP status the API layer answers with. Services
raise at the point of detection; routes translate with error_response().
"""

from __future__ import annotations


class InvoicingError(Exception):
    """Base class for expected, caller-facing failures."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(InvoicingError, ValueError):
    """400-level input problem."""

    status_code = 400


class ConflictError(InvoicingError, ValueError):
    """409-level business rule conflict (e.g., duplicate barcode)."""

    status_code = 409


class NotFoundError(InvoicingError):
    """Entity absent or outside the caller's company."""

    status_code = 404


class AuthorizationError(InvoicingError):
    """Cross-tenant or cross-customer access attempt."""

    status_code = 403


class ConsistencyError(InvoicingError):
    """A write that should have succeeded failed at the storage layer."""

    status_code = 500


class GatewayError(InvoicingError):
    """A payment provider call failed or answered with a non-success."""

    status_code = 502

    def __init__(self, message: str, *, channel: str | None = None):
        super().__init__(message)
        self.channel = channel


def error_response(exc: InvoicingError) -> tuple[dict, int]:
    return {"error": exc.message or exc.__class__.__name__}, exc.status_code
