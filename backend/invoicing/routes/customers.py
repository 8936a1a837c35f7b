# Overview: Flask API routes for customers.

from flask import Blueprint, g

from ..decorators import require_auth
from ..services import customer_service
from ._helpers import handle_errors, json_body

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
@handle_errors("list customers")
def list_customers_route():
    customers = customer_service.list_customers(g.company)
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@customers_bp.post("")
@require_auth
@handle_errors("create customer")
def create_customer_route():
    """Request body: {"firstname", "lastname", "email", "phone"}"""
    return customer_service.create_customer(g.company, json_body()).to_dict(), 201


@customers_bp.get("/<customer_id>")
@require_auth
@handle_errors("get customer")
def get_customer_route(customer_id: str):
    return customer_service.get_customer(g.company, customer_id).to_dict()
