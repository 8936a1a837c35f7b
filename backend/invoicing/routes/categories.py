# Overview: Flask API routes for product categories.

from flask import Blueprint, g

from ..decorators import require_auth
from ..services import catalog_service
from ._helpers import handle_errors, json_body

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
@handle_errors("list categories")
def list_categories_route():
    categories = catalog_service.list_categories(g.company)
    return {"items": [c.to_dict() for c in categories], "count": len(categories)}


@categories_bp.post("")
@require_auth
@handle_errors("create category")
def create_category_route():
    """Request body: {"name": "Drinks", "description": "..."}"""
    return catalog_service.create_category(g.company, json_body()).to_dict(), 201


@categories_bp.delete("/<category_id>")
@require_auth
@handle_errors("delete category")
def delete_category_route(category_id: str):
    category = catalog_service.delete_category(g.company, category_id)
    return {"ok": True, "id": category.uuid}
