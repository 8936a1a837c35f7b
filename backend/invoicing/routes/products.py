# Overview: Flask API routes for products, stock and product categories.

# backend/invoicing/routes/products.py
"""
Product API Routes

MULTI-TENANT: Every route runs under @require_auth and passes g.company to
the service layer; other companies' products answer 404.

Stock changes go through the inventory ledger:
- POST /api/products/<id>/stocks     manual adjustment (manual floor)
- POST /api/products/scan            barcode scan (barcode floor)
"""

from flask import Blueprint, request, g

from ..decorators import require_auth
from ..services import catalog_service, inventory_service
from ._helpers import handle_errors, json_body, page_args

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


# =============================================================================
# PRODUCT CRUD
# =============================================================================

@products_bp.get("")
@require_auth
@handle_errors("list products")
def list_products_route():
    """
    Query params:
    - search: str (optional) - matches name or description
    - category: category id (optional)
    - page / per_page: int (optional) - omit page for the full list
    """
    page, per_page = page_args()
    return catalog_service.list_products(
        g.company,
        search=request.args.get("search"),
        category_uuid=request.args.get("category"),
        page=page,
        per_page=per_page,
    )


@products_bp.post("")
@require_auth
@handle_errors("create product")
def create_product_route():
    """
    Request body:
    {
        "name": "Widget",
        "description": "...",              (optional)
        "default_price": 500,
        "barcode": "0123456789",           (optional)
        "inventory": 10,                   (optional opening stock)
        "prices": [{"currency": "USD", "price": 2.5}]   (optional)
    }
    """
    product = catalog_service.create_product(g.company, json_body())
    return product.to_dict(), 201


@products_bp.get("/<product_id>")
@require_auth
@handle_errors("get product")
def get_product_route(product_id: str):
    return catalog_service.get_product(g.company, product_id).to_dict()


@products_bp.put("/<product_id>")
@require_auth
@handle_errors("update product")
def update_product_route(product_id: str):
    return catalog_service.update_product(g.company, product_id, json_body()).to_dict()


@products_bp.delete("/<product_id>")
@require_auth
@handle_errors("delete product")
def delete_product_route(product_id: str):
    product = catalog_service.delete_product(g.company, product_id)
    return {"ok": True, "id": product.uuid}


# =============================================================================
# STOCK
# =============================================================================

@products_bp.get("/<product_id>/stocks")
@require_auth
@handle_errors("list stock events")
def list_stocks_route(product_id: str):
    page, per_page = page_args()
    return inventory_service.list_stock_events(g.company, product_id, page=page, per_page=per_page)


@products_bp.post("/<product_id>/stocks")
@require_auth
@handle_errors("adjust stock")
def adjust_stock_route(product_id: str):
    """
    Request body: {"action": "add" | "subtract", "quantity": 3, "comment": "..."}
    """
    data = json_body()
    event = inventory_service.adjust_product_stock(
        g.company,
        product_id,
        action=data.get("action"),
        quantity=data.get("quantity"),
        comment=data.get("comment"),
    )
    return {"stock": event.to_dict(), "product": event.product.to_dict()}, 201


@products_bp.post("/scan")
@require_auth
@handle_errors("scan barcode")
def scan_barcode_route():
    """
    Request body: {"barcode": "...", "action": "subtract", "quantity": 1, "comment": "..."}
    """
    data = json_body()
    event = inventory_service.scan_barcode(
        g.company,
        data.get("barcode"),
        action=data.get("action") or inventory_service.STOCK_ACTION_SUBTRACT,
        quantity=data.get("quantity"),
        comment=data.get("comment"),
    )
    return {"stock": event.to_dict(), "product": event.product.to_dict()}, 201


# =============================================================================
# PRODUCT CATEGORIES
# =============================================================================

@products_bp.post("/<product_id>/categories")
@require_auth
@handle_errors("add product categories")
def add_categories_route(product_id: str):
    """Request body: {"id": "<category id>"} or {"ids": [...]}"""
    return catalog_service.add_categories(g.company, product_id, json_body()).to_dict()


@products_bp.delete("/<product_id>/categories")
@require_auth
@handle_errors("remove product categories")
def remove_categories_route(product_id: str):
    return catalog_service.remove_categories(g.company, product_id, json_body()).to_dict()


@products_bp.put("/<product_id>/categories")
@require_auth
@handle_errors("sync product categories")
def sync_categories_route(product_id: str):
    """Request body: {"ids": [...]} - the product ends up with exactly these."""
    return catalog_service.sync_categories(g.company, product_id, json_body()).to_dict()
