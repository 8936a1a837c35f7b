# backend/invoicing/services/catalog_service.py
"""
Product catalog with multi-currency pricing and categories.

MULTI-TENANT: Every function takes the Company and only ever resolves
that company's products and categories.

PRICING:
- Product.unit_price is the price in the company's own currency.
- ProductPrice rows override it per ISO currency; an update that carries
  "prices" replaces the whole override set in one transaction.
"""
from __future__ import annotations

import logging
import re
from decimal import Decimal

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Company, Product, ProductCategory, ProductPrice
from ..money import normalize_currency, to_amount
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, validate_payload, coerce_int, require_uuid_list
from .inventory_service import ProductNotFound, STOCK_ACTION_ADD, StockAdjustmentFailed, adjust_stock
from .tenant_service import require_company_record, require_company_records, scoped_query

logger = logging.getLogger(__name__)


class CategoryNotFound(NotFoundError):
    pass


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "default_price", "barcode"},
    required_on_create={"name"},
    aliases={"default_price": "unit_price"},
    passthrough_fields={"prices", "inventory"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)


# =============================================================================
# PRODUCTS
# =============================================================================

def _parse_prices(raw) -> list[tuple[str, Decimal]]:
    """
    Validate [{"currency": "USD", "price": 10}, ...].

    Currencies are upper-cased; a repeated currency keeps its first entry.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("prices must be an array")
    seen: dict[str, Decimal] = {}
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("each price must be an object with currency and price")
        if entry.get("currency") is None or entry.get("price") is None:
            raise ValidationError("each price requires both currency and price")
        try:
            currency = normalize_currency(entry["currency"])
        except ValidationError:
            raise ValidationError(
                "One of the product prices you specified is not a valid ISO currency. "
                f"You provided a currency of: {entry['currency']}"
            )
        if currency in seen:
            continue
        seen[currency] = to_amount(entry["price"], field="price")
    return list(seen.items())


def _replace_prices(product: Product, prices: list[tuple[str, Decimal]]) -> None:
    wanted = dict(prices)
    for existing in list(product.prices):
        if existing.currency not in wanted:
            product.prices.remove(existing)
        else:
            existing.unit_price = wanted.pop(existing.currency)
    for currency, unit_price in wanted.items():
        product.prices.append(ProductPrice(currency=currency, unit_price=unit_price))


def _ensure_barcode_free(barcode: str | None, product_id: int | None = None) -> None:
    if not barcode:
        return
    query = db.session.query(Product.id).filter(Product.barcode == barcode)
    if product_id is not None:
        query = query.filter(Product.id != product_id)
    if query.first() is not None:
        raise ConflictError("That barcode is already assigned to another product")


def create_product(company: Company, payload: dict) -> Product:
    """
    Create a product, its currency overrides and (optionally) opening stock.

    Opening stock is recorded as an 'add' StockEvent in the same commit as
    the product, so the ledger and the inventory column agree from the first
    row and a failed opening adjustment leaves no product behind.
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    prices = _parse_prices(patch.pop("prices", None))
    opening = patch.pop("inventory", None)
    opening = coerce_int("inventory", opening) if opening is not None else 0
    if opening < 0:
        raise ValidationError("inventory must be >= 0")

    _ensure_barcode_free(patch.get("barcode"))

    product = Product(company_id=company.id, inventory=0, **patch)
    _replace_prices(product, prices)
    db.session.add(product)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A product with that barcode already exists")

    try:
        if opening > 0:
            adjust_stock(product, STOCK_ACTION_ADD, opening, "Opening stock", commit=False)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Opening stock failed for new product in company %s", company.id)
        raise StockAdjustmentFailed("Failed while updating your stocks, please try again later.") from exc

    logger.info("Created product %s for company %s", product.uuid, company.id)
    return product


def get_product(company: Company, product_uuid: str) -> Product:
    return require_company_record(Product, company, product_uuid, error=ProductNotFound, label="Product")


def list_products(
    company: Company,
    *,
    search: str | None = None,
    category_uuid: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Company products by name, optionally filtered and paginated."""
    query = scoped_query(Product, company)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(term), Product.description.ilike(term)))
    if category_uuid:
        category = require_company_record(
            ProductCategory, company, category_uuid, error=CategoryNotFound, label="Category"
        )
        query = query.filter(Product.categories.contains(category))

    query = query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = query.all()
        return {"items": [p.to_dict() for p in products], "count": len(products)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def update_product(company: Company, product_uuid: str, payload: dict) -> Product:
    """
    Update name/description/default_price/barcode and, when "prices" is
    present, replace the currency overrides. Inventory is not writable here.
    """
    if payload and "inventory" in payload:
        raise ValidationError("inventory can only be changed through stock adjustments")
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    product = get_product(company, product_uuid)

    replace_prices = "prices" in patch
    prices = _parse_prices(patch.pop("prices", None))

    if "barcode" in patch:
        _ensure_barcode_free(patch["barcode"], product_id=product.id)

    for key, value in patch.items():
        setattr(product, key, value)
    if replace_prices:
        _replace_prices(product, prices)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A product with that barcode already exists")
    return product


def delete_product(company: Company, product_uuid: str) -> Product:
    """Soft-delete a product; its prices and category links are removed."""
    product = get_product(company, product_uuid)
    product.prices.clear()
    product.categories.clear()
    product.deleted_at = utcnow()
    db.session.commit()
    logger.info("Deleted product %s for company %s", product.uuid, company.id)
    return product


def price_in_currency(product: Product, currency: str, company: Company) -> Decimal:
    """
    The product's unit price in `currency`.

    Uses the ProductPrice override when one exists, otherwise the default
    price if `currency` is the company's own currency.
    """
    for price in product.prices:
        if price.currency == currency:
            return Decimal(price.unit_price)
    if currency == company.currency:
        return Decimal(product.unit_price)
    raise ValidationError(f"Product {product.name} has no price in {currency}")


# =============================================================================
# CATEGORIES
# =============================================================================

def _slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "category"


def create_category(company: Company, payload: dict) -> ProductCategory:
    patch = validate_payload(model=ProductCategory, payload=payload, policy=CATEGORY_POLICY, partial=False)
    slug = _slugify(patch["name"])
    if scoped_query(ProductCategory, company).filter(ProductCategory.slug == slug).first():
        raise ConflictError(f"A category named {patch['name']} already exists")
    category = ProductCategory(company_id=company.id, slug=slug, **patch)
    db.session.add(category)
    db.session.commit()
    return category


def list_categories(company: Company) -> list[ProductCategory]:
    return scoped_query(ProductCategory, company).order_by(ProductCategory.name.asc()).all()


def delete_category(company: Company, category_uuid: str) -> ProductCategory:
    category = require_company_record(
        ProductCategory, company, category_uuid, error=CategoryNotFound, label="Category"
    )
    for product in category.products.all():
        product.categories.remove(category)
    db.session.delete(category)
    db.session.commit()
    return category


def _resolve_categories(company: Company, payload: dict, *, term: str) -> list[ProductCategory]:
    ids = require_uuid_list(payload)
    categories = require_company_records(ProductCategory, company, ids)
    if not categories:
        plural = "categories" if len(ids) > 1 else "category"
        raise CategoryNotFound(f"Could not find the {plural} to be {term}.")
    return categories


def add_categories(company: Company, product_uuid: str, payload: dict) -> Product:
    product = get_product(company, product_uuid)
    for category in _resolve_categories(company, payload, term="added"):
        if category not in product.categories:
            product.categories.append(category)
    db.session.commit()
    return product


def remove_categories(company: Company, product_uuid: str, payload: dict) -> Product:
    product = get_product(company, product_uuid)
    for category in _resolve_categories(company, payload, term="removed"):
        if category in product.categories:
            product.categories.remove(category)
    db.session.commit()
    return product


def sync_categories(company: Company, product_uuid: str, payload: dict) -> Product:
    """Replace the product's categories with exactly the given ones."""
    if not isinstance(payload.get("ids"), list):
        raise ValidationError("ids must be a non-empty array")
    product = get_product(company, product_uuid)
    product.categories = _resolve_categories(company, {"ids": payload["ids"]}, term="set on the product")
    db.session.commit()
    return product
