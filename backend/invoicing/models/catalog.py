from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z
from ._base import new_uuid


product_category_links = db.Table(
    "product_category_links",
    db.Column("product_id", db.Integer, db.ForeignKey("products.id"), primary_key=True),
    db.Column("category_id", db.Integer, db.ForeignKey("product_categories.id"), primary_key=True),
)


class Product(db.Model):
    """
    Sellable product.

    MULTI-TENANT: Products are scoped to companies via company_id.

    INVENTORY:
    - inventory is the running total of the product's StockEvents, kept on
      the row for fast reads.
    - It is only ever written by inventory_service.adjust_stock, under a row
      lock. version_id makes a lost update on SQLite (which ignores
      SELECT ... FOR UPDATE) surface as StaleDataError instead.

    Barcodes are globally unique when present (NULLs do not collide).
    Products are soft-deleted; deleting drops their prices and categories.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_company_name", "company_id", "name"),
        db.CheckConstraint("inventory >= 0", name="ck_products_inventory_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=new_uuid)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(80), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Price in the company's own currency
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    inventory = db.Column(db.Integer, nullable=False, default=0)

    barcode = db.Column(db.String(25), nullable=True, unique=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    company = db.relationship("Company", backref=db.backref("products", lazy="dynamic"))
    prices = db.relationship(
        "ProductPrice",
        backref="product",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ProductPrice.currency",
    )
    categories = db.relationship(
        "ProductCategory",
        secondary=product_category_links,
        lazy=True,
        backref=db.backref("products", lazy="dynamic"),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} company_id={self.company_id}>"

    def to_dict(self, include_categories: bool = True) -> dict:
        data = {
            "id": self.uuid,
            "name": self.name,
            "description": self.description,
            "default_price": money_str(self.unit_price),
            "inventory": self.inventory,
            "barcode": self.barcode,
            "prices": [p.to_dict() for p in self.prices],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_categories:
            data["categories"] = [c.to_dict() for c in self.categories]
        return data


class ProductPrice(db.Model):
    """Per-currency price override. One row per (product, currency)."""
    __tablename__ = "product_prices"
    __table_args__ = (
        db.UniqueConstraint("product_id", "currency", name="uq_product_prices_product_currency"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    currency = db.Column(db.String(3), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "currency": self.currency,
            "unit_price": money_str(self.unit_price),
        }


class ProductCategory(db.Model):
    """Company-scoped product category."""
    __tablename__ = "product_categories"
    __table_args__ = (
        db.UniqueConstraint("company_id", "slug", name="uq_product_categories_company_slug"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=new_uuid)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(80), nullable=False)
    slug = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<ProductCategory id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.uuid,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
        }


class StockEvent(db.Model):
    """
    Append-only stock movement.

    - action is 'add' or 'subtract'; quantity is the requested quantity,
      recorded verbatim even when the resulting inventory was clamped.
    - floor is the subtract floor the call site applied, so the ledger
      replays to the stored inventory whatever mix of call sites wrote it.
    - Rows are never updated or deleted.
    """
    __tablename__ = "product_stocks"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_product_stocks_quantity_positive"),
        db.Index("ix_product_stocks_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    action = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=True)
    floor = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship(
        "Product",
        backref=db.backref("stocks", lazy="dynamic", order_by="StockEvent.id"),
    )

    def __repr__(self) -> str:
        return f"<StockEvent id={self.id} product_id={self.product_id} {self.action} {self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "quantity": self.quantity,
            "floor": self.floor,
            "comment": self.comment,
            "created_at": to_utc_z(self.created_at),
        }
