from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z, to_iso_date
from ._base import new_uuid


class Order(db.Model):
    """
    An invoice (or quote) issued by a company to one or more customers.

    WHAT IS SOLD is represented one of two mutually exclusive ways:
    - inline: product_name / product_description / quantity / unit_price
    - line items: OrderItem rows (inline columns are NULL)

    is_fully_editable flips to False the first time any customer pays;
    from then on currency, amount and the sold items are frozen.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_company_created", "company_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=new_uuid)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    title = db.Column(db.String(80), nullable=False)
    description = db.Column(db.Text, nullable=True)
    currency = db.Column(db.String(3), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    product_name = db.Column(db.String(80), nullable=True)
    product_description = db.Column(db.Text, nullable=True)
    quantity = db.Column(db.Integer, nullable=True)
    unit_price = db.Column(db.Numeric(12, 2), nullable=True)

    reminder_on = db.Column(db.Boolean, nullable=False, default=False)
    is_quote = db.Column(db.Boolean, nullable=False, default=False)
    due_at = db.Column(db.Date, nullable=True)

    is_fully_editable = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    company = db.relationship("Company", backref=db.backref("orders", lazy="dynamic"))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    customer_orders = db.relationship(
        "CustomerOrder",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="CustomerOrder.id",
    )

    @property
    def has_inline_product(self) -> bool:
        return self.product_name is not None

    def __repr__(self) -> str:
        return f"<Order id={self.id} title={self.title!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        data = {
            "id": self.uuid,
            "title": self.title,
            "description": self.description,
            "currency": self.currency,
            "amount": money_str(self.amount),
            "reminder_on": self.reminder_on,
            "is_quote": self.is_quote,
            "due_at": to_iso_date(self.due_at),
            "is_fully_editable": self.is_fully_editable,
            "items": [item.to_dict() for item in self.items],
            "customers": [co.to_dict() for co in self.customer_orders],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if self.has_inline_product:
            data["product"] = {
                "name": self.product_name,
                "description": self.product_description,
                "quantity": self.quantity,
                "price": money_str(self.unit_price),
            }
        return data


class OrderItem(db.Model):
    """
    Product line on an order.

    unit_price is a snapshot taken when the order was composed; later
    product price changes never touch it.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "product_id", name="uq_order_items_order_product"),
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=new_uuid)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    product = db.relationship("Product")

    @property
    def line_total(self):
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.uuid,
            "product_id": self.product.uuid if self.product else None,
            "name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "line_total": money_str(self.line_total),
        }


class CustomerOrder(db.Model):
    """
    Pivot between a customer and an order.

    Carries the per-customer invoice number and payment state. paid_at is
    written once, on the first successful settlement.

    version_id turns two racing settlements on SQLite (which ignores
    SELECT ... FOR UPDATE) into a StaleDataError and a retry.
    """
    __tablename__ = "customer_order"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "order_id", name="uq_customer_order_customer_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    invoice_number = db.Column(db.String(32), nullable=False)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("customer_orders", lazy="dynamic"))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer.uuid if self.customer else None,
            "invoice_number": self.invoice_number,
            "is_paid": self.is_paid,
            "paid_at": to_utc_z(self.paid_at),
        }
