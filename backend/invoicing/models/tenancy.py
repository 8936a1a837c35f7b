from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ._base import new_uuid


class Company(db.Model):
    """
    Multi-tenant root: every tenant is a Company.

    All products, categories, customers, orders and gateway integrations
    belong to exactly one company. No data may cross company boundaries.

    invoice_sequence is the last invoice number handed to a CustomerOrder;
    it is incremented under a row lock.
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=new_uuid)
    name = db.Column(db.String(255), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="NGN")
    logo_url = db.Column(db.String(512), nullable=True)

    invoice_sequence = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.uuid,
            "name": self.name,
            "currency": self.currency,
            "logo_url": self.logo_url,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class User(db.Model):
    """
    A member of a company. Identity is managed by the external OAuth
    provider; this row only anchors API tokens and notifications.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("company_id", "email", name="uq_users_company_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=new_uuid)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship(
        "Company",
        backref=db.backref("users", lazy=True, order_by="User.id"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.uuid,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
