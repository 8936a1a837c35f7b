from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ._base import new_uuid


class Customer(db.Model):
    """
    Customer of a company.

    MULTI-TENANT: Customers are scoped to companies via company_id and are
    linked to orders through CustomerOrder.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("company_id", "email", name="uq_customers_company_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=new_uuid)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    firstname = db.Column(db.String(128), nullable=False)
    lastname = db.Column(db.String(128), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("customers", lazy="dynamic"))

    def __repr__(self) -> str:
        return f"<Customer id={self.id} email={self.email!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.uuid,
            "firstname": self.firstname,
            "lastname": self.lastname,
            "email": self.email,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
        }
