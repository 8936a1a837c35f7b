from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z
from ._base import new_uuid


class PaymentIntegration(db.Model):
    """
    A company's configuration for one payment provider.

    name is the channel ('paystack', 'rave'); configuration holds the
    provider keys and mode, e.g. {"private_key": ..., "public_key": ..., "mode": "live"}.
    """
    __tablename__ = "integrations"
    __table_args__ = (
        db.UniqueConstraint("company_id", "type", "name", name="uq_integrations_company_type_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    type = db.Column(db.String(32), nullable=False, default="payment")
    name = db.Column(db.String(32), nullable=False)
    configuration = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("integrations", lazy="dynamic"))

    def __repr__(self) -> str:
        return f"<PaymentIntegration id={self.id} company_id={self.company_id} name={self.name!r}>"

    def to_dict(self) -> dict:
        # Never echo secrets back
        config = self.configuration or {}
        return {
            "type": self.type,
            "name": self.name,
            "mode": config.get("mode"),
            "has_private_key": bool(config.get("private_key")),
            "has_public_key": bool(config.get("public_key")),
        }


class PaymentTransaction(db.Model):
    """
    Normalized record of a provider transaction for an order.

    (reference, channel) is unique: re-verifying a reference updates this
    row, and the row's customer can never change once set.
    """
    __tablename__ = "payment_transactions"
    __table_args__ = (
        db.UniqueConstraint("reference", "channel", name="uq_payment_transactions_reference_channel"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=new_uuid)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    channel = db.Column(db.String(32), nullable=False)
    reference = db.Column(db.String(128), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=True)
    response_code = db.Column(db.String(32), nullable=True)
    response_description = db.Column(db.String(255), nullable=True)
    is_successful = db.Column(db.Boolean, nullable=False, default=False)
    json_payload = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    order = db.relationship("Order", backref=db.backref("transactions", lazy="dynamic"))
    customer = db.relationship("Customer")

    def __repr__(self) -> str:
        return (
            f"<PaymentTransaction id={self.id} channel={self.channel!r} "
            f"reference={self.reference!r} ok={self.is_successful}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.uuid,
            "channel": self.channel,
            "reference": self.reference,
            "amount": money_str(self.amount),
            "currency": self.currency,
            "response_code": self.response_code,
            "response_description": self.response_description,
            "is_successful": self.is_successful,
            "created_at": to_utc_z(self.created_at),
        }
