"""Company customers (the people orders are invoiced to)."""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Company, Customer
from ..validation import ModelValidationPolicy, validate_payload
from .tenant_service import require_company_record, scoped_query


class CustomerNotFound(NotFoundError):
    pass


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"firstname", "lastname", "email", "phone"},
    required_on_create={"firstname", "email"},
)


def create_customer(company: Company, payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    if patch.get("email"):
        patch["email"] = patch["email"].lower()
    customer = Customer(company_id=company.id, **patch)
    db.session.add(customer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A customer with that email already exists")
    return customer


def get_customer(company: Company, customer_uuid: str) -> Customer:
    return require_company_record(Customer, company, customer_uuid, error=CustomerNotFound, label="Customer")


def list_customers(company: Company) -> list[Customer]:
    return scoped_query(Customer, company).order_by(Customer.firstname.asc(), Customer.id.asc()).all()
