"""
Company (tenant) scoping helpers.

Every core operation receives the Company explicitly; these helpers are
the only way services look up company-owned rows, so a lookup can never
resolve another company's record. Rows from another company are reported
exactly like missing rows so their existence is not revealed.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError
from ..models import Company
from .concurrency import lock_for_update


def scoped_query(model, company: Company, *, include_deleted: bool = False):
    """Query over `model` restricted to `company` (and live rows, if soft-deletable)."""
    query = db.session.query(model).filter(model.company_id == company.id)
    if not include_deleted and hasattr(model, "deleted_at"):
        query = query.filter(model.deleted_at.is_(None))
    return query


def require_company_record(
    model,
    company: Company,
    uuid: str,
    *,
    error: type[NotFoundError] = NotFoundError,
    label: str | None = None,
    lock: bool = False,
):
    """
    Fetch one company-owned row by its public uuid.

    Raises `error` (a NotFoundError subclass) when absent, soft-deleted or
    owned by another company.
    """
    query = scoped_query(model, company).filter(model.uuid == str(uuid))
    if lock:
        query = lock_for_update(query)
    record = query.first()
    if record is None:
        raise error(f"{label or model.__name__} not found")
    return record


def require_company_records(model, company: Company, uuids: list[str]) -> list:
    """Fetch several company-owned rows; silently ignores ids the company does not own."""
    if not uuids:
        return []
    return scoped_query(model, company).filter(model.uuid.in_([str(u) for u in uuids])).all()


def get_company_by_uuid(uuid: str) -> Company:
    company = db.session.query(Company).filter_by(uuid=str(uuid)).first()
    if company is None or not company.is_active:
        raise NotFoundError("Company not found")
    return company
