# Overview: API bearer tokens; issue, resolve and revoke.

"""
API Token Service

MULTI-TENANT: A token is bound to one user and captures that user's
company_id at issue time. Every authenticated request takes its Company
from the token, never from the request body.

SECURITY:
- 32 bytes of secrets.token_hex entropy
- Stored as a SHA-256 hash only; the plaintext is returned once at issue
- Revoked tokens, inactive users and inactive companies are rejected
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass

from ..extensions import db
from ..models import ApiToken, Company, User
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class TokenContext:
    user: User
    company: Company
    token: ApiToken


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is enough here: tokens are high-entropy, unlike passwords."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token(user: User, name: str | None = None) -> tuple[ApiToken, str]:
    plaintext = generate_token()
    record = ApiToken(
        user_id=user.id,
        company_id=user.company_id,
        token_hash=hash_token(plaintext),
        name=name,
    )
    db.session.add(record)
    db.session.commit()
    logger.info("Issued API token %s for user %s (company %s)", record.id, user.id, user.company_id)
    return record, plaintext


def resolve_token(plaintext: str) -> TokenContext | None:
    """Validate a bearer token; returns None for anything unusable."""
    if not plaintext:
        return None
    record = db.session.query(ApiToken).filter_by(token_hash=hash_token(plaintext)).first()
    if record is None or record.is_revoked:
        return None

    user = db.session.get(User, record.user_id)
    company = db.session.get(Company, record.company_id)
    if user is None or not user.is_active or company is None or not company.is_active:
        return None
    # Tenant context is fixed at issue time
    if user.company_id != record.company_id:
        return None

    record.last_used_at = utcnow()
    db.session.commit()
    return TokenContext(user=user, company=company, token=record)


def revoke_token(plaintext: str) -> bool:
    record = db.session.query(ApiToken).filter_by(token_hash=hash_token(plaintext)).first()
    if record is None or record.is_revoked:
        return False
    record.revoked_at = utcnow()
    db.session.commit()
    return True
