from __future__ import annotations

from ..extensions import db


class ApiToken(db.Model):
    """
    Bearer token accepted by the API.

    Tokens are minted by the OAuth side (or the CLI) and stored here as a
    SHA-256 hash only; the plaintext is shown once at issue time. The
    company_id is captured at issue time and never changes.
    """
    __tablename__ = "api_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User")
    company = db.relationship("Company")

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def __repr__(self) -> str:
        return f"<ApiToken id={self.id} user_id={self.user_id} revoked={self.is_revoked}>"
