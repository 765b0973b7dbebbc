"""BlacklistedToken model: fingerprint denylist for logged-out JWTs"""
from sqlalchemy import Column, DateTime, Integer, String

from app.database import Base
from app.utils.auth import utcnow

REVOCATION_REASONS = ("logout", "security_revocation", "password_changed")


class BlacklistedToken(Base):
    """Stores SHA-256 fingerprints of revoked bearer tokens.

    The raw token is never stored. expires_at mirrors the token's original exp
    claim; once it passes the row carries no information (the token fails
    verification on expiry alone) and the cleanup sweep deletes it.
    """

    __tablename__ = "blacklisted_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    reason = Column(String(32), nullable=False, default="logout")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
