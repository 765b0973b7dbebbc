"""Token blacklist: revoked-but-unexpired session tokens"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.middleware.monitoring import record_blacklist_check_error
from app.models.blacklisted_token import REVOCATION_REASONS, BlacklistedToken
from app.utils.auth import utcnow
from app.utils.logger import logger


class TokenBlacklist:
    """Persistent denylist of token fingerprints.

    Lookup policy on store failure is FAIL-OPEN: if the blacklist cannot be
    read, ``contains`` answers False and the token is accepted (signature and
    expiry are still enforced). A transient database error therefore cannot
    lock every session out, but a logged-out token may be accepted until the
    store recovers. Every such event is logged at ERROR and counted in
    ``samfilms_blacklist_check_errors_total`` so operators can alert on it.
    """

    def __init__(self, db: Session):
        self.db = db

    def add(self, token_hash: str, user_id: str, reason: str, expires_at: datetime) -> BlacklistedToken:
        if reason not in REVOCATION_REASONS:
            raise ValueError(f"unknown revocation reason: {reason}")

        existing = self.db.query(BlacklistedToken).filter(BlacklistedToken.token_hash == token_hash).first()
        if existing:
            return existing

        entry = BlacklistedToken(
            token_hash=token_hash,
            user_id=user_id,
            reason=reason,
            expires_at=expires_at,
        )
        self.db.add(entry)
        try:
            self.db.commit()
        except IntegrityError:
            # concurrent revocation of the same token already inserted it
            self.db.rollback()
            return self.db.query(BlacklistedToken).filter(BlacklistedToken.token_hash == token_hash).one()

        logger.info(
            "Token blacklisted",
            extra={"user_id": user_id, "reason": reason, "action": "blacklist_add"},
        )
        return entry

    def contains(self, token_hash: str, now: Optional[datetime] = None) -> bool:
        """True only if a matching entry exists whose expires_at is still ahead of ``now`` (naive UTC)"""
        try:
            hit = self.db.query(BlacklistedToken.id).filter(
                BlacklistedToken.token_hash == token_hash,
                BlacklistedToken.expires_at > (now or utcnow()),
            ).first()
        except SQLAlchemyError:
            self.db.rollback()
            record_blacklist_check_error()
            logger.error(
                "Blacklist lookup failed, treating token as not revoked",
                extra={"action": "blacklist_check"},
                exc_info=True,
            )
            return False
        return hit is not None

    def sweep_expired(self) -> int:
        """Delete entries whose token would fail verification on expiry anyway"""
        deleted = self.db.query(BlacklistedToken).filter(
            BlacklistedToken.expires_at <= utcnow()
        ).delete(synchronize_session=False)
        self.db.commit()

        if deleted:
            logger.info(f"Swept {deleted} expired blacklist entries", extra={"count": deleted, "action": "blacklist_sweep"})
        return deleted

    def stats(self) -> Dict[str, Any]:
        now = utcnow()
        total = self.db.query(BlacklistedToken).count()
        active = self.db.query(BlacklistedToken).filter(BlacklistedToken.expires_at > now).count()
        return {"total": total, "active": active, "expired_pending_sweep": total - active}
