"""Password reset token store"""
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.password_reset_token import PasswordResetToken
from app.services.errors import TokenResetInvalidOrExpired
from app.utils.auth import fingerprint, generate_reset_secret, utcnow
from app.utils.logger import logger


class PasswordResetStore:
    """Single-use, time-boxed reset secrets.

    Only the SHA-256 fingerprint of a secret is persisted; the raw value goes
    out in the reset email and nowhere else. At most one token per user
    exists at a time.
    """

    def __init__(self, db: Session, ttl: timedelta = timedelta(hours=1)):
        self.db = db
        self.ttl = ttl

    def create(self, user_id: str) -> str:
        """Issue a new secret for ``user_id``, deleting any previous ones. Returns the raw secret."""
        self.invalidate_for_user(user_id, commit=False)

        raw = generate_reset_secret()
        self.db.add(PasswordResetToken(
            token_hash=fingerprint(raw),
            user_id=user_id,
            expires_at=utcnow() + self.ttl,
            used=False,
        ))
        self.db.commit()

        logger.info("Password reset token created", extra={"user_id": user_id, "action": "reset_token_create"})
        return raw

    def validate(self, raw: str) -> Optional[PasswordResetToken]:
        """The unused, unexpired record for ``raw``, or None (no distinction between the failure cases)"""
        return self.db.query(PasswordResetToken).filter(
            PasswordResetToken.token_hash == fingerprint(raw),
            PasswordResetToken.used == False,  # noqa: E712
            PasswordResetToken.expires_at > utcnow(),
        ).populate_existing().first()

    def consume(self, raw: str) -> PasswordResetToken:
        """Mark the secret used and return its record.

        The flip is a conditional UPDATE (used = false -> true) so when two
        requests race on the same secret exactly one gets the record; the
        other gets TokenResetInvalidOrExpired.
        """
        token_hash = fingerprint(raw)
        updated = self.db.query(PasswordResetToken).filter(
            PasswordResetToken.token_hash == token_hash,
            PasswordResetToken.used == False,  # noqa: E712
            PasswordResetToken.expires_at > utcnow(),
        ).update({"used": True}, synchronize_session=False)
        self.db.commit()

        if updated != 1:
            raise TokenResetInvalidOrExpired()

        record = self.db.query(PasswordResetToken).filter(
            PasswordResetToken.token_hash == token_hash
        ).populate_existing().one()
        logger.info("Password reset token consumed", extra={"user_id": record.user_id, "action": "reset_token_consume"})
        return record

    def invalidate_for_user(self, user_id: str, commit: bool = True) -> int:
        deleted = self.db.query(PasswordResetToken).filter(
            PasswordResetToken.user_id == user_id
        ).delete(synchronize_session=False)
        if commit:
            self.db.commit()
        return deleted

    def sweep_expired(self) -> int:
        """Delete tokens that can no longer be consumed (expired or used)"""
        deleted = self.db.query(PasswordResetToken).filter(
            or_(
                PasswordResetToken.expires_at <= utcnow(),
                PasswordResetToken.used == True,  # noqa: E712
            )
        ).delete(synchronize_session=False)
        self.db.commit()

        if deleted:
            logger.info(f"Swept {deleted} dead reset tokens", extra={"count": deleted, "action": "reset_token_sweep"})
        return deleted

    def active_count(self) -> Tuple[int, int]:
        """(outstanding, total) token counts"""
        total = self.db.query(PasswordResetToken).count()
        outstanding = self.db.query(PasswordResetToken).filter(
            PasswordResetToken.used == False,  # noqa: E712
            PasswordResetToken.expires_at > utcnow(),
        ).count()
        return outstanding, total
