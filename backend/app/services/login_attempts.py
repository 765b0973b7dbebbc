"""Per-IP login attempt tracking and temporary lockout.

State per IP::

    clean --failure--> warned (attempts < max) --failure #max--> locked (blocked_until)
      ^                      |                                       |
      +------- success ------+            block elapses, next check -+

The failure counter is incremented inside a single ``INSERT .. ON CONFLICT
(ip) DO UPDATE`` statement so concurrent failures from one IP cannot
under-count. A block that has elapsed is cleared lazily by the next check;
the periodic prune only exists to keep the table small.
"""
import math
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import case, or_
from sqlalchemy.orm import Session

from app.middleware.monitoring import record_lockout
from app.models.login_attempt import LoginAttempt
from app.services.errors import AccountLocked
from app.utils.auth import utcnow
from app.utils.logger import logger


def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"login attempt upsert not supported on {dialect}")
    return insert


class LoginAttemptTracker:
    """Persistent per-IP failure counter with rolling lockout window"""

    def __init__(
        self,
        db: Session,
        max_attempts: int = 10,
        lockout: timedelta = timedelta(minutes=10),
        window: timedelta = timedelta(minutes=10),
    ):
        self.db = db
        self.max_attempts = max_attempts
        self.lockout = lockout
        self.window = window

    def get(self, ip: str) -> Optional[LoginAttempt]:
        return self.db.query(LoginAttempt).filter(LoginAttempt.ip == ip).populate_existing().first()

    def blocked_for(self, ip: str) -> Optional[timedelta]:
        """Remaining lockout for ``ip``, or None when it may attempt a login.

        An elapsed block is cleared (and the failure counter reset) as a side
        effect, so a stale blocked_until never outlives its first evaluation.
        """
        record = self.get(ip)
        if record is None or record.blocked_until is None:
            return None

        now = utcnow()
        if record.blocked_until > now:
            return record.blocked_until - now

        self.db.query(LoginAttempt).filter(
            LoginAttempt.ip == ip,
            LoginAttempt.blocked_until <= now,
        ).update({"attempts": 0, "blocked_until": None}, synchronize_session=False)
        self.db.commit()
        logger.info("Lockout elapsed, IP unblocked", extra={"ip": ip, "action": "lockout_expired"})
        return None

    def is_blocked(self, ip: str) -> bool:
        return self.blocked_for(ip) is not None

    def check(self, ip: str) -> None:
        """Raise AccountLocked while ``ip`` is locked out"""
        remaining = self.blocked_for(ip)
        if remaining is not None:
            minutes = max(1, math.ceil(remaining.total_seconds() / 60))
            raise AccountLocked(remaining_minutes=minutes)

    def record_failure(self, ip: str) -> LoginAttempt:
        now = utcnow()
        table = LoginAttempt.__table__
        insert = _dialect_insert(self.db)

        # a failure after a quiet period longer than the window starts a fresh count
        new_attempts = case(
            (table.c.last_attempt < now - self.window, 1),
            else_=table.c.attempts + 1,
        )
        stmt = insert(table).values(
            ip=ip,
            attempts=1,
            last_attempt=now,
            blocked_until=now + self.lockout if self.max_attempts <= 1 else None,
            successful_logins=0,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.ip],
            set_={
                "attempts": new_attempts,
                "last_attempt": now,
                "blocked_until": case(
                    (new_attempts >= self.max_attempts, now + self.lockout),
                    else_=table.c.blocked_until,
                ),
            },
        )
        self.db.execute(stmt)
        self.db.commit()

        record = self.get(ip)
        if record.blocked_until is not None and record.attempts == self.max_attempts:
            record_lockout()
            logger.warning(
                f"IP locked out after {record.attempts} failed logins",
                extra={"ip": ip, "count": record.attempts, "action": "lockout"},
            )
        return record

    def record_success(self, ip: str) -> LoginAttempt:
        now = utcnow()
        table = LoginAttempt.__table__
        insert = _dialect_insert(self.db)

        stmt = insert(table).values(
            ip=ip,
            attempts=0,
            last_attempt=now,
            blocked_until=None,
            successful_logins=1,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.ip],
            set_={
                "attempts": 0,
                "last_attempt": now,
                "blocked_until": None,
                "successful_logins": table.c.successful_logins + 1,
            },
        )
        self.db.execute(stmt)
        self.db.commit()
        return self.get(ip)

    def prune(self, retention: timedelta = timedelta(hours=24)) -> int:
        """Delete records idle for longer than ``retention`` that are not locked"""
        now = utcnow()
        deleted = self.db.query(LoginAttempt).filter(
            LoginAttempt.last_attempt < now - retention,
            or_(LoginAttempt.blocked_until.is_(None), LoginAttempt.blocked_until <= now),
        ).delete(synchronize_session=False)
        self.db.commit()

        if deleted:
            logger.info(f"Pruned {deleted} idle login attempt records", extra={"count": deleted, "action": "attempts_prune"})
        return deleted

    def stats(self) -> Dict[str, Any]:
        now = utcnow()
        rows = self.db.query(LoginAttempt).all()
        blocked = sum(1 for r in rows if r.blocked_until is not None and r.blocked_until > now)
        return {
            "tracked_ips": len(rows),
            "blocked_ips": blocked,
            "pending_failures": sum(r.attempts for r in rows),
            "successful_logins": sum(r.successful_logins for r in rows),
        }
