"""LoginAttempt model: per-IP failure counter and lockout state"""
from sqlalchemy import Column, DateTime, Integer, String

from app.database import Base
from app.utils.auth import utcnow


class LoginAttempt(Base):
    """One row per client IP.

    attempts counts consecutive failures; blocked_until is set while the IP is
    locked out. A blocked_until in the past means unlocked and is cleared on
    the next check.
    """

    __tablename__ = "login_attempts"

    ip = Column(String(64), primary_key=True)
    attempts = Column(Integer, default=0, nullable=False)
    last_attempt = Column(DateTime, default=utcnow, nullable=False, index=True)
    blocked_until = Column(DateTime, nullable=True)
    successful_logins = Column(Integer, default=0, nullable=False)
