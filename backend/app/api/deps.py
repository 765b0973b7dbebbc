"""API dependencies: service construction and bearer-token authentication.

Services are built per request from the request's database session, so no
handler reaches for a module-level client. Tests swap any of them through
``app.dependency_overrides``.

Token rejection policy
----------------------
=================  ======  =========  =====================================
Outcome            Status  Log level  Why
=================  ======  =========  =====================================
no bearer token    401     WARNING
TokenExpired       401     INFO       routine, client should just re-login
TokenBlacklisted   401     WARNING    revoked token replayed
TokenInvalid       403     WARNING    forged or malformed, possible tampering
=================  ======  =========  =====================================
"""
from datetime import timedelta
from functools import lru_cache

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.middleware.monitoring import record_auth_failure
from app.middleware.rate_limit import get_client_ip
from app.services.accounts import AccountService
from app.services.blacklist import TokenBlacklist
from app.services.errors import MissingToken, TokenBlacklisted, TokenExpired, TokenInvalid
from app.services.login_attempts import LoginAttemptTracker
from app.services.mailer import EmailSender
from app.services.password_reset import PasswordResetStore
from app.services.passwords import PasswordHasher
from app.services.tokens import Identity, SessionTokenService
from app.utils.logger import logger

_bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Service factories
# ---------------------------------------------------------------------------

@lru_cache
def get_password_hasher() -> PasswordHasher:
    return PasswordHasher(rounds=settings.BCRYPT_ROUNDS)


@lru_cache
def get_email_sender() -> EmailSender:
    return EmailSender(
        smtp_host=settings.SMTP_HOST,
        smtp_port=settings.SMTP_PORT,
        smtp_user=settings.SMTP_USER,
        smtp_password=settings.SMTP_PASSWORD,
        smtp_use_tls=settings.SMTP_USE_TLS,
        from_email=settings.EMAIL_FROM,
        from_name=settings.EMAIL_FROM_NAME,
        frontend_url=settings.FRONTEND_URL,
    )


def get_token_service(db: Session = Depends(get_db)) -> SessionTokenService:
    return SessionTokenService(
        blacklist=TokenBlacklist(db),
        secret=settings.JWT_SECRET,
        ttl=timedelta(seconds=settings.JWT_EXPIRE_SECONDS),
        issuer=settings.JWT_ISSUER,
        audience=settings.JWT_AUDIENCE,
        algorithm=settings.JWT_ALGORITHM,
    )


def get_login_tracker(db: Session = Depends(get_db)) -> LoginAttemptTracker:
    return LoginAttemptTracker(
        db,
        max_attempts=settings.MAX_LOGIN_ATTEMPTS,
        lockout=timedelta(minutes=settings.LOCKOUT_MINUTES),
        window=timedelta(minutes=settings.LOGIN_ATTEMPT_WINDOW_MINUTES),
    )


def get_reset_store(db: Session = Depends(get_db)) -> PasswordResetStore:
    return PasswordResetStore(db, ttl=timedelta(seconds=settings.RESET_TOKEN_TTL_SECONDS))


def get_account_service(
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_password_hasher),
    tokens: SessionTokenService = Depends(get_token_service),
    attempts: LoginAttemptTracker = Depends(get_login_tracker),
    resets: PasswordResetStore = Depends(get_reset_store),
    mailer: EmailSender = Depends(get_email_sender),
) -> AccountService:
    return AccountService(db, hasher, tokens, attempts, resets, mailer)


# ---------------------------------------------------------------------------
# require_user
# ---------------------------------------------------------------------------

def require_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    tokens: SessionTokenService = Depends(get_token_service),
) -> Identity:
    """Require ``Authorization: Bearer <token>`` and return the verified identity.

    The identity is also stored on ``request.state.user``.
    """
    log_extra = {"endpoint": request.url.path, "ip": get_client_ip(request)}

    if credentials is None:
        record_auth_failure("missing")
        logger.warning("Request without bearer token", extra=log_extra)
        raise MissingToken()

    try:
        identity = tokens.verify(credentials.credentials)
    except TokenExpired:
        record_auth_failure("expired")
        logger.info("Expired token presented", extra={**log_extra, "error_type": "token_expired"})
        raise
    except TokenBlacklisted:
        record_auth_failure("blacklisted")
        logger.warning("Revoked token presented", extra={**log_extra, "error_type": "token_revoked"})
        raise
    except TokenInvalid:
        record_auth_failure("invalid")
        logger.warning("Invalid token presented", extra={**log_extra, "error_type": "token_invalid"})
        raise

    request.state.user = identity
    return identity
