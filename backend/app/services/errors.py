"""Typed errors for the auth subsystem.

Each error carries the HTTP status and a stable error code; the exception
handler in app.main renders them. Expected negative outcomes (bad password,
locked IP, used reset token) are raised as these types, anything else is an
operational failure and becomes a generic 500.
"""
from typing import Any, Dict, Optional


class AuthError(Exception):
    """Base class for auth errors mapped to HTTP responses"""

    status_code: int = 400
    error_code: str = "auth_error"
    default_message: str = "Authentication error"

    def __init__(self, message: Optional[str] = None, *, detail: Optional[Dict[str, Any]] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.detail = detail or {}


class InvalidCredentials(AuthError):
    """Wrong email or password; identical for unknown emails"""
    status_code = 401
    error_code = "invalid_credentials"
    default_message = "Invalid email or password"


class AccountLocked(AuthError):
    """Client IP is locked out after too many failed logins"""
    status_code = 429
    error_code = "account_locked"
    default_message = "Too many failed login attempts"

    def __init__(self, remaining_minutes: int) -> None:
        super().__init__(
            f"Too many failed login attempts. Try again in {remaining_minutes} minute(s)",
            detail={"remaining_minutes": remaining_minutes},
        )
        self.remaining_minutes = remaining_minutes


class MissingToken(AuthError):
    status_code = 401
    error_code = "missing_token"
    default_message = "Access token required"


class TokenExpired(AuthError):
    status_code = 401
    error_code = "token_expired"
    default_message = "Token expired. Please log in again"


class TokenBlacklisted(AuthError):
    status_code = 401
    error_code = "token_revoked"
    default_message = "Token revoked. Please log in again"


class TokenInvalid(AuthError):
    status_code = 403
    error_code = "token_invalid"
    default_message = "Invalid or malformed token"


class TokenResetInvalidOrExpired(AuthError):
    """Reset secret unknown, expired or already used (deliberately one error)"""
    status_code = 400
    error_code = "reset_token_invalid"
    default_message = "Invalid or expired token"


class EmailDeliveryFailed(AuthError):
    status_code = 503
    error_code = "email_delivery_failed"
    default_message = "Reset email failed to send. Please try again later"


class DuplicateAccount(AuthError):
    status_code = 409
    error_code = "duplicate_account"
    default_message = "Email is already registered"


class AccountNotFound(AuthError):
    status_code = 404
    error_code = "account_not_found"
    default_message = "User not found"


class ConfirmationRequired(AuthError):
    status_code = 400
    error_code = "confirmation_required"
    default_message = "Confirmation text does not match"


class WeakPassword(AuthError):
    status_code = 400
    error_code = "weak_password"
    default_message = (
        "Password must be at least 8 characters and contain an uppercase letter, "
        "a lowercase letter, a digit and one of @$!%*?&"
    )
