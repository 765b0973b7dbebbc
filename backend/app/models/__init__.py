"""Database models"""
from app.models.blacklisted_token import BlacklistedToken
from app.models.login_attempt import LoginAttempt
from app.models.password_reset_token import PasswordResetToken
from app.models.user import User

__all__ = ["BlacklistedToken", "LoginAttempt", "PasswordResetToken", "User"]
