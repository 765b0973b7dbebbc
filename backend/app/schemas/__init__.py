"""Pydantic schemas for request/response validation"""
from app.schemas.user import (
    AccountDelete,
    AuthResponse,
    ForgotPasswordRequest,
    MessageResponse,
    PasswordChange,
    ProfileUpdate,
    ResetPasswordRequest,
    TokenResponse,
    UserLogin,
    UserRegister,
    UserResponse,
)

__all__ = [
    "AccountDelete",
    "AuthResponse",
    "ForgotPasswordRequest",
    "MessageResponse",
    "PasswordChange",
    "ProfileUpdate",
    "ResetPasswordRequest",
    "TokenResponse",
    "UserLogin",
    "UserRegister",
    "UserResponse",
]
