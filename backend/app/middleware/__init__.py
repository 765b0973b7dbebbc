"""Middleware modules for production-ready features"""
from app.middleware.monitoring import (
    MonitoringMiddleware,
    record_auth_failure,
    record_blacklist_check_error,
    record_cleanup,
    record_lockout,
    record_login,
    record_password_reset,
)
from app.middleware.rate_limit import get_client_ip, get_rate_limit, limiter

__all__ = [
    "MonitoringMiddleware",
    "record_auth_failure",
    "record_blacklist_check_error",
    "record_cleanup",
    "record_lockout",
    "record_login",
    "record_password_reset",
    "get_client_ip",
    "get_rate_limit",
    "limiter",
]
