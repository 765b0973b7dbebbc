"""Rate limiting middleware for API protection"""
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings


def get_client_ip(request: Request) -> str:
    """
    Resolve the client IP used for rate limiting and login throttling

    X-Forwarded-For is only honoured when TRUST_PROXY_HEADERS is set, otherwise
    any client could pick its own throttling key.
    """
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return get_remote_address(request) or "unknown"


# Create limiter instance
limiter = Limiter(
    key_func=get_client_ip,
    default_limits=settings.RATE_LIMIT_DEFAULT,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


# Rate limit configurations for different endpoints
RATE_LIMITS = {
    # Credential endpoints; the persistent per-IP lockout is the real brute-force guard
    "register": "10/hour",
    "login": "30/minute",
    "forgot_password": "5/minute",
    "reset_password": "10/minute",

    # Authenticated account endpoints
    "account_read": "120/minute",
    "account_write": "30/minute",

    # Public endpoints
    "health": "100/minute",
}


def get_rate_limit(endpoint: str) -> str:
    """Get rate limit for specific endpoint"""
    return RATE_LIMITS.get(endpoint, settings.RATE_LIMIT_DEFAULT[0])
