"""Monitoring and observability middleware"""
import time
import uuid
from typing import Callable
from fastapi import Request, Response
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from app.utils.logger import logger


# ===== Prometheus Metrics =====

# Request metrics
http_requests_total = Counter(
    "samfilms_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "samfilms_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"]
)

# Error metrics
http_errors_total = Counter(
    "samfilms_http_errors_total",
    "Total HTTP errors",
    ["method", "endpoint", "status"]
)

# Auth metrics
authentication_failures_total = Counter(
    "samfilms_authentication_failures_total",
    "Total bearer token rejections",
    ["type"]  # missing, expired, blacklisted, invalid
)

login_attempts_total = Counter(
    "samfilms_login_attempts_total",
    "Total login attempts",
    ["outcome"]  # success, invalid_credentials, locked
)

lockouts_total = Counter(
    "samfilms_ip_lockouts_total",
    "Total IP lockouts triggered"
)

password_resets_total = Counter(
    "samfilms_password_resets_total",
    "Password reset lifecycle events",
    ["event"]  # requested, unknown_email, email_failed, completed, rejected
)

blacklist_check_errors_total = Counter(
    "samfilms_blacklist_check_errors_total",
    "Blacklist lookups that failed and were treated as not revoked"
)

cleanup_deleted_total = Counter(
    "samfilms_cleanup_deleted_total",
    "Rows removed by the maintenance sweep",
    ["table"]
)


def _endpoint_label(request: Request) -> str:
    """Route template (e.g. /api/v1/users/me) rather than the raw path"""
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Request metrics, request ids and slow-request logging"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.perf_counter()
        method = request.method

        request_id = request.headers.get("x-request-id") or f"req_{uuid.uuid4().hex[:16]}"
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - start
            endpoint = _endpoint_label(request)
            http_errors_total.labels(method=method, endpoint=endpoint, status=500).inc()
            logger.error(
                f"Request failed: {method} {endpoint}",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "endpoint": endpoint,
                    "duration": round(duration, 4),
                },
                exc_info=True
            )
            raise

        duration = time.perf_counter() - start
        status = response.status_code
        endpoint = _endpoint_label(request)

        http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
        http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)
        if status >= 400:
            http_errors_total.labels(method=method, endpoint=endpoint, status=status).inc()

        # bcrypt alone costs ~250ms at 12 rounds, so only flag well beyond that
        if duration > 2.0:
            logger.warning(
                f"Slow request detected: {method} {endpoint}",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "endpoint": endpoint,
                    "duration": round(duration, 4),
                    "status": status
                }
            )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        return response


def record_auth_failure(auth_type: str):
    """Record a rejected bearer token"""
    authentication_failures_total.labels(type=auth_type).inc()


def record_login(outcome: str):
    """Record a login attempt outcome"""
    login_attempts_total.labels(outcome=outcome).inc()


def record_lockout():
    """Record an IP crossing the lockout threshold"""
    lockouts_total.inc()


def record_password_reset(event: str):
    """Record a password reset lifecycle event"""
    password_resets_total.labels(event=event).inc()


def record_blacklist_check_error():
    """Record a blacklist lookup that failed open"""
    blacklist_check_errors_total.inc()


def record_cleanup(table: str, count: int):
    """Record rows deleted by the maintenance sweep"""
    if count:
        cleanup_deleted_total.labels(table=table).inc(count)
