"""Health check endpoints"""
import time
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import get_login_tracker, get_reset_store, require_user
from app.config import settings
from app.database import get_db
from app.services.blacklist import TokenBlacklist
from app.services.login_attempts import LoginAttemptTracker
from app.services.password_reset import PasswordResetStore
from app.services.tokens import Identity
from app.utils.auth import utcnow
from app.utils.logger import logger

router = APIRouter(prefix="/health", tags=["health"])

SERVICE_NAME = "samfilms-auth"
VERSION = "1.0.0"

# Track startup time
STARTUP_TIME = time.time()


@router.get("")
def health_check():
    """
    Basic health check endpoint

    Returns 200 if service is running
    """
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION,
        "timestamp": utcnow().isoformat()
    }


@router.get("/ready")
def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness check - verifies the database is reachable

    Returns 200 if ready to serve traffic, 503 if not ready
    """
    checks: Dict[str, Any] = {
        "database": False,
        "database_latency_ms": None
    }

    try:
        start = time.perf_counter()
        db.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000
    except SQLAlchemyError as e:
        logger.error(f"Readiness check failed: {e}", extra={"error_type": type(e).__name__})
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "checks": checks, "message": "Database check failed"}
        )

    checks["database"] = True
    checks["database_latency_ms"] = round(latency_ms, 2)

    if latency_ms > 1000:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "degraded", "checks": checks, "message": "Database latency is high"}
        )

    return {
        "status": "ready",
        "checks": checks,
        "timestamp": utcnow().isoformat()
    }


@router.get("/live")
def liveness_check():
    """
    Liveness check - verifies service is alive

    Used by the container liveness check
    """
    return {
        "status": "alive",
        "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
        "timestamp": utcnow().isoformat()
    }


@router.get("/stats")
def health_stats(
    db: Session = Depends(get_db),
    attempts: LoginAttemptTracker = Depends(get_login_tracker),
    resets: PasswordResetStore = Depends(get_reset_store),
    _: Identity = Depends(require_user),
):
    """
    Auth subsystem statistics

    Returns:
    - Blacklist size (active entries and entries awaiting the sweep)
    - Login attempt tracking (tracked and currently blocked IPs)
    - Outstanding password reset tokens
    """
    try:
        outstanding, total_resets = resets.active_count()
        return {
            "status": "healthy",
            "blacklist": TokenBlacklist(db).stats(),
            "login_attempts": attempts.stats(),
            "password_resets": {
                "outstanding": outstanding,
                "total": total_resets
            },
            "system": {
                "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
                "cleanup_interval_seconds": settings.CLEANUP_INTERVAL_SECONDS
            },
            "timestamp": utcnow().isoformat()
        }

    except SQLAlchemyError as e:
        logger.error(f"Stats query failed: {e}", extra={"error_type": type(e).__name__})
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "error", "message": "Statistics unavailable"}
        )
