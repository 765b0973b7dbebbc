"""
Auth store maintenance

Sweeps blacklist entries past their token's expiry, login attempt records
idle past the retention window, and reset tokens that are expired or used.
None of this affects correctness (expired rows never match a lookup); it
keeps the tables from growing without bound.
"""
import asyncio
from datetime import timedelta
from typing import Dict

from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.middleware.monitoring import record_cleanup
from app.services.blacklist import TokenBlacklist
from app.services.login_attempts import LoginAttemptTracker
from app.services.password_reset import PasswordResetStore
from app.utils.logger import logger


def run_cleanup(db: Session) -> Dict[str, int]:
    """Run every sweep once and return the deleted row counts per table"""
    results = {
        "blacklisted_tokens": TokenBlacklist(db).sweep_expired(),
        "login_attempts": LoginAttemptTracker(db).prune(
            timedelta(hours=settings.LOGIN_ATTEMPT_RETENTION_HOURS)
        ),
        "password_reset_tokens": PasswordResetStore(db).sweep_expired(),
    }

    for table, count in results.items():
        record_cleanup(table, count)

    logger.info(
        "Cleanup finished",
        extra={"action": "cleanup", "count": sum(results.values())}
    )
    return results


def _run_cleanup_with_session() -> Dict[str, int]:
    db = SessionLocal()
    try:
        return run_cleanup(db)
    finally:
        db.close()


async def cleanup_scheduler(interval_seconds: int) -> None:
    """
    Run the cleanup every ``interval_seconds`` until cancelled.

    The sweeps use the sync session, so each run happens in a worker thread.
    """
    logger.info(f"Cleanup scheduler started (interval: {interval_seconds}s)")

    while True:
        try:
            await asyncio.to_thread(_run_cleanup_with_session)
        except Exception as e:
            logger.error(f"Cleanup run failed: {e}", extra={"error_type": type(e).__name__}, exc_info=True)

        await asyncio.sleep(interval_seconds)
