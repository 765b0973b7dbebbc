#!/usr/bin/env python3
"""
SamFilms - one-shot auth store cleanup

Intended for cron when the in-process scheduler is disabled
(CLEANUP_INTERVAL_SECONDS=0):

    */15 * * * * cd /srv/samfilms/backend && python run_cleanup.py
"""
import sys

from app.database import SessionLocal
from app.jobs.cleanup import run_cleanup
from app.utils.logger import logger


def main() -> int:
    db = SessionLocal()
    try:
        results = run_cleanup(db)
    except Exception as e:
        logger.error(f"Cleanup failed: {e}", exc_info=True)
        return 1
    finally:
        db.close()

    for table, count in results.items():
        logger.info(f"{table}: {count} row(s) deleted", extra={"count": count, "action": "cleanup"})
    return 0


if __name__ == "__main__":
    sys.exit(main())
