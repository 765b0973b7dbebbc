"""Background maintenance jobs"""
from app.jobs.cleanup import cleanup_scheduler, run_cleanup

__all__ = ["cleanup_scheduler", "run_cleanup"]
