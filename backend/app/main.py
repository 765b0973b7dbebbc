"""FastAPI application entry point"""
import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from prometheus_fastapi_instrumentator import Instrumentator

from app.api import health, users
from app.config import settings
from app.jobs.cleanup import cleanup_scheduler
from app.middleware.rate_limit import limiter
from app.services.errors import AuthError
from app.utils.logger import logger, setup_logging

# Setup logging
setup_logging(settings.LOG_LEVEL)

_cleanup_task: Optional[asyncio.Task] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    global _cleanup_task

    # Startup
    logger.info("SamFilms auth backend starting up", extra={
        "version": "1.0.0",
        "log_level": settings.LOG_LEVEL,
        "rate_limiting": settings.RATE_LIMIT_ENABLED,
        "monitoring": settings.METRICS_ENABLED
    })
    if settings.CLEANUP_INTERVAL_SECONDS > 0:
        _cleanup_task = asyncio.create_task(cleanup_scheduler(settings.CLEANUP_INTERVAL_SECONDS))
    else:
        logger.info("Cleanup scheduler disabled, run run_cleanup.py from cron")

    yield

    # Shutdown
    if _cleanup_task and not _cleanup_task.done():
        _cleanup_task.cancel()
        try:
            await _cleanup_task
        except asyncio.CancelledError:
            logger.info("Cleanup scheduler cancelled")
    logger.info("SamFilms auth backend shutting down")


# Create FastAPI app
app = FastAPI(
    title="SamFilms Auth",
    description="Accounts, sessions and password recovery for the SamFilms movie catalog",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# ===== Middleware Setup =====

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Monitoring middleware
if settings.METRICS_ENABLED:
    from app.middleware.monitoring import MonitoringMiddleware
    app.add_middleware(MonitoringMiddleware)

    # Prometheus metrics
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/health", "/health/ready", "/health/live"],
        inprogress_name="samfilms_requests_inprogress",
        inprogress_labels=True
    )
    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint=settings.METRICS_PATH, include_in_schema=False)

# Rate limiting; the route decorators need the limiter on app.state even when disabled
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors"""
    logger.warning(
        "Rate limit exceeded",
        extra={
            "endpoint": request.url.path,
            "method": request.method,
            "ip": request.client.host if request.client else "unknown"
        }
    )
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": "rate_limit_exceeded",
            "message": "Too many requests. Please try again later.",
            "detail": str(exc.detail)
        }
    )


# ===== Route Setup =====

app.include_router(health.router)
app.include_router(users.router, prefix=settings.API_PREFIX)


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "service": "SamFilms Auth",
        "version": "1.0.0",
        "status": "operational",
        "docs": "/docs",
        "health": "/health",
        "metrics": settings.METRICS_PATH if settings.METRICS_ENABLED else None
    }


# ===== Error Handlers =====

@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    """Render expected auth outcomes with their status and error code"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.error_code,
            "message": exc.message,
            **exc.detail
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for uncaught errors"""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={
            "endpoint": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__
        },
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please contact support."
        }
    )
