"""
FastAPI application entry point.

This module sets up the FastAPI application with middleware, the approval
routers, error mapping and the audit outbox lifecycle.
"""
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from routers import audit_logs, documents, medical_leaves, profile_change_requests, registrations, sport_registrations
from core.auth import get_db_engine
from core.config import settings
from core.database import check_db_connection, dispose_engine
from core.exceptions import ErrorKind, PlatformError
from core.logging import setup_logging
from services.audit_logger import get_audit_outbox
import logging
import time

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)


def _filter_sensitive_data(event):
    """Filter sensitive data before sending to Sentry."""
    # Remove Authorization headers
    if "request" in event and "headers" in event["request"]:
        headers = event["request"]["headers"]
        if isinstance(headers, dict):
            headers.pop("authorization", None)
            headers.pop("cookie", None)
    return event


# Initialize Sentry for error tracking (production)
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        # Don't send PII
        send_default_pii=False,
        before_send=lambda event, hint: _filter_sensitive_data(event),
    )
    logger.info(f"Sentry initialized for environment: {settings.ENVIRONMENT}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    outbox = get_audit_outbox()
    outbox.start()
    logger.info("Audit outbox started")
    try:
        yield
    finally:
        await outbox.stop()
        logger.info(
            "Audit outbox stopped",
            extra={"extra_fields": {"written": outbox.written, "failed": outbox.failed, "dropped": outbox.dropped}},
        )
        await dispose_engine()


# Create FastAPI app
app = FastAPI(
    title="AthleteHub Approval API",
    description="Role-gated approval workflows for athletes, coaches, specialists and officials",
    version="1.0.0",
    docs_url="/docs" if (settings.DEBUG or settings.EXPOSE_API_DOCS) else None,
    redoc_url="/redoc" if (settings.DEBUG or settings.EXPOSE_API_DOCS) else None,
    lifespan=lifespan,
)


# CORS middleware
# Production: set CORS_ORIGINS env var (comma-separated)
# Development: DEBUG=True allows all origins
if settings.DEBUG:
    allowed_origins = ["*"]
elif settings.CORS_ORIGINS:
    allowed_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",")]
else:
    allowed_origins = [settings.WEB_APP_BASE_URL]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with timing information."""
    start_time = time.time()

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"Request failed: {request.method} {request.url.path}",
            exc_info=True,
            extra={
                "extra_fields": {
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                }
            }
        )
        raise

    process_time = time.time() - start_time
    logger.info(
        f"Response: {request.method} {request.url.path} - {response.status_code}",
        extra={
            "extra_fields": {
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "process_time_ms": round(process_time * 1000, 2),
            }
        }
    )
    response.headers["X-Process-Time"] = str(process_time)
    return response


@app.exception_handler(PlatformError)
async def platform_error_handler(request: Request, exc: PlatformError):
    """
    Map tagged errors to HTTP responses.

    Server-side failures answer with the generic detail only; the original
    error is logged for operators.
    """
    if exc.kind == ErrorKind.TRANSACTION:
        logger.error(
            f"Transaction failed: {request.method} {request.url.path}",
            extra={
                "extra_fields": {
                    "transaction_id": getattr(exc, "transaction_id", None),
                    "cause": str(getattr(exc, "cause", None)),
                }
            }
        )
    headers = {"WWW-Authenticate": "Bearer"} if exc.kind == ErrorKind.AUTHENTICATION else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": exc.error_code, "kind": exc.kind.value},
        headers=headers,
    )


# Error handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=True,
        extra={
            "extra_fields": {
                "method": request.method,
                "path": request.url.path,
            }
        }
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/health")
async def health(engine: AsyncEngine = Depends(get_db_engine)):
    """
    Simple health check for load balancers and uptime monitors.

    Returns:
        - 200: Core systems operational
        - 503: Database unavailable
    """
    if not await check_db_connection(engine):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "database": "unavailable",
            }
        )

    outbox = get_audit_outbox()
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "audit_outbox": {"pending": outbox.pending, "dropped": outbox.dropped, "failed": outbox.failed},
    }


@app.get("/ping")
async def ping():
    """Liveness probe, no dependencies."""
    return {"status": "ok"}


app.include_router(registrations.router)
app.include_router(documents.router)
app.include_router(medical_leaves.router)
app.include_router(profile_change_requests.router)
app.include_router(sport_registrations.router)
app.include_router(audit_logs.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_RELOAD,
        log_config=None,
    )
