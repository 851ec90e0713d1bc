from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from app.config import settings
from app.database import engine
from app.errors import RateLimitedError, SecretShareError
from app.logging_config import setup_logging
from app.middleware.logging import CORRELATION_HEADER, LoggingMiddleware
from app.middleware.rate_limit import AdmissionControl
from app.routers import auth, secrets
from app.scheduler import shutdown_scheduler, start_scheduler
from app.schemas.secret import serialize_utc

# Database tables are managed by Alembic migrations
# Run: alembic upgrade head (from backend/)

REQUIRED_TABLES = {"users", "secrets", "access_logs"}

logger = structlog.get_logger()


def check_database_tables() -> None:
    """Fail fast if migrations have not been applied."""
    existing = set(inspect(engine).get_table_names())
    missing = REQUIRED_TABLES - existing
    if missing:
        raise RuntimeError(
            f"Database tables missing: {', '.join(sorted(missing))}. "
            "Run `alembic upgrade head` from backend/ before starting the server."
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - logging, schema check, housekeeping scheduler."""
    setup_logging()
    check_database_tables()
    start_scheduler(app.state.admission)
    yield
    shutdown_scheduler()


app = FastAPI(
    title="SecretShare",
    description="Share short-lived, optionally password-protected, view-once secrets",
    version="0.1.0",
    lifespan=lifespan,
)

# One admission-control instance per process; its buckets live in memory
app.state.admission = AdmissionControl()


@app.exception_handler(SecretShareError)
async def secret_share_error_handler(request: Request, exc: SecretShareError) -> JSONResponse:
    body = {"detail": exc.message, "code": exc.code}
    headers = {}
    if isinstance(exc, RateLimitedError):
        reset_at = serialize_utc(exc.reset_at)
        body["reset_at"] = reset_at
        headers["Retry-After"] = str(exc.retry_after_seconds())
        headers["X-RateLimit-Reset"] = reset_at
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort 500 that still carries the request's correlation ID."""
    correlation_id = structlog.contextvars.get_contextvars().get("correlation_id")
    headers = {CORRELATION_HEADER: correlation_id} if correlation_id else {}
    logger.error("unhandled_exception", error_type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"},
        headers=headers,
    )


app.add_middleware(LoggingMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth.router, prefix="/api/v1", tags=["auth"])
app.include_router(secrets.router, prefix="/api/v1", tags=["secrets"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
