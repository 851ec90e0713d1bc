"""
Request logging middleware with correlation ID support.

Generates a unique correlation ID for each request, binds it to the structlog
context, and logs request start/completion with timing information.

Privacy: never logs IPs, authorization headers, query strings or secret slugs.
A slug is the only thing standing between a link holder and the content, so
paths are logged with the slug segment replaced.
"""

import re
import secrets
import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_HEADER = "X-Correlation-ID"

_SLUG_PATH = re.compile(r"^(/api/v1/secrets/)[^/]+(/(?:view|requirements))$")


def generate_correlation_id() -> str:
    """Generate an 8-character correlation ID."""
    return secrets.token_hex(4)


def redact_path(path: str) -> str:
    """Replace the slug in secret view/requirements paths."""
    return _SLUG_PATH.sub(r"\1{slug}\2", path)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that logs requests and adds correlation IDs.

    Logs:
    - request_started: method, path, correlation_id
    - request_completed: method, path, status_code, duration_ms, correlation_id
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = generate_correlation_id()
        start_time = time.perf_counter()
        path = redact_path(request.url.path)

        # Bind correlation ID to structlog context for this request
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

        logger = structlog.get_logger()
        logger.info("request_started", method=request.method, path=path)

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "request_failed",
                method=request.method,
                path=path,
                error=str(e),
                duration_ms=round(duration_ms, 2),
                exc_info=True,
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "request_completed",
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        # Add correlation ID to response header for debugging
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
