"""
Domain error taxonomy.

Every error a caller can recover from carries a stable ``code`` and the HTTP
status it maps to. The exception handler registered in ``app.main`` turns
them into JSON responses; anything not derived from ``SecretShareError`` is
an unexpected failure and surfaces as a 500.
"""

from datetime import UTC, datetime


class SecretShareError(Exception):
    """Base class for recoverable, caller-facing errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(SecretShareError):
    """Absent, expired or consumed secret (deliberately indistinguishable)."""

    code = "NOT_FOUND"
    status_code = 404


class UnauthorizedError(SecretShareError):
    code = "UNAUTHORIZED"
    status_code = 401


class ForbiddenError(SecretShareError):
    code = "FORBIDDEN"
    status_code = 403


class ConflictError(SecretShareError):
    code = "CONFLICT"
    status_code = 409


class RateLimitedError(SecretShareError):
    """Admission control rejected the request; ``reset_at`` is when the window reopens."""

    code = "TOO_MANY_REQUESTS"
    status_code = 429

    def __init__(self, message: str, reset_at: datetime):
        super().__init__(message)
        self.reset_at = reset_at

    def retry_after_seconds(self, now: datetime | None = None) -> int:
        now = now or datetime.now(UTC).replace(tzinfo=None)
        remaining = (self.reset_at - now).total_seconds()
        return max(1, int(remaining + 0.999))
