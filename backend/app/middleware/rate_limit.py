"""
In-process admission control.

Fixed-window counters keyed by ``(operation class, client identity)``. Each
operation class has its own policy and its own buckets, so exhausting one
class never affects another.

State lives in this process only: several instances behind a load balancer
do not share limits, and clients that resolve to the same address (NAT,
proxies that strip headers, the ``"unknown"`` fallback) share a bucket.
"""

import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from starlette.requests import Request

from app.config import settings
from app.errors import RateLimitedError

logger = structlog.get_logger()

UNKNOWN_CLIENT = "unknown"


def get_real_client_ip(request: Request) -> str:
    """Extract real client IP, trusting forwarding headers from our proxy.

    When behind a reverse proxy, the client's real IP is the first entry of
    X-Forwarded-For, or X-Real-IP if the proxy sets that instead. Anything
    else collapses into a single shared "unknown" identity.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Take the first IP (original client)
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return UNKNOWN_CLIENT


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    max_operations: int
    window: timedelta
    message: str = "Too many requests. Please try again later."


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: datetime


@dataclass
class _Bucket:
    count: int
    reset_at: datetime


GENERAL_API = RateLimitPolicy(
    name="general",
    max_operations=settings.rate_limit_general_max,
    window=timedelta(seconds=settings.rate_limit_general_window_seconds),
)
SECRET_CREATE = RateLimitPolicy(
    name="secret_create",
    max_operations=settings.rate_limit_create_max,
    window=timedelta(seconds=settings.rate_limit_create_window_seconds),
    message="Too many secrets created. Please try again later.",
)
SECRET_DISCLOSE = RateLimitPolicy(
    name="secret_disclose",
    max_operations=settings.rate_limit_disclose_max,
    window=timedelta(seconds=settings.rate_limit_disclose_window_seconds),
    message="Too many secret access attempts. Please try again later.",
)
AUTHENTICATION = RateLimitPolicy(
    name="auth",
    max_operations=settings.rate_limit_auth_max,
    window=timedelta(seconds=settings.rate_limit_auth_window_seconds),
    message="Too many authentication attempts. Please try again later.",
)


class AdmissionControl:
    """
    Fixed-window rate limiter.

    The first request for a bucket, or the first one after its window has
    passed, opens a new window with count 1. Later requests increment the
    count until it would exceed ``max_operations``; from then on requests are
    rejected without touching the counter until ``reset_at``.

    ``purge_expired`` only reclaims memory. ``check`` treats a stale bucket
    as a fresh window whether or not it has been purged.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._buckets: dict[tuple[str, str], _Bucket] = {}
        # Held only around dictionary reads/writes, never across I/O or hashing
        self._lock = threading.Lock()

    def check(
        self, identity: str, policy: RateLimitPolicy, now: datetime | None = None
    ) -> RateLimitDecision:
        now = now or datetime.now(UTC).replace(tzinfo=None)

        if not self.enabled:
            return RateLimitDecision(
                allowed=True, remaining=policy.max_operations, reset_at=now + policy.window
            )

        key = (policy.name, identity)
        with self._lock:
            bucket = self._buckets.get(key)

            if bucket is None or now > bucket.reset_at:
                bucket = _Bucket(count=1, reset_at=now + policy.window)
                self._buckets[key] = bucket
                return RateLimitDecision(
                    allowed=True,
                    remaining=max(policy.max_operations - 1, 0),
                    reset_at=bucket.reset_at,
                )

            if bucket.count >= policy.max_operations:
                return RateLimitDecision(allowed=False, remaining=0, reset_at=bucket.reset_at)

            bucket.count += 1
            return RateLimitDecision(
                allowed=True,
                remaining=policy.max_operations - bucket.count,
                reset_at=bucket.reset_at,
            )

    def enforce(
        self, identity: str, policy: RateLimitPolicy, now: datetime | None = None
    ) -> RateLimitDecision:
        """Like ``check``, but raise ``RateLimitedError`` when the request is rejected."""
        decision = self.check(identity, policy, now=now)
        if not decision.allowed:
            logger.warning(
                "rate_limit_exceeded",
                policy=policy.name,
                reset_at=decision.reset_at.isoformat(),
            )
            raise RateLimitedError(policy.message, reset_at=decision.reset_at)
        return decision

    def purge_expired(self, now: datetime | None = None) -> int:
        """Drop buckets whose window has passed. Returns the number removed."""
        now = now or datetime.now(UTC).replace(tzinfo=None)
        with self._lock:
            stale = [key for key, bucket in self._buckets.items() if now > bucket.reset_at]
            for key in stale:
                del self._buckets[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)
