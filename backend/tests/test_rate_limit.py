"""Tests for the in-process admission control."""

import threading
from datetime import timedelta

import pytest
from starlette.requests import Request

from app.errors import RateLimitedError
from app.middleware.rate_limit import (
    AUTHENTICATION,
    GENERAL_API,
    SECRET_CREATE,
    SECRET_DISCLOSE,
    AdmissionControl,
    RateLimitPolicy,
    get_real_client_ip,
)
from app.scheduler import purge_rate_limit_buckets
from test_utils import utcnow

THREE_PER_MINUTE = RateLimitPolicy(name="test", max_operations=3, window=timedelta(minutes=1))


def make_request(headers: dict[str, str]) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": ("10.0.0.1", 1234),
    }
    return Request(scope)


class TestPolicies:
    def test_default_policies(self):
        assert (GENERAL_API.max_operations, GENERAL_API.window) == (100, timedelta(minutes=15))
        assert (SECRET_CREATE.max_operations, SECRET_CREATE.window) == (10, timedelta(hours=1))
        assert (SECRET_DISCLOSE.max_operations, SECRET_DISCLOSE.window) == (20, timedelta(minutes=5))
        assert (AUTHENTICATION.max_operations, AUTHENTICATION.window) == (5, timedelta(minutes=15))

    def test_policy_names_are_distinct(self):
        names = {p.name for p in (GENERAL_API, SECRET_CREATE, SECRET_DISCLOSE, AUTHENTICATION)}
        assert len(names) == 4


class TestFixedWindow:
    def test_first_request_opens_window(self):
        limiter = AdmissionControl()
        now = utcnow()

        decision = limiter.check("1.2.3.4", THREE_PER_MINUTE, now=now)

        assert decision.allowed is True
        assert decision.remaining == 2
        assert decision.reset_at == now + timedelta(minutes=1)

    def test_request_over_limit_is_rejected(self):
        limiter = AdmissionControl()
        now = utcnow()

        for expected_remaining in (2, 1, 0):
            decision = limiter.check("1.2.3.4", THREE_PER_MINUTE, now=now)
            assert decision.allowed is True
            assert decision.remaining == expected_remaining

        rejected = limiter.check("1.2.3.4", THREE_PER_MINUTE, now=now)
        assert rejected.allowed is False
        assert rejected.remaining == 0
        assert rejected.reset_at == now + timedelta(minutes=1)

    def test_rejections_do_not_extend_window(self):
        limiter = AdmissionControl()
        start = utcnow()
        for _ in range(3):
            limiter.check("1.2.3.4", THREE_PER_MINUTE, now=start)

        for seconds in (10, 20, 30):
            rejected = limiter.check(
                "1.2.3.4", THREE_PER_MINUTE, now=start + timedelta(seconds=seconds)
            )
            assert rejected.allowed is False
            assert rejected.reset_at == start + timedelta(minutes=1)

    def test_window_resets_after_reset_at(self):
        limiter = AdmissionControl()
        start = utcnow()
        for _ in range(4):
            limiter.check("1.2.3.4", THREE_PER_MINUTE, now=start)

        later = start + timedelta(minutes=1, seconds=1)
        decision = limiter.check("1.2.3.4", THREE_PER_MINUTE, now=later)

        assert decision.allowed is True
        assert decision.remaining == 2
        assert decision.reset_at == later + timedelta(minutes=1)

    def test_request_exactly_at_reset_at_is_still_in_window(self):
        limiter = AdmissionControl()
        start = utcnow()
        for _ in range(3):
            limiter.check("1.2.3.4", THREE_PER_MINUTE, now=start)

        decision = limiter.check("1.2.3.4", THREE_PER_MINUTE, now=start + timedelta(minutes=1))
        assert decision.allowed is False

    def test_identities_are_isolated(self):
        limiter = AdmissionControl()
        now = utcnow()
        for _ in range(3):
            limiter.check("1.2.3.4", THREE_PER_MINUTE, now=now)

        assert limiter.check("1.2.3.4", THREE_PER_MINUTE, now=now).allowed is False
        assert limiter.check("5.6.7.8", THREE_PER_MINUTE, now=now).allowed is True

    def test_operation_classes_are_isolated(self):
        limiter = AdmissionControl()
        now = utcnow()
        for _ in range(AUTHENTICATION.max_operations):
            limiter.check("1.2.3.4", AUTHENTICATION, now=now)

        assert limiter.check("1.2.3.4", AUTHENTICATION, now=now).allowed is False
        assert limiter.check("1.2.3.4", SECRET_DISCLOSE, now=now).allowed is True
        assert limiter.check("1.2.3.4", SECRET_CREATE, now=now).allowed is True

    def test_disabled_limiter_allows_everything(self):
        limiter = AdmissionControl(enabled=False)
        now = utcnow()
        for _ in range(10):
            assert limiter.check("1.2.3.4", THREE_PER_MINUTE, now=now).allowed is True
        assert len(limiter) == 0


class TestEnforce:
    def test_enforce_raises_with_reset_time(self):
        limiter = AdmissionControl()
        now = utcnow()
        for _ in range(3):
            limiter.enforce("1.2.3.4", THREE_PER_MINUTE, now=now)

        with pytest.raises(RateLimitedError) as exc_info:
            limiter.enforce("1.2.3.4", THREE_PER_MINUTE, now=now)

        assert exc_info.value.reset_at == now + timedelta(minutes=1)
        assert exc_info.value.code == "TOO_MANY_REQUESTS"
        assert exc_info.value.status_code == 429

    def test_enforce_uses_policy_message(self):
        limiter = AdmissionControl()
        now = utcnow()
        for _ in range(SECRET_CREATE.max_operations):
            limiter.enforce("1.2.3.4", SECRET_CREATE, now=now)

        with pytest.raises(RateLimitedError, match="Too many secrets created"):
            limiter.enforce("1.2.3.4", SECRET_CREATE, now=now)

    def test_retry_after_is_at_least_one_second(self):
        now = utcnow()
        assert RateLimitedError("x", reset_at=now - timedelta(seconds=5)).retry_after_seconds(now) == 1
        assert RateLimitedError("x", reset_at=now + timedelta(seconds=90)).retry_after_seconds(now) == 90
        assert (
            RateLimitedError("x", reset_at=now + timedelta(seconds=1.2)).retry_after_seconds(now)
            == 2
        )


class TestPurge:
    def test_purge_removes_only_closed_windows(self):
        limiter = AdmissionControl()
        start = utcnow()
        limiter.check("old", THREE_PER_MINUTE, now=start)
        limiter.check("new", THREE_PER_MINUTE, now=start + timedelta(seconds=50))

        purged = limiter.purge_expired(now=start + timedelta(seconds=70))

        assert purged == 1
        assert len(limiter) == 1

    def test_check_is_correct_without_purge(self):
        """A stale bucket that was never purged behaves like a fresh window."""
        limiter = AdmissionControl()
        start = utcnow()
        for _ in range(4):
            limiter.check("1.2.3.4", THREE_PER_MINUTE, now=start)

        assert len(limiter) == 1
        later = start + timedelta(hours=1)
        assert limiter.check("1.2.3.4", THREE_PER_MINUTE, now=later).allowed is True

    def test_purge_does_not_reset_open_window(self):
        limiter = AdmissionControl()
        now = utcnow()
        for _ in range(3):
            limiter.check("1.2.3.4", THREE_PER_MINUTE, now=now)

        assert limiter.purge_expired(now=now + timedelta(seconds=30)) == 0
        assert limiter.check("1.2.3.4", THREE_PER_MINUTE, now=now).allowed is False

    def test_scheduled_purge_job(self):
        limiter = AdmissionControl()
        limiter.check("old", THREE_PER_MINUTE, now=utcnow() - timedelta(hours=1))
        limiter.check("new", THREE_PER_MINUTE)

        assert purge_rate_limit_buckets(limiter) == 1
        assert len(limiter) == 1


class TestConcurrency:
    def test_concurrent_checks_never_over_admit(self):
        limiter = AdmissionControl()
        policy = RateLimitPolicy(name="burst", max_operations=25, window=timedelta(minutes=5))
        now = utcnow()
        threads_count = 16
        per_thread = 20
        barrier = threading.Barrier(threads_count)
        allowed = []
        allowed_lock = threading.Lock()

        def worker():
            barrier.wait()
            local = sum(
                1 for _ in range(per_thread) if limiter.check("shared", policy, now=now).allowed
            )
            with allowed_lock:
                allowed.append(local)

        threads = [threading.Thread(target=worker) for _ in range(threads_count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(allowed) == policy.max_operations


class TestClientIdentity:
    def test_forwarded_for_first_entry(self):
        request = make_request({"X-Forwarded-For": "198.51.100.1, 10.0.0.2, 10.0.0.3"})
        assert get_real_client_ip(request) == "198.51.100.1"

    def test_real_ip_fallback(self):
        request = make_request({"X-Real-IP": "198.51.100.9"})
        assert get_real_client_ip(request) == "198.51.100.9"

    def test_forwarded_for_wins_over_real_ip(self):
        request = make_request({"X-Forwarded-For": "198.51.100.1", "X-Real-IP": "198.51.100.9"})
        assert get_real_client_ip(request) == "198.51.100.1"

    def test_unknown_when_no_headers(self):
        """Direct connections without proxy headers share the 'unknown' bucket."""
        assert get_real_client_ip(make_request({})) == "unknown"
