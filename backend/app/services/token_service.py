"""
Identity tokens.

Signed HS256 JWTs binding an account id and email, valid for
``settings.token_ttl_days``. Verification never raises for a bad token:
callers get ``None`` and treat the request as anonymous.
"""

from datetime import UTC, datetime, timedelta

import jwt
import structlog

from app.config import settings
from app.context import Identity
from app.models.user import User

logger = structlog.get_logger()


def _signing_secret() -> str:
    if not settings.jwt_secret:
        raise RuntimeError("JWT_SECRET is not configured; identity tokens cannot be issued or verified")
    return settings.jwt_secret


def issue_token(user: User, now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    payload = {
        "sub": user.id,
        "email": user.email,
        "iat": now,
        "exp": now + timedelta(days=settings.token_ttl_days),
    }
    return jwt.encode(payload, _signing_secret(), algorithm=settings.jwt_algorithm)


def verify_token(token: str | None) -> Identity | None:
    """Return the identity asserted by ``token``, or None if it is missing, expired or forged."""
    if not token:
        return None

    secret = _signing_secret()
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("identity_token_expired")
        return None
    except jwt.InvalidTokenError:
        logger.debug("identity_token_invalid")
        return None

    user_id = payload.get("sub")
    email = payload.get("email")
    if not isinstance(user_id, str) or not isinstance(email, str):
        return None
    return Identity(user_id=user_id, email=email)
