"""
Secret lifecycle.

A secret is ``live`` until it expires or, for one-time secrets, until its
first successful disclosure consumes it. Expired, consumed and nonexistent
secrets all answer with the same NOT_FOUND so a prober cannot tell them apart.
"""

import math
import secrets as random_source
import string
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.context import CallerContext
from app.errors import ForbiddenError, NotFoundError, UnauthorizedError
from app.middleware.rate_limit import SECRET_CREATE, SECRET_DISCLOSE, AdmissionControl
from app.models.access_log import AccessLog
from app.models.secret import Secret
from app.models.user import User
from app.services.access_log_service import record_access
from app.services.crypto_utils import hash_password, verify_password

logger = structlog.get_logger()

SLUG_ALPHABET = string.ascii_letters + string.digits + "-_"
NOT_FOUND_MESSAGE = "Secret not found"

_UNSET = object()


@dataclass(frozen=True)
class DisclosedSecret:
    id: str
    title: str | None
    content: str
    expires_at: datetime | None
    is_one_time_access: bool
    created_at: datetime


@dataclass(frozen=True)
class SecretPage:
    rows: list[tuple[Secret, int]]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.page_size)


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def generate_slug(length: int | None = None) -> str:
    """Random URL-safe public identifier (64-symbol alphabet, 6 bits per character)."""
    length = length or settings.slug_length
    return "".join(random_source.choice(SLUG_ALPHABET) for _ in range(length))


def create_secret(
    db: Session,
    admission: AdmissionControl,
    ctx: CallerContext,
    content: str,
    title: str | None = None,
    password: str | None = None,
    expires_at: datetime | None = None,
    is_one_time_access: bool = False,
) -> Secret:
    """
    Create a new secret owned by the caller (or anonymous).

    The password, if any, is hashed with Argon2id before storage. Slug
    collisions are retried with a fresh slug.
    """
    admission.enforce(ctx.address, SECRET_CREATE)

    if not content:
        raise ValueError("Content is required")
    if len(content) > settings.max_content_length:
        raise ValueError(f"Content exceeds {settings.max_content_length} characters")
    if title is not None and len(title) > settings.max_title_length:
        raise ValueError(f"Title exceeds {settings.max_title_length} characters")

    password_hash = hash_password(password) if password else None
    owner_id = None
    if ctx.identity is not None:
        # A token can outlive the account it was issued for
        if db.get(User, ctx.identity.user_id) is None:
            raise UnauthorizedError("Not authenticated")
        owner_id = ctx.identity.user_id

    for attempt in range(1, settings.slug_max_attempts + 1):
        slug = generate_slug()
        secret = Secret(
            slug=slug,
            title=title,
            content=content,
            password_hash=password_hash,
            expires_at=expires_at,
            is_one_time_access=is_one_time_access,
            owner_id=owner_id,
        )
        db.add(secret)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            if db.scalar(select(Secret.id).where(Secret.slug == slug)) is None:
                raise
            logger.warning("secret_slug_collision", attempt=attempt)
            continue

        db.refresh(secret)
        logger.info(
            "secret_created",
            secret_id=secret.id,
            one_time=secret.is_one_time_access,
            has_password=secret.has_password,
            has_expiry=secret.expires_at is not None,
            anonymous=owner_id is None,
        )
        return secret

    raise RuntimeError(f"Could not allocate a unique slug after {settings.slug_max_attempts} attempts")


def _find_disclosable(db: Session, slug: str, now: datetime) -> Secret:
    secret = db.scalar(select(Secret).where(Secret.slug == slug))
    if secret is None or secret.is_expired(now) or secret.is_consumed:
        raise NotFoundError(NOT_FOUND_MESSAGE)
    return secret


def check_requirements(db: Session, slug: str) -> Secret:
    """
    Look up what the viewer needs before disclosing a secret.

    Read-only: never consumes, never logs an access.
    """
    return _find_disclosable(db, slug, utcnow())


def disclose_secret(
    db: Session,
    admission: AdmissionControl,
    ctx: CallerContext,
    slug: str,
    password: str | None = None,
) -> DisclosedSecret:
    """
    Return a secret's content if every gate passes.

    For one-time secrets the conditional ``has_been_accessed`` flip is the
    gate itself: of any number of concurrent requests only the one whose
    UPDATE matches a row gets the content. The flip and the access-log row
    are committed together.
    """
    admission.enforce(ctx.address, SECRET_DISCLOSE)

    now = utcnow()
    secret = _find_disclosable(db, slug, now)

    if secret.password_hash is not None:
        if not password:
            raise UnauthorizedError("Password required")
        if not verify_password(password, secret.password_hash):
            raise UnauthorizedError("Invalid password")

    if secret.is_one_time_access:
        result = db.execute(
            update(Secret)
            .where(
                Secret.id == secret.id,
                Secret.has_been_accessed == False,  # noqa: E712
                or_(Secret.expires_at.is_(None), Secret.expires_at > now),
            )
            .values(has_been_accessed=True, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise NotFoundError(NOT_FOUND_MESSAGE)

    disclosed = DisclosedSecret(
        id=secret.id,
        title=secret.title,
        content=secret.content,
        expires_at=secret.expires_at,
        is_one_time_access=secret.is_one_time_access,
        created_at=secret.created_at,
    )

    record_access(db, secret.id, ip_address=ctx.address, user_agent=ctx.user_agent)
    db.commit()

    logger.info("secret_disclosed", secret_id=disclosed.id, one_time=disclosed.is_one_time_access)
    if disclosed.is_one_time_access:
        logger.info("secret_consumed", secret_id=disclosed.id)

    return disclosed


def list_secrets(
    db: Session,
    owner_id: str,
    page: int = 1,
    page_size: int | None = None,
    search: str | None = None,
) -> SecretPage:
    """
    List an owner's secrets, newest first, with their access counts.

    ``search`` matches title or slug case-insensitively and is applied before
    pagination, so ``total`` counts only matching secrets.
    """
    if page_size is None:
        page_size = settings.default_page_size
    if page < 1:
        raise ValueError("page must be at least 1")
    if not 1 <= page_size <= settings.max_page_size:
        raise ValueError(f"page_size must be between 1 and {settings.max_page_size}")

    filters = [Secret.owner_id == owner_id]
    if search and search.strip():
        term = search.strip()
        filters.append(
            or_(
                Secret.title.icontains(term, autoescape=True),
                Secret.slug.icontains(term, autoescape=True),
            )
        )

    total = db.scalar(select(func.count()).select_from(Secret).where(*filters)) or 0

    access_count = (
        select(func.count(AccessLog.id))
        .where(AccessLog.secret_id == Secret.id)
        .correlate(Secret)
        .scalar_subquery()
    )
    rows = db.execute(
        select(Secret, access_count)
        .where(*filters)
        .order_by(Secret.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()

    return SecretPage(
        rows=[(secret, count) for secret, count in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


def _get_owned_secret(db: Session, secret_id: str, requester_id: str, action: str) -> Secret:
    secret = db.get(Secret, secret_id)
    if secret is None:
        raise NotFoundError(NOT_FOUND_MESSAGE)
    if secret.owner_id is None or secret.owner_id != requester_id:
        raise ForbiddenError(f"Not authorized to {action} this secret")
    return secret


def update_secret(
    db: Session,
    secret_id: str,
    requester_id: str,
    title=_UNSET,
    expires_at=_UNSET,
) -> Secret:
    """
    Change a secret's title and/or expiration.

    Arguments left out are untouched; an explicit ``None`` clears the field.
    Content, password and the one-time flag cannot be changed.
    """
    secret = _get_owned_secret(db, secret_id, requester_id, "update")

    if title is not _UNSET:
        if title is not None and len(title) > settings.max_title_length:
            raise ValueError(f"Title exceeds {settings.max_title_length} characters")
        secret.title = title
    if expires_at is not _UNSET:
        secret.expires_at = expires_at

    secret.updated_at = utcnow()
    db.commit()
    db.refresh(secret)

    logger.info("secret_updated", secret_id=secret.id)
    return secret


def delete_secret(db: Session, secret_id: str, requester_id: str) -> None:
    """Hard-delete an owned secret; its access-log rows go with it."""
    secret = _get_owned_secret(db, secret_id, requester_id, "delete")
    db.delete(secret)
    db.commit()

    logger.info("secret_deleted", secret_id=secret_id)
