import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.context import CallerContext
from app.errors import ConflictError, NotFoundError, UnauthorizedError
from app.middleware.rate_limit import AUTHENTICATION, AdmissionControl
from app.models.user import User
from app.services.crypto_utils import hash_password, verify_password
from app.services.token_service import issue_token

logger = structlog.get_logger()

INVALID_CREDENTIALS = "Invalid credentials"

# Verified against when the email is unknown, so both failures cost one Argon2 verify
_DUMMY_HASH = hash_password("no-such-account")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == normalize_email(email)))


def register_user(
    db: Session,
    admission: AdmissionControl,
    ctx: CallerContext,
    name: str,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Create an account and sign the caller in.

    Returns tuple of (user, token).
    """
    admission.enforce(ctx.address, AUTHENTICATION)

    email = normalize_email(email)
    if find_user_by_email(db, email) is not None:
        raise ConflictError("User with this email already exists")

    user = User(name=name, email=email, password_hash=hash_password(password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email
        db.rollback()
        raise ConflictError("User with this email already exists")
    db.refresh(user)

    logger.info("user_registered", user_id=user.id)
    return user, issue_token(user)


def login_user(
    db: Session,
    admission: AdmissionControl,
    ctx: CallerContext,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Verify credentials and issue a token.

    Unknown email and wrong password answer with the same message.
    """
    admission.enforce(ctx.address, AUTHENTICATION)

    user = find_user_by_email(db, email)
    password_hash = user.password_hash if user is not None else _DUMMY_HASH
    if not verify_password(password, password_hash) or user is None:
        logger.info("user_login_failed")
        raise UnauthorizedError(INVALID_CREDENTIALS)

    logger.info("user_logged_in", user_id=user.id)
    return user, issue_token(user)


def get_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user
