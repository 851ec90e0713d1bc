import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.access_log import AccessLog

logger = structlog.get_logger()


def record_access(
    db: Session,
    secret_id: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> bool:
    """
    Append an access-log row for a disclosure.

    Best effort: the insert runs in a savepoint so a failure rolls back only
    the log row, leaving the caller's transaction (and the disclosure) intact.
    Returns whether the row was written. Nothing is committed here.
    """
    try:
        with db.begin_nested():
            db.add(AccessLog(secret_id=secret_id, ip_address=ip_address, user_agent=user_agent))
    except SQLAlchemyError as e:
        logger.warning("access_log_failed", secret_id=secret_id, error=type(e).__name__)
        return False
    return True
