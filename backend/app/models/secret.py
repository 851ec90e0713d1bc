import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class SecretStatus(str, enum.Enum):
    LIVE = "live"
    EXPIRED = "expired"
    CONSUMED = "consumed"


class Secret(Base):
    """
    A shared secret.

    There is no stored status column: ``expired`` and ``consumed`` are derived
    from ``expires_at`` and ``is_one_time_access``/``has_been_accessed``.
    Both are terminal for disclosure, but the row is kept so the owner still
    sees it until they delete it.
    """

    __tablename__ = "secrets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    is_one_time_access: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_been_accessed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    owner_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(UTC).replace(tzinfo=None),
        onupdate=lambda: datetime.now(UTC).replace(tzinfo=None),
        nullable=False,
    )

    owner = relationship("User", back_populates="secrets")
    access_logs = relationship(
        "AccessLog",
        back_populates="secret",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    @property
    def is_consumed(self) -> bool:
        return self.is_one_time_access and self.has_been_accessed

    def status(self, now: datetime) -> SecretStatus:
        if self.is_expired(now):
            return SecretStatus.EXPIRED
        if self.is_consumed:
            return SecretStatus.CONSUMED
        return SecretStatus.LIVE
