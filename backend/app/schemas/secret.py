from datetime import UTC, datetime
from typing import Annotated

from pydantic import BaseModel, Field, PlainSerializer, field_validator

from app.config import settings
from app.models.secret import SecretStatus


def to_naive_utc(value: datetime) -> datetime:
    """Convert to the naive-UTC form the database stores."""
    if value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


def serialize_utc(value: datetime) -> str:
    return value.replace(tzinfo=UTC).isoformat().replace("+00:00", "Z")


UTCDateTime = Annotated[datetime, PlainSerializer(serialize_utc, return_type=str)]


class SecretCreate(BaseModel):
    title: str | None = Field(None, max_length=settings.max_title_length)
    content: str = Field(..., min_length=1, max_length=settings.max_content_length)
    password: str | None = Field(None, max_length=256)
    expires_at: datetime | None = None
    is_one_time_access: bool = False

    @field_validator("expires_at")
    @classmethod
    def validate_expires_at(cls, v: datetime | None) -> datetime | None:
        if v is None:
            return None
        v_naive = to_naive_utc(v)
        if v_naive <= datetime.now(UTC).replace(tzinfo=None):
            raise ValueError("expires_at must be in the future")
        return v_naive


class SecretCreateResponse(BaseModel):
    id: str
    slug: str
    title: str | None = None
    expires_at: UTCDateTime | None = None
    is_one_time_access: bool
    created_at: UTCDateTime


class SecretRequirementsResponse(BaseModel):
    id: str
    title: str | None = None
    requires_password: bool
    expires_at: UTCDateTime | None = None
    is_one_time_access: bool
    created_at: UTCDateTime


class SecretViewRequest(BaseModel):
    password: str | None = Field(None, max_length=256)


class SecretViewResponse(BaseModel):
    id: str
    title: str | None = None
    content: str
    expires_at: UTCDateTime | None = None
    is_one_time_access: bool
    created_at: UTCDateTime


class SecretListItem(BaseModel):
    """One row of the owner's dashboard. Never carries content or the password hash."""

    id: str
    slug: str
    title: str | None = None
    expires_at: UTCDateTime | None = None
    is_one_time_access: bool
    has_been_accessed: bool
    status: SecretStatus
    access_count: int
    has_password: bool
    created_at: UTCDateTime


class SecretListResponse(BaseModel):
    secrets: list[SecretListItem]
    total: int
    pages: int
    page: int
    page_size: int


class SecretUpdate(BaseModel):
    """Fields left out are unchanged; an explicit null clears the field."""

    title: str | None = Field(None, max_length=settings.max_title_length)
    expires_at: datetime | None = None

    @field_validator("expires_at")
    @classmethod
    def validate_expires_at(cls, v: datetime | None) -> datetime | None:
        return to_naive_utc(v) if v is not None else None


class SecretUpdateResponse(BaseModel):
    id: str
    title: str | None = None
    expires_at: UTCDateTime | None = None
    updated_at: UTCDateTime


class SecretDeleteResponse(BaseModel):
    success: bool
