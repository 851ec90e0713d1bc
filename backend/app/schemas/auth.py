import re

from pydantic import BaseModel, Field, field_validator

from app.config import settings
from app.schemas.secret import UTCDateTime

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_email_format(v: str) -> str:
    v = v.strip()
    # Basic email format validation
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Invalid email format")
    return v.lower()


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=settings.min_password_length, max_length=256)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return validate_email_format(v)


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=1, max_length=256)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return validate_email_format(v)


class UserResponse(BaseModel):
    id: str
    name: str | None = None
    email: str


class AuthResponse(BaseModel):
    user: UserResponse
    token: str


class MeResponse(BaseModel):
    id: str
    name: str | None = None
    email: str
    created_at: UTCDateTime
