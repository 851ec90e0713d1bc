from app.schemas.auth import AuthResponse, LoginRequest, MeResponse, RegisterRequest, UserResponse
from app.schemas.secret import (
    SecretCreate,
    SecretCreateResponse,
    SecretDeleteResponse,
    SecretListItem,
    SecretListResponse,
    SecretRequirementsResponse,
    SecretUpdate,
    SecretUpdateResponse,
    SecretViewRequest,
    SecretViewResponse,
)

__all__ = [
    "AuthResponse",
    "LoginRequest",
    "MeResponse",
    "RegisterRequest",
    "SecretCreate",
    "SecretCreateResponse",
    "SecretDeleteResponse",
    "SecretListItem",
    "SecretListResponse",
    "SecretRequirementsResponse",
    "SecretUpdate",
    "SecretUpdateResponse",
    "SecretViewRequest",
    "SecretViewResponse",
    "UserResponse",
]
