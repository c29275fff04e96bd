"""
API request and response models for the portal auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

LoginRequest.email is a plain string on purpose: the service decides what a
malformed login looks like and answers with one generic message, so a 422
from field validation would leak which field was wrong.
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import AccessGrant, LoginGrant, PublicUser

# Emails are trimmed; passwords are taken exactly as typed.
StrippedStr = Annotated[str, StringConstraints(strip_whitespace=True)]

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    admin = "admin"
    candidate = "candidate"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: StrippedStr = Field(default="", max_length=255)
    password: str = Field(default="", max_length=128)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh."""

    refresh_token: str = Field(min_length=1, max_length=4096)


class LogoutRequest(BaseModel):
    """Optional body for POST /api/v1/auth/logout -- also revokes the refresh token."""

    refresh_token: Optional[str] = Field(default=None, max_length=4096)


class UserCreate(BaseModel):
    """Request body for POST /api/v1/auth/users (admin only).

    Password complexity is checked by the service, not here, so the caller
    receives every policy violation at once.
    """

    email: StrippedStr = Field(min_length=3, max_length=255, pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
    password: str = Field(min_length=1, max_length=128)
    role: RoleEnum = RoleEnum.candidate


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/auth/users/{id} (admin only)."""

    role: Optional[RoleEnum] = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. There is no password hash field to leak."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: str
    is_active: bool
    last_login: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_public(cls, user: PublicUser) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            last_login=user.last_login,
            created_at=user.created_at,
        )


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login."""

    model_config = ConfigDict(frozen=True)

    token: str
    refresh_token: str
    expires_at: str
    user: UserResponse

    @classmethod
    def from_grant(cls, grant: LoginGrant) -> "LoginResponse":
        return cls(
            token=grant.token,
            refresh_token=grant.refresh_token,
            expires_at=grant.expires_at.isoformat(),
            user=UserResponse.from_public(grant.user),
        )


class RefreshResponse(BaseModel):
    """Response for POST /api/v1/auth/refresh."""

    model_config = ConfigDict(frozen=True)

    token: str
    expires_at: str

    @classmethod
    def from_grant(cls, grant: AccessGrant) -> "RefreshResponse":
        return cls(token=grant.token, expires_at=grant.expires_at.isoformat())


class CurrentUserResponse(BaseModel):
    """Response for GET /api/v1/auth/verify and /auth/me."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class SessionsRevokedResponse(BaseModel):
    """Response for POST /api/v1/auth/users/{id}/revoke-sessions."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    token_version: int


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
