"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond trivial
projections). Stores and services do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

ROLES = ("admin", "candidate")


@dataclass
class User:
    """A directory record. Never returned across the service boundary as-is.

    hashed_password stays between the store and the hasher. Anything handed
    to callers goes through public() first.

    token_version is bumped to invalidate every refresh token issued before
    the bump (coarse "log out everywhere").
    """

    email: str
    role: str  # "admin" or "candidate"
    id: int | None = None
    hashed_password: str | None = None
    is_active: bool = True
    token_version: int = 1
    last_login: str | None = None  # ISO 8601
    created_at: str | None = None

    def public(self) -> PublicUser:
        return PublicUser(
            id=self.id,
            email=self.email,
            role=self.role,
            is_active=self.is_active,
            last_login=self.last_login,
            created_at=self.created_at,
        )


@dataclass(frozen=True)
class PublicUser:
    """User projection safe to return to callers (no password hash)."""

    id: int | None
    email: str
    role: str
    is_active: bool
    last_login: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Credentials:
    """Transient login input. Never persisted; the password is kept out of repr()."""

    email: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class AccessClaims:
    user_id: int
    email: str
    role: str
    jti: str
    expires_at: datetime


@dataclass(frozen=True)
class RefreshClaims:
    user_id: int
    token_version: int
    jti: str
    expires_at: datetime


@dataclass(frozen=True)
class LoginGrant:
    token: str
    refresh_token: str
    expires_at: datetime
    user: PublicUser


@dataclass(frozen=True)
class AccessGrant:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class AuthResult:
    """Tagged outcome of a service call.

    ok=True carries value (LoginGrant, PublicUser, AccessGrant, or None for
    logout). ok=False carries a caller-facing error message and nothing else.
    """

    ok: bool
    value: Any = None
    error: str | None = None

    @classmethod
    def success(cls, value: Any = None) -> AuthResult:
        return cls(ok=True, value=value)

    @classmethod
    def rejected(cls, error: str) -> AuthResult:
        return cls(ok=False, error=error)
