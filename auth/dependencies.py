"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Access tokens arrive as `Authorization: Bearer <token>`. Every check goes
through AuthService.verify_token(), so revocation, deactivation and expiry
are enforced in one place.

get_current_user() raises HTTP 401 if the request is not authenticated.
require_admin() wraps get_current_user() and raises HTTP 403 if not admin.

Layer rule: auth/dependencies.py may import from fastapi (for HTTPException /
Request) because this module is part of the FastAPI dependency injection
system. It does not import from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import PublicUser
from auth.service import AuthService


def bearer_token(request: Request) -> str | None:
    """Return the raw token from the Authorization header, or None."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_current_user(request: Request) -> PublicUser:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: PublicUser = Depends(get_current_user)): ...
    """
    token = bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Access token required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    auth_service: AuthService = request.app.state.auth_service
    result = auth_service.verify_token(token)
    if not result.ok:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": result.error},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return result.value


def require_admin(request: Request) -> PublicUser:
    """Require admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    user = get_current_user(request)
    if user.role != "admin":
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return user
