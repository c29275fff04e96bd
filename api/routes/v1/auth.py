"""
api/routes/v1/auth.py -- Authentication and user administration REST endpoints.

Routes:
  POST  /api/v1/auth/login                          -- password login; returns token pair
  POST  /api/v1/auth/refresh                        -- new access token from a refresh token
  POST  /api/v1/auth/logout                         -- invalidates presented tokens; always 200
  GET   /api/v1/auth/verify                         -- current user for a Bearer token
  GET   /api/v1/auth/me                             -- alias of /verify
  POST  /api/v1/auth/users                          -- create user (admin only)
  PATCH /api/v1/auth/users/{id}                     -- update role/is_active (admin only)
  POST  /api/v1/auth/users/{id}/revoke-sessions     -- bump token_version (admin only)

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] Login decisions live in AuthService.login() -- never inline directory
       lookups + password checks here.
  [M4] PATCH /users/{id} blocks self-deactivation and last-admin-deactivation.
  [M5] Cache-Control: no-store on every response that carries a token.

Handlers that hash or verify passwords are plain `def` so FastAPI runs them in
its threadpool and bcrypt never blocks the event loop.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    CurrentUserResponse,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    SessionsRevokedResponse,
    UserCreate,
    UserPatch,
    UserResponse,
)
from auth.dependencies import bearer_token, get_current_user, require_admin
from auth.errors import ValidationError
from auth.models import PublicUser, User
from auth.service import AuthService
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("portal.api")

_settings = get_settings()

# Auth policy:
# - POST  /auth/login, /auth/refresh, /auth/logout:  public
# - GET   /auth/verify, /auth/me:                    requires auth (get_current_user)
# - POST/PATCH /auth/users...:                       requires admin (require_admin)
router = APIRouter()


def _unauthorized(code: str, message: str) -> JSONResponse:
    resp = JSONResponse(status_code=401, content={"error": {"code": code, "message": message}})
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return access and refresh tokens.

    Unknown email and wrong password return the same "invalid credentials"
    message to avoid leaking which accounts exist.
    """
    auth_service: AuthService = request.app.state.auth_service
    result = auth_service.login(body.email, body.password)
    if not result.ok:
        return _unauthorized("bad_credentials", result.error)

    logger.info("Login succeeded user_id=%s ip=%s", result.value.user.id, request.client.host if request.client else "")
    resp = JSONResponse(status_code=200, content=LoginResponse.from_grant(result.value).model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/refresh", response_model=RefreshResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new access token. The refresh token is not rotated."""
    auth_service: AuthService = request.app.state.auth_service
    result = auth_service.refresh_token(body.refresh_token)
    if not result.ok:
        return _unauthorized("invalid_refresh_token", result.error)
    resp = JSONResponse(status_code=200, content=RefreshResponse.from_grant(result.value).model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, body: LogoutRequest | None = None) -> MessageResponse:
    """Invalidate the Bearer access token and, if given, the refresh token.

    Always 200: a client logging out is never blocked by a malformed or
    expired token.
    """
    auth_service: AuthService = request.app.state.auth_service
    token = bearer_token(request)
    if token:
        auth_service.logout(token)
    if body is not None and body.refresh_token:
        auth_service.logout(body.refresh_token)
    return MessageResponse(message="Logged out successfully.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/verify", response_model=CurrentUserResponse)
async def verify(current_user: PublicUser = Depends(get_current_user)) -> CurrentUserResponse:
    """Return the user behind the presented access token."""
    return CurrentUserResponse(user=UserResponse.from_public(current_user))


@router.get("/auth/me", response_model=CurrentUserResponse)
async def me(current_user: PublicUser = Depends(get_current_user)) -> CurrentUserResponse:
    """Alias of /auth/verify kept for frontend compatibility."""
    return CurrentUserResponse(user=UserResponse.from_public(current_user))


# ---------------------------------------------------------------------------
# User administration (admin only)
# ---------------------------------------------------------------------------


@router.post("/auth/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: PublicUser = Depends(require_admin),
) -> UserResponse:
    """Create a user account. Weak passwords are rejected with every violated rule."""
    auth_service: AuthService = request.app.state.auth_service
    user_store: UserStore = request.app.state.user_store

    try:
        auth_service.validate_password(body.password)
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "weak_password", "message": str(exc), "detail": "; ".join(exc.reasons)},
        ) from exc

    new_user = User(
        email=body.email,
        role=body.role.value,
        hashed_password=auth_service.hash_password(body.password),
    )
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that email already exists."},
        ) from exc

    logger.info("User created user_id=%s role=%s by admin_id=%s", user_id, new_user.role, current_user.id)
    return _user_to_response(user_store.find_by_id(user_id))


@router.patch("/auth/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    current_user: PublicUser = Depends(require_admin),
) -> UserResponse:
    """Update a user's role or active status. Admin only.

    Deactivation takes effect on the user's very next request: verify_token()
    re-reads the directory every time.
    """
    user_store: UserStore = request.app.state.user_store

    target = user_store.find_by_id(user_id)
    if target is None:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "User not found."})

    updates: dict = {}
    if body.role is not None:
        updates["role"] = body.role.value
    if body.is_active is not None:
        if not body.is_active and target.id == current_user.id:
            raise HTTPException(
                status_code=400,
                detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
            )
        if not body.is_active and target.role == "admin" and user_store.count_active_admins() <= 1:
            raise HTTPException(
                status_code=400,
                detail={"code": "last_admin", "message": "Cannot deactivate the last active admin account."},
            )
        updates["is_active"] = body.is_active

    if not updates:
        raise HTTPException(status_code=400, detail={"code": "no_changes", "message": "No fields to update."})

    user_store.update_user(user_id, **updates)
    return _user_to_response(user_store.find_by_id(user_id))


@router.post("/auth/users/{user_id}/revoke-sessions", response_model=SessionsRevokedResponse)
def revoke_sessions(
    request: Request,
    user_id: int,
    current_user: PublicUser = Depends(require_admin),
) -> SessionsRevokedResponse:
    """Invalidate every refresh token the user holds by bumping token_version.

    Outstanding access tokens stay valid until their short natural expiry.
    """
    user_store: UserStore = request.app.state.user_store
    version = user_store.bump_token_version(user_id)
    if version is None:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "User not found."})
    logger.info("Sessions revoked user_id=%s by admin_id=%s", user_id, current_user.id)
    return SessionsRevokedResponse(user_id=user_id, token_version=version)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user_to_response(user: User | None) -> UserResponse:
    if user is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return UserResponse.from_public(user.public())
