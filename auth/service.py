"""
auth/service.py -- AuthService: login, token verification, refresh, logout.

AuthService owns no persistent state. It adjudicates each attempt by
composing its injected collaborators:

  UserDirectory      -- source of truth for identity (auth/store.UserStore)
  PasswordHasher     -- bcrypt verify / hash (auth/passwords.py)
  PasswordPolicy     -- complexity rules (auth/passwords.py)
  TokenIssuer        -- JWT mint / verify (auth/tokens.py)
  SessionInvalidator -- revocation registry (auth/sessions.py)

Every operation returns an AuthResult. Rejection messages are deliberately
coarse: unknown email and wrong password share "invalid credentials", and
expired vs. malformed tokens share one message, so responses do not help with
credential enumeration.

DirectoryUnavailableError is not caught here. A directory outage is an
incident, not a failed login.

Concurrency: all methods are synchronous. FastAPI runs the `def` route
handlers that call them in its threadpool, so bcrypt never stalls the event
loop and no lock is held across requests.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from auth.errors import TokenError, ValidationError
from auth.models import AccessGrant, AuthResult, Credentials, LoginGrant, User
from auth.passwords import PasswordHasher, PasswordPolicy
from auth.sessions import SessionInvalidator
from auth.tokens import TokenIssuer

logger = logging.getLogger("portal.auth")

LOGIN_FAILED = "login failed"
INVALID_CREDENTIALS = "invalid credentials"
ACCOUNT_INACTIVE = "account is inactive"
INVALID_TOKEN = "invalid or expired token"
INVALID_REFRESH_TOKEN = "invalid or expired refresh token"
TOKEN_INVALIDATED = "token has been invalidated"
USER_UNAVAILABLE = "user not found or inactive"
STALE_REFRESH_TOKEN = "refresh token is stale"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class UserDirectory(Protocol):
    def find_by_email(self, email: str) -> User | None: ...

    def find_by_id(self, user_id: int) -> User | None: ...

    def update_last_login(self, user_id: int, timestamp) -> None: ...


class AuthService:
    def __init__(
        self,
        directory: UserDirectory,
        issuer: TokenIssuer,
        sessions: SessionInvalidator,
        hasher: PasswordHasher | None = None,
        policy: PasswordPolicy | None = None,
    ) -> None:
        self.directory = directory
        self.issuer = issuer
        self.sessions = sessions
        self.hasher = hasher or PasswordHasher()
        self.policy = policy or PasswordPolicy()

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> AuthResult:
        """Adjudicate a password login.

        The hasher only runs for an existing, active account. Unknown email and
        inactive accounts return before any bcrypt work.
        """
        credentials = Credentials(email=email, password=password)
        try:
            _validate_login_input(credentials)
        except ValidationError as exc:
            logger.debug("Login rejected before lookup: %s", exc.reasons)
            return AuthResult.rejected(LOGIN_FAILED)

        user = self.directory.find_by_email(credentials.email)
        if user is None:
            logger.warning("Login attempt for unknown email")
            return AuthResult.rejected(INVALID_CREDENTIALS)

        if not user.is_active:
            logger.warning("Login attempt for inactive account user_id=%s", user.id)
            return AuthResult.rejected(ACCOUNT_INACTIVE)

        if not user.hashed_password or not self.hasher.verify(credentials.password, user.hashed_password):
            logger.warning("Login attempt with wrong password user_id=%s", user.id)
            return AuthResult.rejected(INVALID_CREDENTIALS)

        token = self.issuer.issue_access_token(user.id, user.email, user.role)
        refresh_token = self.issuer.issue_refresh_token(user.id, user.token_version)
        now = self.issuer.now()
        self.directory.update_last_login(user.id, now)
        user.last_login = now.isoformat()

        logger.info("User logged in user_id=%s", user.id)
        return AuthResult.success(
            LoginGrant(
                token=token,
                refresh_token=refresh_token,
                expires_at=self.issuer.expiry_of(token),
                user=user.public(),
            )
        )

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def verify_token(self, token: str) -> AuthResult:
        """Verify an access token and return the current PublicUser.

        The user is re-fetched on every call so deactivation or deletion after
        issuance takes effect immediately.
        """
        try:
            claims = self.issuer.verify_access_token(token)
        except TokenError as exc:
            logger.debug("Access token rejected: %s", exc)
            return AuthResult.rejected(INVALID_TOKEN)

        if self.sessions.is_revoked(claims.jti):
            return AuthResult.rejected(TOKEN_INVALIDATED)

        user = self.directory.find_by_id(claims.user_id)
        if user is None or not user.is_active:
            return AuthResult.rejected(USER_UNAVAILABLE)
        return AuthResult.success(user.public())

    def refresh_token(self, refresh_token: str) -> AuthResult:
        """Mint a new access token from a refresh token.

        The refresh token itself is not rotated. It is rejected as stale once
        the user's token_version has moved past the version it carries.
        """
        try:
            claims = self.issuer.verify_refresh_token(refresh_token)
        except TokenError as exc:
            logger.debug("Refresh token rejected: %s", exc)
            return AuthResult.rejected(INVALID_REFRESH_TOKEN)

        if self.sessions.is_revoked(claims.jti):
            return AuthResult.rejected(TOKEN_INVALIDATED)

        user = self.directory.find_by_id(claims.user_id)
        if user is None or not user.is_active:
            return AuthResult.rejected(USER_UNAVAILABLE)

        if user.token_version != claims.token_version:
            logger.info("Stale refresh token user_id=%s", user.id)
            return AuthResult.rejected(STALE_REFRESH_TOKEN)

        token = self.issuer.issue_access_token(user.id, user.email, user.role)
        logger.debug("Access token refreshed user_id=%s", user.id)
        return AuthResult.success(AccessGrant(token=token, expires_at=self.issuer.expiry_of(token)))

    def logout(self, token: str) -> AuthResult:
        """Invalidate a token. Always succeeds, whatever shape the token is in."""
        if token and self.sessions.invalidate(token):
            logger.debug("Token invalidated")
        return AuthResult.success()

    # ------------------------------------------------------------------
    # Passwords (for user-creation flows)
    # ------------------------------------------------------------------

    def hash_password(self, password: str) -> str:
        return self.hasher.hash(password)

    def validate_password(self, password: str) -> None:
        """Raise ValidationError listing every policy violation."""
        self.policy.validate(password)


def _validate_login_input(credentials: Credentials) -> None:
    reasons: list[str] = []
    if not credentials.email:
        reasons.append("Email is required")
    elif not _EMAIL_RE.match(credentials.email):
        reasons.append("Invalid email format")
    if not credentials.password:
        reasons.append("Password is required")
    if reasons:
        raise ValidationError(reasons)
