"""
auth/tokens.py -- Access and refresh JWT issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens are signed with two
       different secrets and carry a "type" claim, so one can never be
       presented as the other. Both carry a random jti used as the key in the
       invalidation registry (auth/sessions.py).

  Expiry: jose's own exp check reads the wall clock. TokenIssuer disables it
       and compares exp against its injected clock instead, so the whole
       service shares a single time source (and tests can move it).

  Errors: verification raises TokenExpiredError or InvalidTokenError. The
       service collapses both into one generic rejection for callers.

  Secrets: passed in by the caller (see from_settings()). Nothing is
       hard-coded, which leaves room for key rotation later.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import InvalidTokenError, TokenExpiredError
from auth.models import AccessClaims, RefreshClaims
from core.config import Settings

logger = logging.getLogger("portal.auth")

_ALGORITHM = "HS256"
_ACCESS = "access"
_REFRESH = "refresh"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Mints and verifies access/refresh tokens.

    Usage:
        issuer = TokenIssuer(access_secret, refresh_secret)
        token = issuer.issue_access_token(1, "user@x.com", "candidate")
        claims = issuer.verify_access_token(token)   # raises TokenError
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_lifetime: timedelta = timedelta(minutes=15),
        refresh_lifetime: timedelta = timedelta(days=7),
        issuer: str = "healthcare-portal",
        audience: str = "healthcare-portal-client",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("Token signing secrets must be configured.")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_lifetime = access_lifetime
        self.refresh_lifetime = refresh_lifetime
        self.issuer = issuer
        self.audience = audience
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], datetime] = utc_now) -> TokenIssuer:
        return cls(
            access_secret=settings.secret_key,
            refresh_secret=settings.refresh_secret_key,
            access_lifetime=timedelta(seconds=settings.access_token_expire_seconds),
            refresh_lifetime=timedelta(days=settings.refresh_token_expire_days),
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            clock=clock,
        )

    def now(self) -> datetime:
        return self.clock()

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access_token(self, user_id: int, email: str, role: str) -> str:
        claims = {"user_id": user_id, "email": email, "role": role}
        return self._encode(user_id, claims, _ACCESS, self.access_lifetime, self._access_secret)

    def issue_refresh_token(self, user_id: int, token_version: int) -> str:
        claims = {"user_id": user_id, "token_version": token_version}
        return self._encode(user_id, claims, _REFRESH, self.refresh_lifetime, self._refresh_secret)

    def access_expiry(self) -> datetime:
        """Expiry of an access token issued right now."""
        return self.now() + self.access_lifetime

    def _encode(self, user_id: int, claims: dict, token_type: str, lifetime: timedelta, secret: str) -> str:
        issued_at = self.now()
        payload = {
            **claims,
            "sub": str(user_id),
            "type": token_type,
            "jti": uuid.uuid4().hex,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + lifetime).timestamp()),
            "iss": self.issuer,
            "aud": self.audience,
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_access_token(self, token: str) -> AccessClaims:
        """Return the access claims or raise TokenExpiredError / InvalidTokenError."""
        payload = self._decode(token, self._access_secret, _ACCESS)
        self._check_expiry(payload)
        try:
            return AccessClaims(
                user_id=int(payload["user_id"]),
                email=str(payload["email"]),
                role=str(payload["role"]),
                jti=str(payload["jti"]),
                expires_at=_from_timestamp(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidTokenError("Invalid token") from exc

    def verify_refresh_token(self, token: str) -> RefreshClaims:
        """Return the refresh claims or raise TokenExpiredError / InvalidTokenError."""
        payload = self._decode(token, self._refresh_secret, _REFRESH)
        self._check_expiry(payload)
        try:
            return RefreshClaims(
                user_id=int(payload["user_id"]),
                token_version=int(payload["token_version"]),
                jti=str(payload["jti"]),
                expires_at=_from_timestamp(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidTokenError("Invalid refresh token") from exc

    def expiry_of(self, token: str) -> datetime:
        """Natural expiry of an access or refresh token, whether or not it has passed."""
        return self.token_id(token)[1]

    def token_id(self, token: str) -> tuple[str, datetime]:
        """Return (jti, expires_at) for a token signed by this issuer, ignoring expiry.

        Raises InvalidTokenError for anything this issuer did not sign.
        """
        for secret, token_type in ((self._access_secret, _ACCESS), (self._refresh_secret, _REFRESH)):
            try:
                payload = self._decode(token, secret, token_type)
            except InvalidTokenError:
                continue
            if "jti" in payload and "exp" in payload:
                return str(payload["jti"]), _from_timestamp(payload["exp"])
        raise InvalidTokenError("Invalid token")

    def _decode(self, token: str, secret: str, token_type: str) -> dict:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[_ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_exp": False},
            )
        except (JWTError, AttributeError) as exc:
            raise InvalidTokenError("Invalid token") from exc
        if payload.get("type") != token_type or "exp" not in payload:
            raise InvalidTokenError("Invalid token")
        return payload

    def _check_expiry(self, payload: dict) -> None:
        try:
            expires_at = _from_timestamp(payload["exp"])
        except (TypeError, ValueError, OverflowError) as exc:
            raise InvalidTokenError("Invalid token") from exc
        if self.now() >= expires_at:
            raise TokenExpiredError("Token expired")


def _from_timestamp(value) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)
