"""
auth/errors.py -- Exception hierarchy for the credential core.

Two families:
  Recoverable auth outcomes (ValidationError, AuthenticationError, TokenError)
      -- the service turns these into rejected AuthResults; callers surface a
      message and move on.

  Infrastructure failures (DirectoryUnavailableError) -- propagate untouched
      through the service. Folding a database outage into "invalid
      credentials" would hide incidents and lock users out silently.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error raised by auth/."""


class ValidationError(AuthError):
    """Malformed input. Carries every human-readable reason, first one as the message."""

    def __init__(self, reasons: list[str]) -> None:
        self.reasons = list(reasons)
        super().__init__(self.reasons[0] if self.reasons else "Validation failed")


class AuthenticationError(AuthError):
    """Credential mismatch, inactive account, or unusable token."""


class TokenError(AuthenticationError):
    """A token failed verification."""


class TokenExpiredError(TokenError):
    """Signature is valid but the token is past its expiry."""


class InvalidTokenError(TokenError):
    """Bad signature, wrong token type, or malformed claims."""


class DirectoryUnavailableError(AuthError):
    """The user directory could not be reached."""
