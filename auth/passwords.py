"""
auth/passwords.py -- Password strength policy and bcrypt hashing.

Security design decisions:
  Policy: minimum 8 characters with at least one lowercase letter, one
       uppercase letter and one digit. violations() reports every failed rule
       in a fixed order so callers can show all of them or just the first.

  Hashing: bcrypt directly (no passlib wrapper). passlib's internal wrap-bug
       detection creates a password longer than 72 bytes, which bcrypt 4.x
       rejects with an explicit error. The cost factor is fixed per hasher
       instance (default 12). bcrypt embeds the cost in each hash, so hashes
       minted under an older factor still verify.

  Long passwords: bcrypt only reads 72 bytes and bcrypt 5.x raises on more.
       The plaintext is first reduced to base64(sha256(utf-8 bytes)), a fixed
       44-byte input, in both hash() and verify(). Every character the user
       typed counts, and no policy-valid password can crash the hasher.

  Verification: bcrypt.checkpw compares in constant time. verify() never
       raises -- a corrupt stored hash is just a mismatch.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import re

import bcrypt

from auth.errors import ValidationError

logger = logging.getLogger("portal.auth")

BCRYPT_ROUNDS = 12
MIN_PASSWORD_LENGTH = 8

# (pattern that must match, reason when it does not). Order is the report order.
_CHARACTER_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least one number"),
)


class PasswordPolicy:
    """Stateless password complexity rules."""

    def __init__(self, min_length: int = MIN_PASSWORD_LENGTH) -> None:
        self.min_length = min_length

    def violations(self, password: str) -> list[str]:
        """Return every rule the password breaks, in a deterministic order."""
        reasons: list[str] = []
        if len(password or "") < self.min_length:
            reasons.append(f"Password must be at least {self.min_length} characters long")
        for pattern, reason in _CHARACTER_RULES:
            if not pattern.search(password or ""):
                reasons.append(reason)
        return reasons

    def validate(self, password: str) -> None:
        """Raise ValidationError listing all violations. Returns None if the password is acceptable."""
        reasons = self.violations(password)
        if reasons:
            raise ValidationError(reasons)


class PasswordHasher:
    """bcrypt hash and verify with a fixed cost factor."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS) -> None:
        self.rounds = rounds

    def hash(self, plain: str) -> str:
        """Return a randomly salted bcrypt hash of the given plaintext."""
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(_prehash(plain), salt).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext matches the hash. Never raises."""
        try:
            return bcrypt.checkpw(_prehash(plain), hashed.encode("utf-8"))
        except (ValueError, TypeError, AttributeError):
            logger.warning("Stored password hash could not be parsed")
            return False


def _prehash(plain: str) -> bytes:
    # base64 keeps NUL bytes out of the bcrypt input.
    return base64.b64encode(hashlib.sha256(plain.encode("utf-8")).digest())
