"""
auth/sessions.py -- Revocation registry for logged-out tokens.

A token that has been logged out must never verify again, even though its
signature and expiry are still fine. SessionInvalidator records the token's
jti together with its natural expiry; once that expiry passes the row is
useless (the token fails on expiry alone) and purge_expired() drops it.

Concurrency:
  The registry is the only shared mutable state in auth/. Every write is a
  single INSERT ... ON CONFLICT DO NOTHING committed before invalidate()
  returns, so a logout is visible to every verification that starts after
  it. Repeated logouts of the same token are no-ops.

  The upsert is built for the engine's dialect (SQLite or PostgreSQL).
  Operational database failures surface as DirectoryUnavailableError, as
  they do in UserStore.

Usage:
    sessions = SessionInvalidator(issuer)
    sessions.invalidate(token)         # best effort, never raises on bad tokens
    sessions.is_invalidated(token)     # True after logout
    sessions.purge_expired()           # call periodically to trim old rows
"""

from __future__ import annotations

import logging

from sqlalchemy import Column, Float, MetaData, String, Table, delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine

from auth.errors import InvalidTokenError
from auth.store import connect, make_engine
from auth.tokens import TokenIssuer

logger = logging.getLogger("portal.auth")

_metadata = MetaData()

_revoked_tokens = Table(
    "revoked_tokens",
    _metadata,
    Column("jti", String(64), primary_key=True),
    Column("expires_at", Float, nullable=False),  # POSIX seconds
)

# Dialects with INSERT ... ON CONFLICT DO NOTHING.
_UPSERT_INSERTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}


class SessionInvalidator:
    def __init__(self, issuer: TokenIssuer, db_url: str | None = None) -> None:
        self.issuer = issuer
        self.engine: Engine = make_engine(db_url)
        dialect = self.engine.dialect.name
        if dialect not in _UPSERT_INSERTS:
            raise ValueError(f"Unsupported database for the revocation registry: {dialect}")
        self._insert = _UPSERT_INSERTS[dialect]
        _metadata.create_all(self.engine)

    def invalidate(self, token: str) -> bool:
        """Revoke a token. Returns True if it was recorded, False if it was not ours.

        Malformed or foreign tokens can never verify anyway, so there is
        nothing to record for them.
        """
        try:
            jti, expires_at = self.issuer.token_id(token)
        except InvalidTokenError:
            logger.debug("Ignoring invalidation of an unrecognised token")
            return False
        stmt = (
            self._insert(_revoked_tokens)
            .values(jti=jti, expires_at=expires_at.timestamp())
            .on_conflict_do_nothing(index_elements=["jti"])
        )
        with connect(self.engine) as conn:
            conn.execute(stmt)
            conn.commit()
        return True

    def is_invalidated(self, token: str) -> bool:
        try:
            jti, _expires_at = self.issuer.token_id(token)
        except InvalidTokenError:
            return False
        return self.is_revoked(jti)

    def is_revoked(self, jti: str) -> bool:
        """Lookup by jti, for callers that have already decoded the token."""
        with connect(self.engine) as conn:
            row = conn.execute(select(_revoked_tokens.c.jti).where(_revoked_tokens.c.jti == jti)).fetchone()
        return row is not None

    def purge_expired(self) -> int:
        """Delete rows whose token has naturally expired. Returns number of rows removed."""
        cutoff = self.issuer.now().timestamp()
        with connect(self.engine) as conn:
            result = conn.execute(delete(_revoked_tokens).where(_revoked_tokens.c.expires_at <= cutoff))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()
