"""
auth/store.py -- SQLAlchemy Core persistence layer for portal users.

Pattern: Repository + Data Mapper. UserStore is the repository and satisfies
the UserDirectory protocol the service depends on; _row_to_user is the
mapper. Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Emails are stored lowercased so lookups are case-insensitive without a
  collation dependency.

Failure model:
  Operational database errors (file missing, locked, disk full) are raised as
  DirectoryUnavailableError so the service can tell an outage apart from a
  failed login. IntegrityError (duplicate email) is left alone -- callers
  treat it as a conflict.

DB path: auth/portal_auth.db unless a db_url is passed in.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError

from auth.errors import DirectoryUnavailableError
from auth.models import User

DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'portal_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="candidate"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("token_version", Integer, nullable=False, server_default="1"),
    Column("last_login", Text),  # ISO 8601 timestamp of last successful login
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str | None = None) -> Engine:
    """Create an engine with the SQLite settings every auth store shares."""
    db_url = db_url or DEFAULT_DB_URL
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


@contextmanager
def connect(engine: Engine) -> Iterator[Connection]:
    """Open a connection, reporting operational failures as DirectoryUnavailableError."""
    try:
        with engine.connect() as conn:
            yield conn
    except OperationalError as exc:
        raise DirectoryUnavailableError("User directory unavailable") from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        store.create_user(User(email="admin@x.com", role="admin", hashed_password=hasher.hash("...")))
        user = store.find_by_email("admin@x.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    def _connect(self):
        return connect(self.engine)

    # ------------------------------------------------------------------
    # UserDirectory protocol
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self._connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self._connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_last_login(self, user_id: int, timestamp: datetime) -> None:
        """Stamp last_login after a successful password login."""
        with self._connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=timestamp.isoformat()))
            conn.commit()

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self._connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self._connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=normalize_email(user.email),
                    hashed_password=user.hashed_password,
                    role=user.role,
                    is_active=1 if user.is_active else 0,
                    token_version=user.token_version,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields (role, is_active, hashed_password).

        Returns True if a row was updated, False if user_id was not found.
        """
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        with self._connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def bump_token_version(self, user_id: int) -> int | None:
        """Increment token_version, revoking every refresh token issued so far.

        The increment happens in SQL so two concurrent bumps both land.
        Returns the new version, or None if the user does not exist.
        """
        with self._connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(token_version=_users.c.token_version + 1)
            )
            conn.commit()
            if result.rowcount == 0:
                return None
            return conn.execute(_users.select().where(_users.c.id == user_id)).fetchone().token_version

    def count_active_admins(self) -> int:
        with self._connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users WHERE role = 'admin' AND is_active = 1")).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        is_active=bool(row.is_active),
        token_version=row.token_version,
        last_login=row.last_login,
        created_at=row.created_at,
    )
