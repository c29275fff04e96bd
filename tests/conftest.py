"""
tests/conftest.py -- Shared test fixtures for the portal auth tests.

This module provides:
  - FakeClock: a movable clock shared by TokenIssuer and the service
  - issuer / store / sessions / service: real components on isolated in-memory DBs
  - make_user: insert a user with a known password
  - api_client: TestClient wired to isolated stores via a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

DEBUG, BCRYPT_ROUNDS and LOGIN_RATE_LIMIT must be set before any auth/api
import: get_settings() is cached on first use and the login rate limit is
read when the routes module is imported.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.sessions import SessionInvalidator
from auth.store import UserStore
from auth.tokens import TokenIssuer
from helpers import ACCESS_SECRET, FAST_ROUNDS, REFRESH_SECRET, FakeClock, shared_memory_url


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def issuer(clock: FakeClock) -> TokenIssuer:
    return TokenIssuer(ACCESS_SECRET, REFRESH_SECRET, clock=clock)


@pytest.fixture
def db_url() -> str:
    return shared_memory_url("test_auth")


@pytest.fixture
def store(db_url: str) -> Generator[UserStore, None, None]:
    s = UserStore(db_url)
    yield s
    s.close()


@pytest.fixture
def sessions(issuer: TokenIssuer, db_url: str) -> Generator[SessionInvalidator, None, None]:
    s = SessionInvalidator(issuer, db_url)
    yield s
    s.close()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=FAST_ROUNDS)


@pytest.fixture
def service(store: UserStore, issuer: TokenIssuer, sessions: SessionInvalidator, hasher: PasswordHasher) -> AuthService:
    return AuthService(directory=store, issuer=issuer, sessions=sessions, hasher=hasher)


@pytest.fixture
def make_user(store: UserStore, hasher: PasswordHasher):
    """Return a factory that inserts a user and returns the stored record."""

    def _make(email: str = "user@x.com", password: str = "Passw0rd!", role: str = "candidate", is_active: bool = True):
        uid = store.create_user(
            User(email=email, role=role, hashed_password=hasher.hash(password), is_active=is_active)
        )
        return store.find_by_id(uid)

    return _make


# ---------------------------------------------------------------------------
# API fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, sessions: SessionInvalidator, service: AuthService):
    """Return a lifespan that wires pre-built test components into app.state.

    The purge_task is a long-sleeping coroutine so shutdown has a real
    asyncio.Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.sessions = sessions
        app.state.auth_service = service
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The admin is admin@portal.test / AdminPass123. base_url uses localhost so
    TrustedHostMiddleware accepts the requests.
    """
    db_url = shared_memory_url("test_api")
    issuer = TokenIssuer(ACCESS_SECRET, REFRESH_SECRET)
    user_store = UserStore(db_url)
    sessions = SessionInvalidator(issuer, db_url)
    hasher = PasswordHasher(rounds=FAST_ROUNDS)
    service = AuthService(directory=user_store, issuer=issuer, sessions=sessions, hasher=hasher)

    admin_id = user_store.create_user(
        User(email="admin@portal.test", role="admin", hashed_password=hasher.hash("AdminPass123"))
    )
    token = issuer.issue_access_token(admin_id, "admin@portal.test", "admin")

    app.router.lifespan_context = _patch_lifespan(user_store, sessions, service)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, token, admin_id

    sessions.close()
    user_store.close()
