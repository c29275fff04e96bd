"""
tests/test_cli.py -- Tests for the administrative command line in main.py.

Covers:
  - create-user stores a policy-checked, hashed password
  - weak passwords, mismatched confirmation and duplicate emails exit 1
  - purge-revoked reports how many expired entries were removed
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

import main as cli
from auth.passwords import PasswordHasher
from auth.sessions import SessionInvalidator
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings
from helpers import ACCESS_SECRET, REFRESH_SECRET, FAST_ROUNDS


@pytest.fixture
def settings(tmp_path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    s = Settings(
        secret_key=ACCESS_SECRET,
        refresh_secret_key=REFRESH_SECRET,
        database_url=f"sqlite:///{tmp_path / 'cli.db'}",
        bcrypt_rounds=FAST_ROUNDS,
    )
    monkeypatch.setattr(cli, "get_settings", lambda: s)
    return s


def _answers(monkeypatch: pytest.MonkeyPatch, *values: str) -> None:
    replies: Iterator[str] = iter(values)
    monkeypatch.setattr("getpass.getpass", lambda prompt="": next(replies))


def test_create_user(settings: Settings, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    _answers(monkeypatch, "AdminPass123", "AdminPass123")
    assert cli.main(["create-user", "--email", "Admin@Portal.test", "--role", "admin"]) == 0
    assert "Created admin" in capsys.readouterr().out

    store = UserStore(settings.database_url)
    user = store.find_by_email("admin@portal.test")
    store.close()
    assert user.role == "admin"
    assert user.is_active is True
    assert PasswordHasher().verify("AdminPass123", user.hashed_password)


def test_create_inactive_user(settings: Settings, monkeypatch: pytest.MonkeyPatch) -> None:
    _answers(monkeypatch, "Candidate123", "Candidate123")
    assert cli.main(["create-user", "--email", "jo@portal.test", "--inactive"]) == 0

    store = UserStore(settings.database_url)
    user = store.find_by_email("jo@portal.test")
    store.close()
    assert user.role == "candidate"
    assert user.is_active is False


def test_create_user_weak_password(settings: Settings, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    _answers(monkeypatch, "weak", "weak")
    assert cli.main(["create-user", "--email", "jo@portal.test"]) == 1
    out = capsys.readouterr().out
    assert "at least 8 characters" in out
    assert "uppercase" in out


def test_create_user_mismatched_confirmation(settings: Settings, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    _answers(monkeypatch, "Candidate123", "Candidate124")
    assert cli.main(["create-user", "--email", "jo@portal.test"]) == 1
    assert "do not match" in capsys.readouterr().out


def test_create_user_duplicate(settings: Settings, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    _answers(monkeypatch, "Candidate123", "Candidate123", "Candidate123", "Candidate123")
    assert cli.main(["create-user", "--email", "jo@portal.test"]) == 0
    assert cli.main(["create-user", "--email", "JO@portal.test"]) == 1
    assert "already exists" in capsys.readouterr().out


def test_unknown_role_is_rejected(settings: Settings) -> None:
    with pytest.raises(SystemExit):
        cli.main(["create-user", "--email", "jo@portal.test", "--role", "superuser"])


def test_purge_revoked(settings: Settings, capsys) -> None:
    # Minted a week in the past, so the access token has already expired.
    issuer = TokenIssuer.from_settings(settings)
    past = TokenIssuer(
        ACCESS_SECRET,
        REFRESH_SECRET,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        clock=lambda: issuer.now().replace(microsecond=0) - issuer.refresh_lifetime,
    )
    sessions = SessionInvalidator(issuer, settings.database_url)
    sessions.invalidate(past.issue_access_token(1, "user@x.com", "candidate"))
    sessions.invalidate(issuer.issue_access_token(1, "user@x.com", "candidate"))
    sessions.close()

    assert cli.main(["purge-revoked"]) == 0
    assert "Removed 1 expired revocation entry." in capsys.readouterr().out
