"""Unit tests for auth/passwords.py -- complexity policy and bcrypt hashing.

Covers:
- PasswordPolicy rejects each weak password with a distinct reason
- violations() order is deterministic and lists every failed rule
- PasswordHasher hash/verify round trip and mismatch
- verify() never raises on a corrupt stored hash
"""

from __future__ import annotations

import pytest

from auth.errors import ValidationError
from auth.passwords import BCRYPT_ROUNDS, PasswordHasher, PasswordPolicy


class TestPasswordPolicy:
    @pytest.mark.parametrize("password", ["weak", "nouppercase1", "NOLOWERCASE123", "nonumbers"])
    def test_rejects_weak_passwords(self, password: str) -> None:
        with pytest.raises(ValidationError):
            PasswordPolicy().validate(password)

    def test_accepts_valid_password(self) -> None:
        assert PasswordPolicy().validate("ValidPass123") is None
        assert PasswordPolicy().violations("ValidPass123") == []

    def test_each_rule_has_a_distinct_reason(self) -> None:
        policy = PasswordPolicy()
        too_short = policy.violations("Ab1")
        no_upper = policy.violations("nouppercase1")
        no_lower = policy.violations("NOLOWERCASE123")
        no_digit = policy.violations("NoDigitsHere")

        assert too_short == ["Password must be at least 8 characters long"]
        assert no_upper == ["Password must contain at least one uppercase letter"]
        assert no_lower == ["Password must contain at least one lowercase letter"]
        assert no_digit == ["Password must contain at least one number"]

    def test_reports_all_failures_in_fixed_order(self) -> None:
        reasons = PasswordPolicy().violations("weak")
        assert reasons == [
            "Password must be at least 8 characters long",
            "Password must contain at least one uppercase letter",
            "Password must contain at least one number",
        ]

    def test_validation_error_message_is_first_reason(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            PasswordPolicy().validate("nonumbers")
        assert str(exc_info.value) == "Password must contain at least one uppercase letter"
        assert len(exc_info.value.reasons) == 2

    def test_empty_password_fails_every_rule(self) -> None:
        assert len(PasswordPolicy().violations("")) == 4


class TestPasswordHasher:
    def test_default_cost_factor_is_twelve(self) -> None:
        assert BCRYPT_ROUNDS == 12
        assert PasswordHasher().rounds == 12

    def test_hash_embeds_cost_factor(self) -> None:
        hashed = PasswordHasher(rounds=5).hash("Passw0rd!")
        assert hashed.startswith("$2b$05$")

    def test_round_trip(self, hasher: PasswordHasher) -> None:
        hashed = hasher.hash("Passw0rd!")
        assert hashed != "Passw0rd!"
        assert hasher.verify("Passw0rd!", hashed) is True

    @pytest.mark.parametrize("other", ["passw0rd!", "Passw0rd", "Passw0rd!!", ""])
    def test_different_password_does_not_verify(self, hasher: PasswordHasher, other: str) -> None:
        hashed = hasher.hash("Passw0rd!")
        assert hasher.verify(other, hashed) is False

    def test_hashes_are_salted(self, hasher: PasswordHasher) -> None:
        assert hasher.hash("Passw0rd!") != hasher.hash("Passw0rd!")

    def test_verify_against_corrupt_hash_returns_false(self, hasher: PasswordHasher) -> None:
        assert hasher.verify("Passw0rd!", "not-a-bcrypt-hash") is False

    def test_password_longer_than_bcrypt_limit_round_trips(self, hasher: PasswordHasher) -> None:
        long_password = "Aa1" + "x" * 80
        PasswordPolicy().validate(long_password)
        hashed = hasher.hash(long_password)
        assert hasher.verify(long_password, hashed) is True

    def test_bytes_past_the_bcrypt_limit_still_count(self, hasher: PasswordHasher) -> None:
        prefix = "Aa1" + "x" * 80
        hashed = hasher.hash(prefix + "one")
        assert hasher.verify(prefix + "two", hashed) is False

    def test_multibyte_password_round_trips(self, hasher: PasswordHasher) -> None:
        password = "Pässwörd1" + "ü" * 60
        assert hasher.verify(password, hasher.hash(password)) is True


def test_non_ascii_digits_do_not_satisfy_the_number_rule() -> None:
    # Arabic-Indic digits
    assert PasswordPolicy().violations("Password١٢") == ["Password must contain at least one number"]
