"""Unit tests for auth/passwords.py -- bcrypt hashing and verification."""

from __future__ import annotations

import string

import pytest

from auth.passwords import hash_password, verify_password

ROUNDS = 4


@pytest.mark.parametrize(
    "plain",
    ["pw123456", "a", string.printable.strip()[:72], " leading and trailing ", "!@#$%^&*()_+-=[]{};':\",./<>?"],
)
def test_verify_accepts_original_password(plain: str) -> None:
    assert verify_password(plain, hash_password(plain, ROUNDS)) is True


def test_verify_rejects_different_password() -> None:
    hashed = hash_password("pw123456", ROUNDS)
    assert verify_password("pw1234567", hashed) is False
    assert verify_password("PW123456", hashed) is False


def test_hash_is_salted() -> None:
    """Two hashes of the same password differ but both verify."""
    first = hash_password("same-password", ROUNDS)
    second = hash_password("same-password", ROUNDS)
    assert first != second
    assert verify_password("same-password", first)
    assert verify_password("same-password", second)


def test_hash_never_contains_plaintext() -> None:
    assert "pw123456" not in hash_password("pw123456", ROUNDS)


def test_hash_records_cost_factor() -> None:
    assert hash_password("pw", ROUNDS).startswith("$2b$04$")


def test_malformed_hash_is_a_mismatch() -> None:
    assert verify_password("pw123456", "not-a-bcrypt-hash") is False
