"""Unit tests for auth/tokens.py -- token issue/validate and bearer header parsing.

Covers:
  - issue -> validate round trip returns the subject
  - expired, tampered, foreign-key and garbage tokens all fail closed
  - tokens without a subject are rejected even when correctly signed
  - extract_bearer_token() header parsing
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.tokens import TokenCheck, TokenService, extract_bearer_token

SECRET = "token-test-secret-key-at-least-32-chars"


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(SECRET, expire_seconds=3600)


class TestRoundTrip:
    @pytest.mark.parametrize("subject", ["alice@x.com", "Bob@Example.org", "o'neil+tag@sub.domain.io"])
    def test_validate_returns_issued_subject(self, tokens: TokenService, subject: str) -> None:
        check = tokens.validate(tokens.issue(subject))
        assert check == TokenCheck(valid=True, subject=subject)

    def test_token_is_a_single_opaque_string(self, tokens: TokenService) -> None:
        token = tokens.issue("alice@x.com")
        assert isinstance(token, str)
        assert " " not in token
        assert token.count(".") == 2

    def test_token_carries_expiry(self, tokens: TokenService) -> None:
        claims = jwt.get_unverified_claims(tokens.issue("alice@x.com"))
        assert claims["sub"] == "alice@x.com"
        assert claims["exp"] > datetime.now(timezone.utc).timestamp()


class TestFailClosed:
    def test_expired_token_is_invalid(self, tokens: TokenService) -> None:
        token = tokens.issue("alice@x.com", expire_seconds=-10)
        assert tokens.validate(token) == TokenCheck(valid=False)

    def test_tampered_signature_is_invalid(self, tokens: TokenService) -> None:
        token = tokens.issue("alice@x.com")
        head, payload, signature = token.split(".")
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
        assert tokens.validate(f"{head}.{payload}.{flipped}").valid is False

    def test_token_signed_with_other_secret_is_invalid(self, tokens: TokenService) -> None:
        foreign = TokenService("another-secret-key-that-is-32-chars-long")
        assert tokens.validate(foreign.issue("alice@x.com")).valid is False

    @pytest.mark.parametrize("garbage", ["", "abc", "a.b.c", "Bearer xyz", "...."])
    def test_malformed_token_is_invalid(self, tokens: TokenService, garbage: str) -> None:
        check = tokens.validate(garbage)
        assert check.valid is False
        assert check.subject is None

    def test_token_without_subject_is_invalid(self, tokens: TokenService) -> None:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
        token = jwt.encode({"exp": exp}, SECRET, algorithm="HS256")
        assert tokens.validate(token).valid is False

    def test_token_without_expiry_is_invalid(self, tokens: TokenService) -> None:
        token = jwt.encode({"sub": "alice@x.com"}, SECRET, algorithm="HS256")
        assert tokens.validate(token).valid is False

    def test_unexpected_algorithm_is_invalid(self, tokens: TokenService) -> None:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
        token = jwt.encode({"sub": "alice@x.com", "exp": exp}, SECRET, algorithm="HS512")
        assert tokens.validate(token).valid is False


def test_empty_secret_is_rejected() -> None:
    with pytest.raises(ValueError):
        TokenService("")


class TestExtractBearerToken:
    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("bearer abc", "abc"),
            ("Bearer   abc  ", "abc"),
            ("Bearer ", None),
            ("Basic dXNlcjpwYXNz", None),
            ("abc.def.ghi", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parses_header(self, header: str | None, expected: str | None) -> None:
        assert extract_bearer_token(header) == expected
