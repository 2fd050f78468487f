"""
auth/tokens.py -- Stateless bearer token issue and validation.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       only the subject (account email), issue time and expiry. Role is NOT
       embedded -- the authentication gate resolves it from the store on every
       request, so a stale token can never carry a stale role claim.

  Validation fails closed. Expired, malformed, mis-signed, or claim-less
       tokens all produce TokenCheck(valid=False). validate() never raises and
       never touches the store, which is what lets the gate run it on every
       request.

  The secret is passed in at construction (see api.main.create_app) rather
  than read from module globals, so tests can build a TokenService with a
  fixed key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

logger = logging.getLogger("lostfound.auth.tokens")

_ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenCheck:
    """Outcome of TokenService.validate(). subject is None whenever valid is False."""

    valid: bool
    subject: str | None = None


_INVALID = TokenCheck(valid=False)


class TokenService:
    """Issue and validate signed, self-contained bearer tokens.

    Usage:
        tokens = TokenService(secret_key=settings.secret_key, expire_seconds=3600)
        token = tokens.issue("alice@example.com")
        tokens.validate(token)   # TokenCheck(valid=True, subject="alice@example.com")
    """

    def __init__(self, secret_key: str, expire_seconds: int = 3600) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a non-empty secret key")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def issue(self, subject: str, expire_seconds: int | None = None) -> str:
        """Encode a signed JWT for subject.

        Args:
            subject:        Account email, stored as the "sub" claim.
            expire_seconds: Lifetime override. None uses the service default.
                            Zero or negative values produce an already-expired
                            token, which tests use to exercise expiry.
        """
        duration = self.expire_seconds if expire_seconds is None else expire_seconds
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject,
            "iat": now,
            "exp": now + timedelta(seconds=duration),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def validate(self, token: str) -> TokenCheck:
        """Verify signature and expiry; return the subject on success."""
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"require_exp": True, "require_sub": True},
            )
        except JWTError as exc:
            logger.debug("Token rejected: %s", exc)
            return _INVALID
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            return _INVALID
        return TokenCheck(valid=True, subject=subject)


def extract_bearer_token(header: str | None) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header value, else None."""
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None
