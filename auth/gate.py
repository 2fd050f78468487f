"""
auth/gate.py -- Per-request authentication gate.

Turns an "Authorization: Bearer <token>" header into a Principal on
request.state.principal. The gate only ever *establishes* identity; it never
rejects a request. A missing, invalid or expired token, a token whose
subject no longer exists, or any unexpected failure while resolving it all
leave the principal as None and let the request continue. Rejection is
AuthorizationMiddleware's job.

Requests to the auth endpoints themselves (and static uploads) skip token
processing entirely -- a stale token in the browser must never stand in the
way of logging in again.

The store lookup is synchronous SQLAlchemy, so it runs in the thread pool to
keep the event loop free.
"""

from __future__ import annotations

import logging

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from auth.models import Principal
from auth.store import AccountStore
from auth.tokens import TokenService, extract_bearer_token

logger = logging.getLogger("lostfound.auth.gate")

# Auth endpoints match exactly; only static uploads match by prefix.
EXEMPT_PATHS: frozenset[str] = frozenset(
    {
        "/auth/register",
        "/auth/login",
        "/auth/federated-login",
        "/auth/reset-password",
    }
)
EXEMPT_PATH_PREFIXES: tuple[str, ...] = ("/uploads/",)


class AuthenticationGate(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        store: AccountStore,
        tokens: TokenService,
        exempt_paths: frozenset[str] = EXEMPT_PATHS,
        exempt_prefixes: tuple[str, ...] = EXEMPT_PATH_PREFIXES,
    ) -> None:
        super().__init__(app)
        self.store = store
        self.tokens = tokens
        self.exempt_paths = frozenset(exempt_paths)
        self.exempt_prefixes = tuple(exempt_prefixes)

    async def dispatch(self, request: Request, call_next):
        request.state.principal = None
        if not self.is_exempt(request.url.path):
            request.state.principal = await self.resolve_principal(request)
        return await call_next(request)

    def is_exempt(self, path: str) -> bool:
        return path in self.exempt_paths or path.startswith(self.exempt_prefixes)

    async def resolve_principal(self, request: Request) -> Principal | None:
        """Return the Principal for the request's bearer token, or None. Never raises."""
        token = extract_bearer_token(request.headers.get("Authorization"))
        if token is None:
            return None
        try:
            check = self.tokens.validate(token)
            if not check.valid:
                logger.info("Invalid bearer token on %s %s", request.method, request.url.path)
                return None
            account = await run_in_threadpool(self.store.find_by_email, check.subject)
            if account is None:
                logger.warning("Token subject has no account; continuing unauthenticated")
                return None
            return Principal(account_id=account.id, email=account.email, role=account.role)
        except Exception:
            logger.exception("Principal resolution failed on %s %s", request.method, request.url.path)
            return None
