"""
auth/policy.py -- Static route authorization table and the middleware that enforces it.

The table is ordered and first-match-wins. Anything the table does not match
requires an authenticated principal, so a newly added route is protected
until someone deliberately lists it as public. Preflight (OPTIONS) requests
are always public -- browsers never attach credentials to them.

Pattern syntax:
  "*"  matches exactly one path segment   (/items/*   matches /items/42)
  "**" matches any remainder, even empty  (/uploads/** matches /uploads/a/b.png)

AuthorizationMiddleware must sit after AuthenticationGate in the middleware
list: it only reads request.state.principal, which the gate sets.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("lostfound.auth.policy")


class Requirement(str, Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"


def _compile(pattern: str) -> re.Pattern:
    parts = []
    for token in re.split(r"(\*\*|\*)", pattern):
        if token == "**":
            parts.append(".*")
        elif token == "*":
            parts.append("[^/]+")
        else:
            parts.append(re.escape(token))
    return re.compile("^" + "".join(parts) + "$")


@dataclass(frozen=True)
class RouteRule:
    """One row of the table. methods=None means any HTTP method."""

    pattern: str
    methods: frozenset[str] | None
    requirement: Requirement
    _regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", _compile(self.pattern))

    def matches(self, method: str, path: str) -> bool:
        if self.methods is not None and method.upper() not in self.methods:
            return False
        return self._regex.match(path) is not None


_GET = frozenset({"GET"})

DEFAULT_RULES: tuple[RouteRule, ...] = (
    RouteRule("/auth/register", None, Requirement.PUBLIC),
    RouteRule("/auth/login", None, Requirement.PUBLIC),
    RouteRule("/auth/federated-login", None, Requirement.PUBLIC),
    RouteRule("/auth/reset-password", None, Requirement.PUBLIC),
    RouteRule("/uploads/**", None, Requirement.PUBLIC),
    RouteRule("/items", _GET, Requirement.PUBLIC),
    RouteRule("/items/*", _GET, Requirement.PUBLIC),
    RouteRule("/health", _GET, Requirement.PUBLIC),
)


class AuthorizationPolicy:
    """Map (method, path) to the authentication requirement for that route."""

    def __init__(self, rules: tuple[RouteRule, ...] = DEFAULT_RULES) -> None:
        self.rules = tuple(rules)

    def requirement_for(self, method: str, path: str) -> Requirement:
        if method.upper() == "OPTIONS":
            return Requirement.PUBLIC
        for rule in self.rules:
            if rule.matches(method, path):
                return rule.requirement
        return Requirement.AUTHENTICATED


class AuthorizationMiddleware(BaseHTTPMiddleware):
    """Reject requests that need a principal but arrived without one.

    Answers 401 with the standard error envelope before any route handler
    runs. Requests that pass are forwarded untouched.
    """

    def __init__(self, app, policy: AuthorizationPolicy) -> None:
        super().__init__(app)
        self.policy = policy

    async def dispatch(self, request: Request, call_next):
        requirement = self.policy.requirement_for(request.method, request.url.path)
        if requirement is Requirement.AUTHENTICATED and getattr(request.state, "principal", None) is None:
            logger.info("Rejected unauthenticated %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=401,
                content={"error": {"code": "unauthorized", "message": "Authentication required."}},
                headers={"WWW-Authenticate": "Bearer"},
            )
        return await call_next(request)
