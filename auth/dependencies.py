"""
auth/dependencies.py -- FastAPI Depends() helpers that hand the request principal to handlers.

The principal is established once per request by AuthenticationGate and read
here from request.state -- there is no process-wide "current user".

try_get_principal() is the soft variant (returns None when unauthenticated).
get_principal() wraps it and raises HTTP 401 if unauthenticated. Route
handlers behind AuthorizationMiddleware normally never hit that 401, but the
check keeps a handler safe if its policy row is ever loosened by mistake.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Principal


def try_get_principal(request: Request) -> Principal | None:
    return getattr(request.state, "principal", None)


def get_principal(request: Request) -> Principal:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_principal)): ...
    """
    principal = try_get_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return principal
