"""
api/main.py -- FastAPI application factory for the LostFound auth service.

Run with:  uvicorn asgi:app --reload

create_app() builds every collaborator once and passes it explicitly to the
code that needs it:

  AccountStore  -> IdentityService, AuthenticationGate, GET /health
  TokenService  -> IdentityService, AuthenticationGate
  AuthorizationPolicy -> AuthorizationMiddleware

Middleware stack (outermost to innermost, exactly the order of the list
passed to FastAPI()):
  1. TrustedHostMiddleware   -- rejects requests with unexpected Host headers
  2. request log             -- one line per request with latency
  3. CORSMiddleware          -- answers browser preflights, adds CORS headers
  4. SlowAPIMiddleware       -- enforces per-route rate limits from this app's Limiter
  5. AuthenticationGate      -- bearer token -> request.state.principal (never rejects)
  6. AuthorizationMiddleware -- 401 when the route needs a principal and there is none
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware

from api.limiter import create_limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import create_auth_router
from auth.gate import AuthenticationGate
from auth.identity import IdentityService
from auth.policy import AuthorizationMiddleware, AuthorizationPolicy
from auth.store import AccountStore
from auth.tokens import TokenService
from core.config import Settings, get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("lostfound.api")


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Captures wall-clock time before and after call_next so latency is reported
# on every response, including the 401s produced by AuthorizationMiddleware
# further in.
# ---------------------------------------------------------------------------


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc.detail),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with a structured error when the request body fails validation."""
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None, store: AccountStore | None = None) -> FastAPI:
    """Build the ASGI application.

    Args:
        settings: Explicit settings; defaults to the get_settings() singleton.
        store:    Pre-built AccountStore (tests pass in-memory stores);
                  defaults to one opened on settings.database_url. The app
                  owns the store either way and closes it on shutdown.
    """
    settings = settings or get_settings()
    logging.getLogger("lostfound").setLevel(settings.log_level.upper())

    store = store or AccountStore(settings.database_url)
    tokens = TokenService(settings.secret_key, expire_seconds=settings.token_expire_seconds)
    identity = IdentityService(store, tokens, bcrypt_rounds=settings.bcrypt_rounds)
    policy = AuthorizationPolicy()
    limiter = create_limiter()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("LostFound auth API starting up")
        yield
        store.close()
        logger.info("LostFound auth API shutdown complete")

    middleware = [
        Middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts),
        Middleware(BaseHTTPMiddleware, dispatch=log_requests),
        Middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allowed_origins,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
            max_age=3600,
        ),
        Middleware(SlowAPIMiddleware),
        Middleware(AuthenticationGate, store=store, tokens=tokens),
        Middleware(AuthorizationMiddleware, policy=policy),
    ]

    app = FastAPI(
        title="LostFound Auth API",
        description="Registration, login, federated login and request authentication for LostFound.",
        version=VERSION,
        lifespan=lifespan,
        middleware=middleware,
    )

    # SlowAPIMiddleware looks for app.state.limiter by convention.
    app.state.limiter = limiter
    app.state.store = store
    app.state.identity = identity

    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(create_auth_router(limiter, settings.login_rate_limit), tags=["Auth"])

    @app.get("/health", tags=["Health"])
    def health() -> HealthResponse:
        """Return liveness plus a database round-trip check. No auth required."""
        try:
            database = "ok" if store.ping() else "error"
        except SQLAlchemyError:
            logger.exception("Health check database ping failed")
            database = "error"
        return HealthResponse(version=VERSION, components={"app": "ok", "database": database})

    return app
