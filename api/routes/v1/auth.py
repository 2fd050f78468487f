"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /auth/register         -- create an unverified local account; 202 pending verification
  POST /auth/login            -- password login; token
  POST /auth/federated-login  -- identity-provider login with account linking; token
  POST /auth/reset-password   -- replace a local password
  GET  /auth/profile          -- current principal's account (requires auth)

Error mapping:
  IdentityService returns AuthOutcome values; _error_response() is the single
  place an AuthErrorKind becomes an HTTP status and error envelope.

Security:
  POST /login is rate-limited per client IP with the limit from the app's
  own Settings (LOGIN_RATE_LIMIT), applied in create_auth_router().
  Unknown email and wrong password share one 401 body, so the response never
  reveals whether an account exists. Only the unverified case is
  distinguished (403 EMAIL_NOT_VERIFIED) because the client must prompt for
  verification instead of a new password.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter

from api.models import (
    FederatedLoginRequest,
    LoginRequest,
    MessageResponse,
    PendingVerificationResponse,
    ProfileResponse,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
)
from auth.dependencies import get_principal
from auth.identity import PENDING_VERIFICATION, IdentityService
from auth.models import AuthErrorKind, AuthOutcome, Principal

_ERRORS: dict[AuthErrorKind, tuple[int, str, str]] = {
    AuthErrorKind.CONFLICT: (409, "conflict", "Email already exists"),
    AuthErrorKind.INVALID_CREDENTIALS: (401, "invalid_credentials", "Invalid email or password"),
    AuthErrorKind.EMAIL_NOT_VERIFIED: (403, "EMAIL_NOT_VERIFIED", "Please verify your email before logging in."),
    AuthErrorKind.NOT_FOUND: (400, "not_found", "User not found"),
    AuthErrorKind.UNAUTHENTICATED: (401, "unauthorized", "Authentication required."),
    AuthErrorKind.UNEXPECTED: (500, "internal_error", "An unexpected error occurred."),
}


def get_identity_service(request: Request) -> IdentityService:
    """Return the IdentityService that create_app() built for this application."""
    return request.app.state.identity


def create_auth_router(limiter: Limiter, login_rate_limit: str) -> APIRouter:
    """Build the /auth router for one application.

    Auth policy (see auth/policy.py DEFAULT_RULES):
    - POST /auth/register, /auth/login, /auth/federated-login, /auth/reset-password: public
    - GET  /auth/profile: requires an authenticated principal

    Args:
        limiter:          The app's Limiter (also set as app.state.limiter).
        login_rate_limit: slowapi limit string for POST /auth/login, e.g. "10/minute".
    """
    router = APIRouter()
    router.add_api_route(
        "/auth/register", register, methods=["POST"], response_model=PendingVerificationResponse, status_code=202
    )
    router.add_api_route(
        "/auth/login", limiter.limit(login_rate_limit)(login), methods=["POST"], response_model=TokenResponse
    )
    router.add_api_route("/auth/federated-login", federated_login, methods=["POST"], response_model=TokenResponse)
    router.add_api_route("/auth/reset-password", reset_password, methods=["POST"], response_model=MessageResponse)
    router.add_api_route("/auth/profile", profile, methods=["GET"], response_model=ProfileResponse)
    return router


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


def register(body: RegisterRequest, identity: IdentityService = Depends(get_identity_service)) -> JSONResponse:
    """Create a local account. No token is issued until the email is verified."""
    outcome = identity.register(body.email, body.password, body.name)
    if not outcome.ok:
        return _error_response(outcome)
    return JSONResponse(
        status_code=202,
        content=PendingVerificationResponse(
            status=PENDING_VERIFICATION,
            email=outcome.account.email,
            message="Registration successful. Please verify your email before logging in.",
        ).model_dump(),
    )


def login(
    request: Request,
    body: LoginRequest,
    identity: IdentityService = Depends(get_identity_service),
) -> JSONResponse:
    """Authenticate with email and password."""
    outcome = identity.login(body.email, body.password)
    if not outcome.ok:
        return _error_response(outcome)
    return _token_response(outcome, identity, "Login successful")


def federated_login(
    body: FederatedLoginRequest,
    identity: IdentityService = Depends(get_identity_service),
) -> JSONResponse:
    """Log in with an identity-provider account, linking it to an existing account when the email matches."""
    outcome = identity.federated_login(
        federated_id=body.provider_id,
        email=body.email,
        name=body.name,
        email_verified=body.email_verified,
    )
    if not outcome.ok:
        return _error_response(outcome)
    return _token_response(outcome, identity, "Federated login successful")


def reset_password(
    body: ResetPasswordRequest,
    identity: IdentityService = Depends(get_identity_service),
) -> JSONResponse:
    outcome = identity.reset_password(body.email, body.new_password)
    if not outcome.ok:
        return _error_response(outcome)
    return JSONResponse(content=MessageResponse(message="Password reset successful").model_dump())


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


def profile(
    principal: Principal = Depends(get_principal),
    identity: IdentityService = Depends(get_identity_service),
) -> JSONResponse:
    """Return the account behind the current bearer token."""
    outcome = identity.profile(principal)
    if not outcome.ok:
        return _error_response(outcome)
    return JSONResponse(content=ProfileResponse.from_account(outcome.account).model_dump())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _token_response(outcome: AuthOutcome, identity: IdentityService, message: str) -> JSONResponse:
    resp = JSONResponse(
        status_code=200,
        content=TokenResponse(
            token=outcome.token,
            expires_in=identity.tokens.expire_seconds,
            message=message,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _error_response(outcome: AuthOutcome) -> JSONResponse:
    status_code, code, message = _ERRORS[outcome.error]
    resp = JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
