"""
API request and response models for the LostFound auth endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire field names follow the web client (camelCase: newPassword, providerId,
emailVerified); Python attribute names stay snake_case via aliases.

Emails are EmailStr on every request body, so the address stored at
registration and the address looked up at login share one normalized form.
Only identifier fields are stripped of surrounding whitespace; passwords are
hashed exactly as sent.
"""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator

from auth.models import Account
from auth.passwords import MAX_PASSWORD_BYTES

# ---------------------------------------------------------------------------
# Shared validators
# ---------------------------------------------------------------------------


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _check_password(value: str) -> str:
    # bcrypt ignores (and recent releases reject) input beyond 72 bytes.
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


def parse_email_verified(value: Any) -> Optional[bool]:
    """Normalize the identity provider's emailVerified claim to True/False/None.

    Clients send either a JSON boolean or the strings "true"/"false". Absent
    stays None so the identity service can tell "not asserted" from "asserted
    false"; any other value counts as not verified.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register. Extra profile fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    email: EmailStr
    password: str = Field(min_length=1)
    name: Optional[str] = Field(default=None, max_length=255)

    @field_validator("email", "name", mode="before")
    @classmethod
    def strip_identifiers(cls, value: Any) -> Any:
        return _strip(value)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return _check_password(value)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value: Any) -> Any:
        return _strip(value)


class FederatedLoginRequest(BaseModel):
    """Request body for POST /auth/federated-login.

    providerId is the identity provider's stable subject id; older clients
    send it as "uid".
    """

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    provider_id: str = Field(min_length=1, max_length=255, validation_alias=AliasChoices("providerId", "uid"))
    name: Optional[str] = Field(default=None, max_length=255)
    email_verified: Optional[bool] = Field(default=None, validation_alias=AliasChoices("emailVerified"))

    @field_validator("email", "provider_id", "name", mode="before")
    @classmethod
    def strip_identifiers(cls, value: Any) -> Any:
        return _strip(value)

    @field_validator("email_verified", mode="before")
    @classmethod
    def normalize_email_verified(cls, value: Any) -> Optional[bool]:
        return parse_email_verified(value)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    new_password: str = Field(min_length=1, validation_alias=AliasChoices("newPassword"))

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value: Any) -> Any:
        return _strip(value)

    @field_validator("new_password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return _check_password(value)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Response for a successful password or federated login."""

    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_in: int
    message: str


class PendingVerificationResponse(BaseModel):
    """Response for POST /auth/register -- the account exists but cannot log in yet."""

    model_config = ConfigDict(frozen=True)

    status: str
    email: str
    message: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ProfileResponse(BaseModel):
    """Response for GET /auth/profile. Never includes the password hash or federated id."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: Optional[str]
    role: str
    email_verified: bool
    federated: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_account(cls, account: Account) -> "ProfileResponse":
        return cls(
            id=account.id,
            email=account.email,
            name=account.name,
            role=account.role.value,
            email_verified=account.email_verified,
            federated=account.federated_id is not None,
            created_at=account.created_at or "",
            updated_at=account.updated_at or "",
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
