"""
tests/conftest.py -- Shared test fixtures for the LostFound auth tests.

This module provides:
  - store / tokens / identity: isolated unit-level collaborators
  - api_client: TestClient over the real create_app() stack with an
    in-memory store and a stand-in items router
  - make_account: helper fixture that seeds accounts directly through the store

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the API fixture because TestClient runs sync route handlers and the
gate's store lookup in a thread pool. Plain :memory: DBs are per-connection
and would present a blank schema to each worker thread.

DEBUG and LOGIN_RATE_LIMIT must be set before any api/core import so
get_settings() neither refuses to start nor throttles the test session.
"""

from __future__ import annotations

import os
from collections.abc import Generator

# CRITICAL: set before api/core imports -- get_settings() is cached on first call.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi import APIRouter, Depends
from fastapi.testclient import TestClient

from api.main import create_app
from auth.dependencies import get_principal, try_get_principal
from auth.identity import IdentityService
from auth.models import Account, Principal, Role
from auth.passwords import hash_password
from auth.store import AccountStore
from auth.tokens import TokenService
from core.config import Settings

TEST_SECRET = "test-secret-key-that-is-at-least-32-chars"
TEST_ROUNDS = 4  # bcrypt minimum -- keeps the suite fast


def _make_account(
    store: AccountStore,
    email: str,
    password: str | None = "pw123456",
    *,
    verified: bool = True,
    federated_id: str | None = None,
    role: Role = Role.USER,
) -> Account:
    """Insert an account directly, bypassing the registration flow."""
    return store.save(
        Account(
            email=email,
            role=role,
            password_hash=hash_password(password, TEST_ROUNDS) if password else None,
            federated_id=federated_id,
            email_verified=verified,
        )
    )


@pytest.fixture
def make_account():
    """Return the account-seeding helper: make_account(store, email, password=..., verified=...)."""
    return _make_account


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_SECRET, expire_seconds=3600)


@pytest.fixture
def identity(store: AccountStore, tokens: TokenService) -> IdentityService:
    return IdentityService(store, tokens, bcrypt_rounds=TEST_ROUNDS)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------

# Stand-in for the items service, which lives outside this codebase. It only
# reports whether the gate attached a principal.
items_router = APIRouter()


@items_router.get("/items")
def list_items(principal: Principal | None = Depends(try_get_principal)) -> dict:
    return {"items": [], "authenticated": principal is not None}


@items_router.get("/items/{item_id}")
def get_item(item_id: int) -> dict:
    return {"id": item_id}


@items_router.post("/items")
def create_item(principal: Principal = Depends(get_principal)) -> dict:
    return {"owner": principal.email, "role": principal.role.value}


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, AccountStore, TokenService], None, None]:
    """Yield (client, store, tokens) for integration tests.

    One app per test module, each with its own shared-memory database named
    after the module so modules never see each other's accounts. tokens
    shares the app's secret so tests can mint tokens for seeded accounts.
    """
    db_name = request.module.__name__.replace(".", "_")
    store = AccountStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    settings = Settings(
        debug=True,
        secret_key=TEST_SECRET,
        bcrypt_rounds=TEST_ROUNDS,
        login_rate_limit="1000/minute",
    )
    app = create_app(settings, store=store)
    app.include_router(items_router)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store, TokenService(TEST_SECRET, expire_seconds=settings.token_expire_seconds)
