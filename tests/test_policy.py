"""Unit tests for auth/policy.py -- route table matching."""

from __future__ import annotations

import pytest

from auth.policy import AuthorizationPolicy, Requirement, RouteRule

PUBLIC = Requirement.PUBLIC
AUTHENTICATED = Requirement.AUTHENTICATED


@pytest.fixture
def policy() -> AuthorizationPolicy:
    return AuthorizationPolicy()


@pytest.mark.parametrize(
    ("method", "path", "expected"),
    [
        ("POST", "/auth/register", PUBLIC),
        ("POST", "/auth/login", PUBLIC),
        ("POST", "/auth/federated-login", PUBLIC),
        ("POST", "/auth/reset-password", PUBLIC),
        ("GET", "/uploads/items/photo.png", PUBLIC),
        ("GET", "/items", PUBLIC),
        ("GET", "/items/42", PUBLIC),
        ("GET", "/health", PUBLIC),
        ("POST", "/items", AUTHENTICATED),
        ("DELETE", "/items/42", AUTHENTICATED),
        ("GET", "/items/42/images", AUTHENTICATED),
        ("GET", "/items/my", PUBLIC),
        ("GET", "/auth/profile", AUTHENTICATED),
        ("GET", "/anything/else", AUTHENTICATED),
        ("GET", "/auth/login/extra", AUTHENTICATED),
    ],
)
def test_default_table(policy: AuthorizationPolicy, method: str, path: str, expected: Requirement) -> None:
    assert policy.requirement_for(method, path) is expected


@pytest.mark.parametrize("path", ["/items", "/auth/profile", "/no/such/route"])
def test_preflight_is_always_public(policy: AuthorizationPolicy, path: str) -> None:
    assert policy.requirement_for("OPTIONS", path) is PUBLIC


def test_method_match_is_case_insensitive(policy: AuthorizationPolicy) -> None:
    assert policy.requirement_for("get", "/items") is PUBLIC


def test_first_matching_rule_wins() -> None:
    policy = AuthorizationPolicy(
        (
            RouteRule("/admin/status", frozenset({"GET"}), PUBLIC),
            RouteRule("/admin/**", None, AUTHENTICATED),
        )
    )
    assert policy.requirement_for("GET", "/admin/status") is PUBLIC
    assert policy.requirement_for("GET", "/admin/users") is AUTHENTICATED


def test_single_star_matches_one_segment_only() -> None:
    rule = RouteRule("/items/*", None, PUBLIC)
    assert rule.matches("GET", "/items/1")
    assert not rule.matches("GET", "/items/")
    assert not rule.matches("GET", "/items/1/images")


def test_pattern_literals_are_escaped() -> None:
    rule = RouteRule("/v1.0/items", None, PUBLIC)
    assert rule.matches("GET", "/v1.0/items")
    assert not rule.matches("GET", "/v1x0/items")


def test_empty_table_requires_authentication() -> None:
    assert AuthorizationPolicy(()).requirement_for("GET", "/items") is AUTHENTICATED
