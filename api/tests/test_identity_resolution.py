from __future__ import annotations

import asyncio
import base64
import json
from typing import Any

import pytest
from fastapi.testclient import TestClient

import app.core.context as context
import app.core.security as security
from app.core.auth import parse_bearer_header
from app.core.config import Settings

USER_A_ID = "6f1c1a52-3f4e-4b8a-9d2e-0a1b2c3d4e5f"


def _settings(**overrides: Any) -> Settings:
    values = {
        "supabase_url": "https://abcdefghijkl.supabase.co",
        "supabase_anon_key": "anon-key",
        "otel_enabled": False,
    }
    values.update(overrides)
    return Settings(**values)


def test_parse_bearer_header_variants() -> None:
    assert parse_bearer_header("Bearer abc") == "abc"
    assert parse_bearer_header("bearer   abc  ") == "abc"
    assert parse_bearer_header("Basic abc") is None
    assert parse_bearer_header("Bearer ") is None
    assert parse_bearer_header(None) is None


def test_cookie_names_include_project_ref_names_last() -> None:
    names = _settings().auth_cookie_names
    assert names == [
        "sb-access-token",
        "supabase-access-token",
        "access_token",
        "sb-abcdefghijkl-auth-token",
        "sb-abcdefghijkl-access-token",
    ]


def test_cookie_names_without_supabase_url() -> None:
    assert _settings(supabase_url=None).auth_cookie_names == [
        "sb-access-token",
        "supabase-access-token",
        "access_token",
    ]


def test_bearer_header_wins_over_cookies() -> None:
    names = _settings().auth_cookie_names
    token = security.extract_access_token("Bearer header-token", {"sb-access-token": "cookie-token"}, names)
    assert token == "header-token"


def test_cookies_are_tried_in_order() -> None:
    names = _settings().auth_cookie_names
    cookies = {
        "access_token": "third",
        "supabase-access-token": "second",
        "sb-abcdefghijkl-auth-token": "fourth",
    }
    assert security.extract_access_token(None, cookies, names) == "second"


def test_empty_cookie_falls_through_to_next_name() -> None:
    names = _settings().auth_cookie_names
    cookies = {"sb-access-token": "", "access_token": "plain-token"}
    assert security.extract_access_token(None, cookies, names) == "plain-token"


def test_base64_session_cookie_is_unpacked() -> None:
    session = json.dumps({"access_token": "session-token", "refresh_token": "r"})
    encoded = base64.urlsafe_b64encode(session.encode("utf-8")).decode("ascii").rstrip("=")
    names = _settings().auth_cookie_names
    token = security.extract_access_token(None, {"sb-abcdefghijkl-auth-token": f"base64-{encoded}"}, names)
    assert token == "session-token"


def test_json_array_session_cookie_is_unpacked() -> None:
    names = _settings().auth_cookie_names
    cookies = {"sb-abcdefghijkl-auth-token": json.dumps(["array-token", "refresh"])}
    assert security.extract_access_token(None, cookies, names) == "array-token"


def test_garbled_session_cookie_yields_no_token() -> None:
    names = _settings().auth_cookie_names
    assert security.extract_access_token(None, {"sb-abcdefghijkl-auth-token": "base64-@@@"}, names) is None
    assert security.extract_access_token(None, {"sb-abcdefghijkl-auth-token": "{not json"}, names) is None


def test_resolve_principal_maps_provider_user(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, Any] = {}

    async def _fake_fetch(**kwargs: Any) -> dict[str, Any]:
        seen.update(kwargs)
        return {"id": USER_A_ID, "email": "alice@example.com", "role": "authenticated", "app_metadata": {"a": 1}}

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)
    principal = asyncio.run(
        security.resolve_principal(settings=_settings(), authorization="Bearer tok", cookies={})
    )

    assert principal is not None
    assert principal.user_id == USER_A_ID
    assert principal.email == "alice@example.com"
    assert principal.role == "authenticated"
    assert principal.metadata == {"a": 1}
    assert seen["token"] == "tok"
    assert seen["supabase_url"] == "https://abcdefghijkl.supabase.co"


def test_resolve_principal_returns_none_on_verification_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _rejecting_fetch(**_: Any) -> dict[str, Any]:
        raise security.IdentityVerificationError("invalid access token")

    monkeypatch.setattr(security, "_fetch_supabase_user", _rejecting_fetch)
    principal = asyncio.run(
        security.resolve_principal(settings=_settings(), authorization="Bearer tok", cookies={})
    )
    assert principal is None


def test_resolve_principal_skips_provider_without_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _unexpected_fetch(**_: Any) -> dict[str, Any]:
        raise AssertionError("provider must not be called")

    monkeypatch.setattr(security, "_fetch_supabase_user", _unexpected_fetch)
    principal = asyncio.run(
        security.resolve_principal(
            settings=_settings(supabase_url=None, supabase_anon_key=None),
            authorization="Bearer tok",
            cookies={},
        )
    )
    assert principal is None


def test_user_without_id_is_not_a_principal(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _fake_fetch(**_: Any) -> dict[str, Any]:
        return {"email": "ghost@example.com"}

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)
    principal = asyncio.run(
        security.resolve_principal(settings=_settings(), authorization="Bearer tok", cookies={})
    )
    assert principal is None


def test_cookie_session_authenticates_request(client: TestClient) -> None:
    session = json.dumps({"access_token": "token-a"}).encode("utf-8")
    encoded = base64.urlsafe_b64encode(session).decode("ascii").rstrip("=")
    client.cookies.set("sb-abcdefghijkl-auth-token", f"base64-{encoded}")
    response = client.post("/api/trpc/campaigns.create", json={"title": "Cookie Launch"})
    client.cookies.clear()

    assert response.status_code == 200, response.text
    assert response.json()["result"]["data"]["userId"] == USER_A_ID


def test_invalid_token_degrades_to_anonymous(client: TestClient) -> None:
    headers = {"Authorization": "Bearer not-a-real-token"}

    listed = client.get("/api/trpc/campaigns.list", headers=headers)
    assert listed.status_code == 200
    assert listed.json() == {"result": {"data": []}}

    created = client.post("/api/trpc/campaigns.create", json={"title": "Nope"}, headers=headers)
    assert created.status_code == 401
    assert created.json()["error"]["message"] == "Unauthorized - No user found"


def test_unexpected_identity_failure_does_not_fail_request(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def _broken_resolve(**_: Any) -> None:
        raise RuntimeError("provider exploded")

    monkeypatch.setattr(context, "resolve_principal", _broken_resolve)
    response = client.get("/api/trpc/campaigns.list", headers={"Authorization": "Bearer token-a"})

    assert response.status_code == 200
    assert response.json() == {"result": {"data": []}}
