import base64
import binascii
import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from app.core.auth import Principal, parse_bearer_header
from app.core.config import Settings

logger = logging.getLogger(__name__)

_BASE64_COOKIE_PREFIX = "base64-"


class IdentityVerificationError(Exception):
    """Raised when the identity provider cannot resolve a token."""


def extract_access_token(
    authorization: str | None,
    cookies: Mapping[str, str],
    cookie_names: Sequence[str],
) -> str | None:
    """Pick the raw access token for a request.

    An explicit bearer header always wins. Otherwise the cookie names are tried in
    order, which covers the names written by older and newer Supabase SDKs.
    """
    token = parse_bearer_header(authorization)
    if token:
        return token

    for name in cookie_names:
        raw = cookies.get(name)
        if not raw:
            continue
        token = _unpack_cookie_token(raw)
        if token:
            return token
    return None


async def resolve_principal(
    *,
    settings: Settings,
    authorization: str | None,
    cookies: Mapping[str, str],
) -> Principal | None:
    token = extract_access_token(authorization, cookies, settings.auth_cookie_names)
    if not token:
        return None

    if not settings.supabase_url or not settings.supabase_anon_key:
        logger.warning("access token present but Supabase auth is not configured")
        return None

    try:
        user = await _fetch_supabase_user(
            supabase_url=settings.supabase_url,
            supabase_anon_key=settings.supabase_anon_key,
            token=token,
            timeout_seconds=settings.auth_timeout_seconds,
        )
    except IdentityVerificationError as exc:
        logger.warning("identity verification failed: %s", exc)
        return None

    return _principal_from_user(user)


async def _fetch_supabase_user(
    *,
    supabase_url: str,
    supabase_anon_key: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any]:
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": supabase_anon_key,
    }
    url = f"{supabase_url.rstrip('/')}/auth/v1/user"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise IdentityVerificationError("Supabase auth verification unavailable") from exc

    if response.status_code in {401, 403}:
        raise IdentityVerificationError("invalid access token")
    if response.status_code != 200:
        raise IdentityVerificationError(f"Supabase auth verification failed with status {response.status_code}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise IdentityVerificationError("Supabase auth returned a non-JSON body") from exc
    if not isinstance(payload, dict):
        raise IdentityVerificationError("Supabase auth returned an unexpected payload")
    return payload


def _principal_from_user(user: dict[str, Any]) -> Principal | None:
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        logger.warning("identity provider returned a user without id")
        return None

    email = user.get("email")
    app_metadata = user.get("app_metadata")
    role = user.get("role")
    return Principal(
        user_id=user_id,
        email=email if isinstance(email, str) and email else None,
        role=role if isinstance(role, str) and role else None,
        metadata=app_metadata if isinstance(app_metadata, dict) else {},
    )


def _unpack_cookie_token(raw: str) -> str | None:
    value = raw.strip()
    if not value:
        return None

    if value.startswith(_BASE64_COOKIE_PREFIX):
        encoded = value[len(_BASE64_COOKIE_PREFIX) :]
        padded = encoded + "=" * (-len(encoded) % 4)
        try:
            value = base64.urlsafe_b64decode(padded).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None

    if value[:1] not in {"{", "["}:
        return value

    try:
        session = json.loads(value)
    except json.JSONDecodeError:
        return None

    if isinstance(session, dict):
        token = session.get("access_token")
    elif isinstance(session, list) and session:
        token = session[0]
    else:
        token = None
    if isinstance(token, str) and token:
        return token
    return None
