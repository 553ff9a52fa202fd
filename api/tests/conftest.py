from __future__ import annotations

import os

os.environ.setdefault("CD_OTEL_ENABLED", "false")

import itertools
import json
from collections.abc import Iterator
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

import app.core.security as security
from app.core.config import get_settings
from app.main import app
from app.services.repository import RepositoryConflictError, RepositoryError, get_repository

USER_A_ID = "6f1c1a52-3f4e-4b8a-9d2e-0a1b2c3d4e5f"
USER_B_ID = "9a8b7c6d-5e4f-4a3b-8c2d-1e0f9a8b7c6d"

AUTH_USERS: dict[str, dict[str, Any]] = {
    "token-a": {"id": USER_A_ID, "email": "alice@example.com", "app_metadata": {"provider": "email"}},
    "token-b": {"id": USER_B_ID, "email": "bob@example.com", "app_metadata": {"provider": "email"}},
}


class FakeCampaignRepository:
    """In-memory stand-in for PostgresRepository with the same cascade and unique rules."""

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.campaigns: dict[int, dict[str, Any]] = {}
        self.influencers: dict[int, dict[str, Any]] = {}
        self.links: dict[int, dict[str, Any]] = {}
        self._campaign_ids = itertools.count(1)
        self._influencer_ids = itertools.count(1)
        self._link_ids = itertools.count(1)
        self.fail_with: RepositoryError | None = None

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    # users

    async def get_user(self, *, user_id: str) -> dict[str, Any] | None:
        self._check()
        row = self.users.get(user_id)
        return dict(row) if row else None

    async def get_user_by_email(self, *, email: str) -> dict[str, Any] | None:
        self._check()
        for row in self.users.values():
            if row["email"] == email:
                return dict(row)
        return None

    def _assert_email_free(self, email: str, *, except_id: str | None = None) -> None:
        for row in self.users.values():
            if row["email"] == email and row["id"] != except_id:
                raise RepositoryConflictError('duplicate key value violates unique constraint "users_email_unique"')

    async def create_user(self, *, user_id: str, email: str) -> dict[str, Any]:
        self._check()
        if user_id in self.users:
            raise RepositoryConflictError('duplicate key value violates unique constraint "users_pkey"')
        self._assert_email_free(email)
        now = self._now()
        self.users[user_id] = {
            "id": user_id,
            "email": email,
            "created_at": now,
            "updated_at": now,
            "is_active": True,
        }
        return dict(self.users[user_id])

    async def ensure_user(self, *, user_id: str, email: str) -> tuple[dict[str, Any], bool]:
        self._check()
        if user_id not in self.users:
            return await self.create_user(user_id=user_id, email=email), True
        self._assert_email_free(email, except_id=user_id)
        row = self.users[user_id]
        row.update(email=email, updated_at=self._now(), is_active=True)
        return dict(row), False

    async def update_user_email(self, *, user_id: str, email: str | None) -> dict[str, Any] | None:
        self._check()
        row = self.users.get(user_id)
        if row is None:
            return None
        if email is not None:
            self._assert_email_free(email, except_id=user_id)
            row["email"] = email
        row["updated_at"] = self._now()
        return dict(row)

    async def set_user_active(self, *, user_id: str, is_active: bool) -> dict[str, Any] | None:
        self._check()
        row = self.users.get(user_id)
        if row is None:
            return None
        row.update(is_active=is_active, updated_at=self._now())
        return dict(row)

    # campaigns

    async def list_campaigns(self, *, owner_id: str) -> list[dict[str, Any]]:
        self._check()
        return [dict(row) for row in self.campaigns.values() if row["user_id"] == owner_id]

    async def get_campaign(self, *, campaign_id: int, owner_id: str) -> dict[str, Any] | None:
        self._check()
        row = self.campaigns.get(campaign_id)
        if row is None or row["user_id"] != owner_id:
            return None
        return dict(row)

    async def create_campaign(
        self,
        *,
        owner_id: str,
        title: str,
        description: str,
        budget: str,
        start_date: date | None,
        end_date: date | None,
    ) -> dict[str, Any]:
        self._check()
        now = self._now()
        campaign_id = next(self._campaign_ids)
        self.campaigns[campaign_id] = {
            "id": campaign_id,
            "user_id": owner_id,
            "title": title,
            "description": description,
            "budget": budget,
            "start_date": start_date,
            "end_date": end_date,
            "created_at": now,
            "updated_at": now,
        }
        return dict(self.campaigns[campaign_id])

    async def update_campaign(self, *, campaign_id: int, owner_id: str, **fields: Any) -> dict[str, Any] | None:
        self._check()
        row = self.campaigns.get(campaign_id)
        if row is None or row["user_id"] != owner_id:
            return None
        row.update(fields, updated_at=self._now())
        return dict(row)

    async def delete_campaign(self, *, campaign_id: int, owner_id: str) -> dict[str, Any] | None:
        self._check()
        row = self.campaigns.get(campaign_id)
        if row is None or row["user_id"] != owner_id:
            return None
        del self.campaigns[campaign_id]
        self.links = {key: link for key, link in self.links.items() if link["campaign_id"] != campaign_id}
        return row

    # influencers

    async def list_influencers(self, *, owner_id: str) -> list[dict[str, Any]]:
        self._check()
        return [dict(row) for row in self.influencers.values() if row["user_id"] == owner_id]

    async def get_influencer(self, *, influencer_id: int, owner_id: str) -> dict[str, Any] | None:
        self._check()
        row = self.influencers.get(influencer_id)
        if row is None or row["user_id"] != owner_id:
            return None
        return dict(row)

    async def create_influencer(
        self,
        *,
        owner_id: str,
        name: str,
        follower_count: int,
        engagement_rate: Decimal,
    ) -> dict[str, Any]:
        self._check()
        now = self._now()
        influencer_id = next(self._influencer_ids)
        self.influencers[influencer_id] = {
            "id": influencer_id,
            "user_id": owner_id,
            "name": name,
            "follower_count": follower_count,
            "engagement_rate": engagement_rate,
            "created_at": now,
            "updated_at": now,
        }
        return dict(self.influencers[influencer_id])

    async def update_influencer(self, *, influencer_id: int, owner_id: str, **fields: Any) -> dict[str, Any] | None:
        self._check()
        row = self.influencers.get(influencer_id)
        if row is None or row["user_id"] != owner_id:
            return None
        row.update(fields, updated_at=self._now())
        return dict(row)

    async def delete_influencer(self, *, influencer_id: int, owner_id: str) -> dict[str, Any] | None:
        self._check()
        row = self.influencers.get(influencer_id)
        if row is None or row["user_id"] != owner_id:
            return None
        del self.influencers[influencer_id]
        self.links = {key: link for key, link in self.links.items() if link["influencer_id"] != influencer_id}
        return row

    # links

    async def list_links_for_campaign(self, *, campaign_id: int) -> list[dict[str, Any]]:
        self._check()
        return [dict(link) for link in self.links.values() if link["campaign_id"] == campaign_id]

    async def list_links_for_campaigns(self, *, campaign_ids: list[int]) -> list[dict[str, Any]]:
        self._check()
        wanted = set(campaign_ids)
        return [dict(link) for link in self.links.values() if link["campaign_id"] in wanted]

    async def create_link(self, *, campaign_id: int, influencer_id: int) -> dict[str, Any]:
        self._check()
        for link in self.links.values():
            if link["campaign_id"] == campaign_id and link["influencer_id"] == influencer_id:
                return dict(link)
        link_id = next(self._link_ids)
        self.links[link_id] = {"id": link_id, "campaign_id": campaign_id, "influencer_id": influencer_id}
        return dict(self.links[link_id])

    async def delete_links(self, *, campaign_id: int, influencer_id: int) -> list[dict[str, Any]]:
        self._check()
        removed = [
            link
            for link in self.links.values()
            if link["campaign_id"] == campaign_id and link["influencer_id"] == influencer_id
        ]
        for link in removed:
            del self.links[link["id"]]
        return removed


class RpcClient:
    def __init__(self, client: TestClient) -> None:
        self.client = client

    @staticmethod
    def _headers(token: str | None) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"} if token else {}

    def query(self, path: str, payload: Any = None, *, token: str | None = None) -> httpx.Response:
        params = {"input": json.dumps(payload)} if payload is not None else None
        return self.client.get(f"/api/trpc/{path}", params=params, headers=self._headers(token))

    def mutate(self, path: str, payload: Any = None, *, token: str | None = None) -> httpx.Response:
        return self.client.post(f"/api/trpc/{path}", json=payload, headers=self._headers(token))


def data_of(response: httpx.Response) -> Any:
    assert response.status_code == 200, response.text
    return response.json()["result"]["data"]


@pytest.fixture
def fake_repo() -> FakeCampaignRepository:
    return FakeCampaignRepository()


@pytest.fixture
def client(fake_repo: FakeCampaignRepository, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    monkeypatch.setenv("CD_SUPABASE_URL", "https://abcdefghijkl.supabase.co")
    monkeypatch.setenv("CD_SUPABASE_ANON_KEY", "anon-key")
    get_settings.cache_clear()

    async def _fake_fetch(*, token: str, **_: Any) -> dict[str, Any]:
        user = AUTH_USERS.get(token)
        if user is None:
            raise security.IdentityVerificationError("invalid access token")
        return user

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)
    app.dependency_overrides[get_repository] = lambda: fake_repo

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    get_settings.cache_clear()


@pytest.fixture
def rpc(client: TestClient) -> RpcClient:
    return RpcClient(client)
