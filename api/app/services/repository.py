from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from app.core.config import get_settings


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write violates a uniqueness constraint."""


USER_COLUMNS = """
  id::text as id,
  email,
  created_at,
  updated_at,
  is_active
"""

CAMPAIGN_COLUMNS = """
  id,
  user_id::text as user_id,
  title,
  description,
  budget,
  start_date,
  end_date,
  created_at,
  updated_at
"""

INFLUENCER_COLUMNS = """
  id,
  user_id::text as user_id,
  name,
  follower_count,
  engagement_rate,
  created_at,
  updated_at
"""

LINK_COLUMNS = """
  id,
  campaign_id,
  influencer_id
"""


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float = 15.0,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max(min_pool_size, max_pool_size)
        self.command_timeout_seconds = command_timeout_seconds
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    # users

    async def get_user(self, *, user_id: str) -> dict[str, Any] | None:
        row = await self._fetchrow(f"select {USER_COLUMNS} from users where id = $1::uuid", user_id)
        return self._user_row_to_dict(row) if row else None

    async def get_user_by_email(self, *, email: str) -> dict[str, Any] | None:
        row = await self._fetchrow(f"select {USER_COLUMNS} from users where email = $1 limit 1", email)
        return self._user_row_to_dict(row) if row else None

    async def create_user(self, *, user_id: str, email: str) -> dict[str, Any]:
        row = await self._fetchrow(
            f"""
            insert into users (id, email)
            values ($1::uuid, $2)
            returning {USER_COLUMNS}
            """,
            user_id,
            email,
        )
        return self._user_row_to_dict(row)

    async def ensure_user(self, *, user_id: str, email: str) -> tuple[dict[str, Any], bool]:
        """Insert the user or refresh an existing row; returns (row, created)."""
        row = await self._fetchrow(
            f"""
            insert into users (id, email)
            values ($1::uuid, $2)
            on conflict (id) do update
            set
              email = excluded.email,
              updated_at = now(),
              is_active = true
            returning {USER_COLUMNS}, (xmax = 0) as inserted
            """,
            user_id,
            email,
        )
        return self._user_row_to_dict(row), bool(row["inserted"])

    async def update_user_email(self, *, user_id: str, email: str | None) -> dict[str, Any] | None:
        row = await self._fetchrow(
            f"""
            update users
            set
              email = coalesce($2, email),
              updated_at = now()
            where id = $1::uuid
            returning {USER_COLUMNS}
            """,
            user_id,
            email,
        )
        return self._user_row_to_dict(row) if row else None

    async def set_user_active(self, *, user_id: str, is_active: bool) -> dict[str, Any] | None:
        row = await self._fetchrow(
            f"""
            update users
            set
              is_active = $2,
              updated_at = now()
            where id = $1::uuid
            returning {USER_COLUMNS}
            """,
            user_id,
            is_active,
        )
        return self._user_row_to_dict(row) if row else None

    # campaigns

    async def list_campaigns(self, *, owner_id: str) -> list[dict[str, Any]]:
        rows = await self._fetch(
            f"select {CAMPAIGN_COLUMNS} from campaigns where user_id = $1::uuid order by id",
            owner_id,
        )
        return [self._campaign_row_to_dict(row) for row in rows]

    async def get_campaign(self, *, campaign_id: int, owner_id: str) -> dict[str, Any] | None:
        row = await self._fetchrow(
            f"select {CAMPAIGN_COLUMNS} from campaigns where id = $1 and user_id = $2::uuid",
            campaign_id,
            owner_id,
        )
        return self._campaign_row_to_dict(row) if row else None

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
        row = await self._fetchrow(
            f"""
            insert into campaigns (user_id, title, description, budget, start_date, end_date)
            values ($1::uuid, $2, $3, $4, $5, $6)
            returning {CAMPAIGN_COLUMNS}
            """,
            owner_id,
            title,
            description,
            budget,
            start_date,
            end_date,
        )
        return self._campaign_row_to_dict(row)

    async def update_campaign(
        self,
        *,
        campaign_id: int,
        owner_id: str,
        title: str,
        description: str,
        budget: str,
        start_date: date | None,
        end_date: date | None,
    ) -> dict[str, Any] | None:
        row = await self._fetchrow(
            f"""
            update campaigns
            set
              title = $3,
              description = $4,
              budget = $5,
              start_date = $6,
              end_date = $7,
              updated_at = now()
            where id = $1 and user_id = $2::uuid
            returning {CAMPAIGN_COLUMNS}
            """,
            campaign_id,
            owner_id,
            title,
            description,
            budget,
            start_date,
            end_date,
        )
        return self._campaign_row_to_dict(row) if row else None

    async def delete_campaign(self, *, campaign_id: int, owner_id: str) -> dict[str, Any] | None:
        row = await self._fetchrow(
            f"""
            delete from campaigns
            where id = $1 and user_id = $2::uuid
            returning {CAMPAIGN_COLUMNS}
            """,
            campaign_id,
            owner_id,
        )
        return self._campaign_row_to_dict(row) if row else None

    # influencers

    async def list_influencers(self, *, owner_id: str) -> list[dict[str, Any]]:
        rows = await self._fetch(
            f"select {INFLUENCER_COLUMNS} from influencers where user_id = $1::uuid order by id",
            owner_id,
        )
        return [self._influencer_row_to_dict(row) for row in rows]

    async def get_influencer(self, *, influencer_id: int, owner_id: str) -> dict[str, Any] | None:
        row = await self._fetchrow(
            f"select {INFLUENCER_COLUMNS} from influencers where id = $1 and user_id = $2::uuid",
            influencer_id,
            owner_id,
        )
        return self._influencer_row_to_dict(row) if row else None

    async def create_influencer(
        self,
        *,
        owner_id: str,
        name: str,
        follower_count: int,
        engagement_rate: Decimal,
    ) -> dict[str, Any]:
        row = await self._fetchrow(
            f"""
            insert into influencers (user_id, name, follower_count, engagement_rate)
            values ($1::uuid, $2, $3, $4)
            returning {INFLUENCER_COLUMNS}
            """,
            owner_id,
            name,
            follower_count,
            engagement_rate,
        )
        return self._influencer_row_to_dict(row)

    async def update_influencer(
        self,
        *,
        influencer_id: int,
        owner_id: str,
        name: str,
        follower_count: int,
        engagement_rate: Decimal,
    ) -> dict[str, Any] | None:
        row = await self._fetchrow(
            f"""
            update influencers
            set
              name = $3,
              follower_count = $4,
              engagement_rate = $5,
              updated_at = now()
            where id = $1 and user_id = $2::uuid
            returning {INFLUENCER_COLUMNS}
            """,
            influencer_id,
            owner_id,
            name,
            follower_count,
            engagement_rate,
        )
        return self._influencer_row_to_dict(row) if row else None

    async def delete_influencer(self, *, influencer_id: int, owner_id: str) -> dict[str, Any] | None:
        row = await self._fetchrow(
            f"""
            delete from influencers
            where id = $1 and user_id = $2::uuid
            returning {INFLUENCER_COLUMNS}
            """,
            influencer_id,
            owner_id,
        )
        return self._influencer_row_to_dict(row) if row else None

    # campaign <-> influencer links

    async def list_links_for_campaign(self, *, campaign_id: int) -> list[dict[str, Any]]:
        rows = await self._fetch(
            f"select {LINK_COLUMNS} from campaign_influencers where campaign_id = $1 order by id",
            campaign_id,
        )
        return [self._link_row_to_dict(row) for row in rows]

    async def list_links_for_campaigns(self, *, campaign_ids: list[int]) -> list[dict[str, Any]]:
        if not campaign_ids:
            return []
        rows = await self._fetch(
            f"select {LINK_COLUMNS} from campaign_influencers where campaign_id = any($1::int[]) order by id",
            campaign_ids,
        )
        return [self._link_row_to_dict(row) for row in rows]

    async def create_link(self, *, campaign_id: int, influencer_id: int) -> dict[str, Any]:
        """Insert the link unless the pair already exists; returns the stored row."""
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        f"""
                        insert into campaign_influencers (campaign_id, influencer_id)
                        values ($1, $2)
                        on conflict (campaign_id, influencer_id) do nothing
                        returning {LINK_COLUMNS}
                        """,
                        campaign_id,
                        influencer_id,
                    )
                    if row is None:
                        row = await conn.fetchrow(
                            f"""
                            select {LINK_COLUMNS}
                            from campaign_influencers
                            where campaign_id = $1 and influencer_id = $2
                            order by id
                            limit 1
                            """,
                            campaign_id,
                            influencer_id,
                        )
        except (asyncpg.PostgresError, asyncpg.DataError) as exc:
            raise self._translate_error(exc) from exc
        return self._link_row_to_dict(row)

    async def delete_links(self, *, campaign_id: int, influencer_id: int) -> list[dict[str, Any]]:
        rows = await self._fetch(
            f"""
            delete from campaign_influencers
            where campaign_id = $1 and influencer_id = $2
            returning {LINK_COLUMNS}
            """,
            campaign_id,
            influencer_id,
        )
        return [self._link_row_to_dict(row) for row in rows]

    async def _fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        pool = await self._get_pool()
        try:
            return await pool.fetch(query, *args)
        except (asyncpg.PostgresError, asyncpg.DataError) as exc:
            raise self._translate_error(exc) from exc

    async def _fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        pool = await self._get_pool()
        try:
            return await pool.fetchrow(query, *args)
        except (asyncpg.PostgresError, asyncpg.DataError) as exc:
            raise self._translate_error(exc) from exc

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("CD_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        async with self._pool_lock:
            if self._pool is not None:
                return self._pool
            try:
                self._pool = await asyncpg.create_pool(
                    dsn=self.database_url,
                    min_size=self.min_pool_size,
                    max_size=self.max_pool_size,
                    command_timeout=self.command_timeout_seconds,
                )
            except Exception as exc:  # pragma: no cover - depends on environment
                raise RepositoryUnavailableError("database unavailable") from exc
            return self._pool

    @staticmethod
    def _translate_error(exc: Exception) -> RepositoryError:
        if isinstance(exc, pg_exc.UniqueViolationError):
            return RepositoryConflictError(str(exc))
        return RepositoryError(str(exc))

    @staticmethod
    def _user_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "email": row["email"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "is_active": bool(row["is_active"]),
        }

    @staticmethod
    def _campaign_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "user_id": row["user_id"],
            "title": row["title"],
            "description": row["description"] or "",
            "budget": row["budget"] or "",
            "start_date": row["start_date"],
            "end_date": row["end_date"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _influencer_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        engagement_rate = row["engagement_rate"]
        return {
            "id": row["id"],
            "user_id": row["user_id"],
            "name": row["name"],
            "follower_count": int(row["follower_count"] or 0),
            "engagement_rate": Decimal(engagement_rate) if engagement_rate is not None else Decimal("0.00"),
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _link_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "campaign_id": row["campaign_id"],
            "influencer_id": row["influencer_id"],
        }


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_command_timeout_seconds,
    )
