#!/usr/bin/env python3
"""Copy confirmed Supabase Auth users that are missing from the local users table."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any

import asyncpg  # type: ignore[import-untyped]
import httpx

ADMIN_PAGE_SIZE = 1000


def select_missing_users(auth_users: list[dict[str, Any]], existing_ids: set[str]) -> list[dict[str, Any]]:
    selected: list[dict[str, Any]] = []
    for user in auth_users:
        user_id = user.get("id")
        email = user.get("email")
        if not isinstance(user_id, str) or not user_id:
            continue
        if not isinstance(email, str) or not email:
            continue
        if not user.get("email_confirmed_at"):
            continue
        if user_id in existing_ids:
            continue
        selected.append(user)
    return selected


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(users: list[dict[str, Any]]) -> str:
    lines = ["-- Local users backfill from Supabase Auth"]
    for user in users:
        created_at = user.get("created_at")
        created_expr = f"{_quote_sql(created_at)}::timestamptz" if isinstance(created_at, str) and created_at else "now()"
        lines.append(
            "insert into users (id, email, created_at, updated_at, is_active) "
            f"values ({_quote_sql(user['id'])}::uuid, {_quote_sql(user['email'])}, {created_expr}, now(), true) "
            "on conflict (id) do nothing;"
        )
    return "\n".join(lines) + "\n"


def load_auth_users_json(path: Path) -> list[dict[str, Any]]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("users", [])
    if not isinstance(payload, list):
        raise ValueError(f"{path} must hold a list of users or an object with a 'users' list")
    return [item for item in payload if isinstance(item, dict)]


async def fetch_auth_users(*, supabase_url: str, service_role_key: str, timeout_seconds: float) -> list[dict[str, Any]]:
    headers = {
        "Authorization": f"Bearer {service_role_key}",
        "apikey": service_role_key,
    }
    url = f"{supabase_url.rstrip('/')}/auth/v1/admin/users"
    users: list[dict[str, Any]] = []
    page = 1
    async with httpx.AsyncClient(timeout=timeout_seconds) as client:
        while True:
            response = await client.get(url, headers=headers, params={"page": page, "per_page": ADMIN_PAGE_SIZE})
            response.raise_for_status()
            batch = response.json().get("users", [])
            users.extend(item for item in batch if isinstance(item, dict))
            if len(batch) < ADMIN_PAGE_SIZE:
                return users
            page += 1


async def fetch_existing_ids(database_url: str) -> set[str]:
    conn = await asyncpg.connect(dsn=database_url)
    try:
        rows = await conn.fetch("select id::text as id from users")
    finally:
        await conn.close()
    return {row["id"] for row in rows}


async def insert_users(database_url: str, users: list[dict[str, Any]]) -> int:
    conn = await asyncpg.connect(dsn=database_url)
    inserted = 0
    try:
        for user in users:
            status = await conn.execute(
                """
                insert into users (id, email, created_at, updated_at, is_active)
                values ($1::uuid, $2, coalesce($3::text::timestamptz, now()), now(), true)
                on conflict do nothing
                """,
                user["id"],
                user["email"],
                user.get("created_at"),
            )
            if status.endswith(" 1"):
                inserted += 1
    finally:
        await conn.close()
    return inserted


async def run(args: argparse.Namespace) -> int:
    if args.from_json:
        auth_users = load_auth_users_json(Path(args.from_json))
    else:
        if not args.supabase_url or not args.service_role_key:
            print("--supabase-url and --service-role-key (or --from-json) are required", file=sys.stderr)
            return 1
        auth_users = await fetch_auth_users(
            supabase_url=args.supabase_url,
            service_role_key=args.service_role_key,
            timeout_seconds=args.timeout,
        )

    existing_ids = await fetch_existing_ids(args.database_url) if args.database_url else set()
    missing = select_missing_users(auth_users, existing_ids)

    if args.emit_sql:
        print(render_sql(missing), end="")
        return 0

    if not args.database_url:
        print("--database-url is required unless --emit-sql is set", file=sys.stderr)
        return 1

    inserted = await insert_users(args.database_url, missing)
    print(f"auth users: {len(auth_users)} missing locally: {len(missing)} inserted: {inserted}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Backfill local users from Supabase Auth.")
    parser.add_argument("--from-json", help="Read auth users from a JSON export instead of the admin API")
    parser.add_argument("--supabase-url", default=os.getenv("CD_SUPABASE_URL"))
    parser.add_argument("--service-role-key", default=os.getenv("SUPABASE_SERVICE_ROLE_KEY"))
    parser.add_argument("--database-url", default=os.getenv("CD_DATABASE_URL"))
    parser.add_argument("--timeout", type=float, default=10.0)
    parser.add_argument("--emit-sql", action="store_true", help="Print insert statements instead of executing them")
    args = parser.parse_args()
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
