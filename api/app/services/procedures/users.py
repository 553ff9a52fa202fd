import logging
from typing import Any

from app.core.context import RequestContext
from app.schemas.users import (
    EmailCheckOut,
    EmailInput,
    UserCreateInput,
    UserEnsureOut,
    UserIdInput,
    UserOut,
    UserUpdateInput,
)
from app.services.errors import ConflictError
from app.services.procedures.registry import ProcedureRouter, translate_store_errors
from app.services.validation import parse_input

logger = logging.getLogger(__name__)

router = ProcedureRouter("users")

EMAIL_TAKEN_MESSAGE = "Email already exists"
EMAIL_AVAILABLE_MESSAGE = "Email available"
EMAIL_IN_USE_MESSAGE = "Email address is already in use"
EMAIL_USED_BY_OTHER_MESSAGE = "Email address is used by another user"
USER_EXISTS_MESSAGE = "User already exists"


async def check_email_availability(repository: Any, email: str) -> EmailCheckOut:
    async with translate_store_errors():
        existing = await repository.get_user_by_email(email=email)
    exists = existing is not None
    return EmailCheckOut(exists=exists, message=EMAIL_TAKEN_MESSAGE if exists else EMAIL_AVAILABLE_MESSAGE)


@router.query("checkEmail")
async def check_email(ctx: RequestContext, raw: Any) -> EmailCheckOut:
    payload = parse_input(EmailInput, raw)
    return await check_email_availability(ctx.repository, payload.email)


@router.mutation("create")
async def create_user(ctx: RequestContext, raw: Any) -> UserOut:
    payload = parse_input(UserCreateInput, raw)
    async with translate_store_errors(conflict_message=EMAIL_IN_USE_MESSAGE):
        # Fast-path rejections; the unique constraints remain authoritative.
        if await ctx.repository.get_user_by_email(email=payload.email) is not None:
            raise ConflictError(EMAIL_IN_USE_MESSAGE)
        if await ctx.repository.get_user(user_id=payload.id) is not None:
            raise ConflictError(USER_EXISTS_MESSAGE)
        row = await ctx.repository.create_user(user_id=payload.id, email=payload.email)
    logger.info("user created id=%s", row["id"])
    return UserOut(**row)


@router.mutation("ensure")
async def ensure_user(ctx: RequestContext, raw: Any) -> UserEnsureOut:
    payload = parse_input(UserCreateInput, raw)
    async with translate_store_errors(conflict_message=EMAIL_USED_BY_OTHER_MESSAGE):
        row, created = await ctx.repository.ensure_user(user_id=payload.id, email=payload.email)
    action = "created" if created else "updated"
    logger.info("user ensured id=%s action=%s", row["id"], action)
    return UserEnsureOut(user=UserOut(**row), action=action)


@router.query("getById")
async def get_user_by_id(ctx: RequestContext, raw: Any) -> UserOut | None:
    payload = parse_input(UserIdInput, raw)
    async with translate_store_errors():
        row = await ctx.repository.get_user(user_id=payload.id)
    return UserOut(**row) if row else None


@router.mutation("update")
async def update_user(ctx: RequestContext, raw: Any) -> UserOut | None:
    payload = parse_input(UserUpdateInput, raw)
    async with translate_store_errors(conflict_message=EMAIL_USED_BY_OTHER_MESSAGE):
        if payload.email is not None:
            holder = await ctx.repository.get_user_by_email(email=payload.email)
            if holder is not None and holder["id"] != payload.id:
                raise ConflictError(EMAIL_USED_BY_OTHER_MESSAGE)
        row = await ctx.repository.update_user_email(user_id=payload.id, email=payload.email)
    return UserOut(**row) if row else None


@router.mutation("deactivate")
async def deactivate_user(ctx: RequestContext, raw: Any) -> UserOut | None:
    payload = parse_input(UserIdInput, raw)
    async with translate_store_errors():
        row = await ctx.repository.set_user_active(user_id=payload.id, is_active=False)
    if row is None:
        return None
    logger.info("user deactivated id=%s", row["id"])
    return UserOut(**row)
