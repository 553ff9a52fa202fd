import re
from datetime import datetime
from typing import Literal

from pydantic import field_validator

from app.schemas.common import CamelModel, strip_text

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value))


def _check_uuid(value: str) -> str:
    if not UUID_RE.match(value):
        raise ValueError(f"Invalid UUID format: {value}")
    return value.lower()


def _check_email(value: str) -> str:
    if not is_valid_email(value):
        raise ValueError(f"Invalid email format: {value}")
    return value


class UserIdInput(CamelModel):
    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _strip_id(cls, value: object) -> object:
        return strip_text(value)

    @field_validator("id")
    @classmethod
    def _uuid(cls, value: str) -> str:
        return _check_uuid(value)


class EmailInput(CamelModel):
    email: str

    @field_validator("email", mode="before")
    @classmethod
    def _strip_email(cls, value: object) -> object:
        return strip_text(value)

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return _check_email(value)


class UserCreateInput(UserIdInput, EmailInput):
    pass


class UserUpdateInput(UserIdInput):
    email: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def _strip_email(cls, value: object) -> object:
        value = strip_text(value)
        return value or None

    @field_validator("email")
    @classmethod
    def _email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _check_email(value)


class UserOut(CamelModel):
    id: str
    email: str
    created_at: datetime
    updated_at: datetime
    is_active: bool = True


class UserEnsureOut(CamelModel):
    user: UserOut
    action: Literal["created", "updated"]


class EmailCheckOut(CamelModel):
    exists: bool
    message: str
