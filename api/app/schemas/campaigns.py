from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from pydantic import Field, field_validator

from app.schemas.common import CamelModel, RowId, strip_text
from app.schemas.influencers import InfluencerOut


class CampaignCreateInput(CamelModel):
    title: str = Field(min_length=1)
    description: str = ""
    budget: str = ""
    start_date: date | None = None
    end_date: date | None = None

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: object) -> object:
        return strip_text(value)

    @field_validator("description", "budget", mode="before")
    @classmethod
    def _optional_text(cls, value: object) -> object:
        if value is None:
            return ""
        return strip_text(value)

    @field_validator("budget")
    @classmethod
    def _budget_is_decimal(cls, value: str) -> str:
        if not value:
            return value
        try:
            parsed = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError("budget must be a decimal number") from exc
        if not parsed.is_finite():
            raise ValueError("budget must be a decimal number")
        return value

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _optional_date(cls, value: object) -> object:
        if value is None:
            return None
        if isinstance(value, str):
            candidate = value.strip()
            if not candidate:
                return None
            if "T" in candidate:
                try:
                    return datetime.fromisoformat(candidate.replace("Z", "+00:00")).date()
                except ValueError:
                    return candidate
            return candidate
        return value


class CampaignUpdateInput(CampaignCreateInput):
    id: RowId


class CampaignOut(CamelModel):
    id: int
    user_id: str
    title: str
    description: str = ""
    budget: str = ""
    start_date: date | None = None
    end_date: date | None = None
    created_at: datetime
    updated_at: datetime


class CampaignWithInfluencersOut(CampaignOut):
    influencers: list[InfluencerOut] = Field(default_factory=list)
