from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from pydantic import Field, field_validator

from app.schemas.common import INT4_MAX, CamelModel, RowId, strip_text

ENGAGEMENT_RATE_QUANTUM = Decimal("0.01")


class InfluencerCreateInput(CamelModel):
    name: str = Field(min_length=1)
    follower_count: int = Field(default=0, ge=0, le=INT4_MAX, strict=True)
    engagement_rate: float = Field(default=0, ge=0, le=100, allow_inf_nan=False, strict=True)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: object) -> object:
        return strip_text(value)

    @field_validator("follower_count", "engagement_rate", mode="before")
    @classmethod
    def _default_when_null(cls, value: object) -> object:
        if value is None:
            return 0
        if isinstance(value, bool):
            raise ValueError("must be a number")
        return value


class InfluencerUpdateInput(InfluencerCreateInput):
    id: RowId


class InfluencerOut(CamelModel):
    id: int
    user_id: str
    name: str
    follower_count: int = 0
    engagement_rate: Decimal = Decimal("0.00")
    created_at: datetime
    updated_at: datetime

    @field_validator("engagement_rate")
    @classmethod
    def _two_decimals(cls, value: Decimal) -> Decimal:
        return value.quantize(ENGAGEMENT_RATE_QUANTUM, rounding=ROUND_HALF_UP)


class CampaignInfluencerLinkInput(CamelModel):
    influencer_id: RowId
    campaign_id: RowId


class CampaignRefInput(CamelModel):
    campaign_id: RowId


class CampaignInfluencerLinkOut(CamelModel):
    id: int
    campaign_id: int
    influencer_id: int
