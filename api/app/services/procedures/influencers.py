import logging
from typing import Any

from app.core.context import RequestContext
from app.schemas.common import IdInput
from app.schemas.influencers import (
    CampaignInfluencerLinkInput,
    CampaignInfluencerLinkOut,
    CampaignRefInput,
    InfluencerCreateInput,
    InfluencerOut,
    InfluencerUpdateInput,
)
from app.services.procedures.registry import ProcedureRouter, translate_store_errors
from app.services.validation import parse_input, quantize_engagement_rate

logger = logging.getLogger(__name__)

router = ProcedureRouter("influencers")


@router.query("list")
async def list_influencers(ctx: RequestContext, raw: Any) -> list[InfluencerOut]:
    if ctx.principal is None:
        return []
    async with translate_store_errors():
        rows = await ctx.repository.list_influencers(owner_id=ctx.principal.user_id)
    return [InfluencerOut(**row) for row in rows]


@router.mutation("create")
async def create_influencer(ctx: RequestContext, raw: Any) -> InfluencerOut:
    payload = parse_input(InfluencerCreateInput, raw)
    principal = ctx.require_principal()
    async with translate_store_errors():
        row = await ctx.repository.create_influencer(
            owner_id=principal.user_id,
            name=payload.name,
            follower_count=payload.follower_count,
            engagement_rate=quantize_engagement_rate(payload.engagement_rate),
        )
    logger.info("influencer created id=%s owner=%s", row["id"], principal.user_id)
    return InfluencerOut(**row)


@router.mutation("update")
async def update_influencer(ctx: RequestContext, raw: Any) -> InfluencerOut | None:
    payload = parse_input(InfluencerUpdateInput, raw)
    principal = ctx.require_principal()
    async with translate_store_errors():
        row = await ctx.repository.update_influencer(
            influencer_id=payload.id,
            owner_id=principal.user_id,
            name=payload.name,
            follower_count=payload.follower_count,
            engagement_rate=quantize_engagement_rate(payload.engagement_rate),
        )
    if row is None:
        logger.info("influencer update matched no rows id=%s owner=%s", payload.id, principal.user_id)
        return None
    return InfluencerOut(**row)


@router.mutation("delete")
async def delete_influencer(ctx: RequestContext, raw: Any) -> InfluencerOut | None:
    payload = parse_input(IdInput, raw)
    principal = ctx.require_principal()
    async with translate_store_errors():
        row = await ctx.repository.delete_influencer(influencer_id=payload.id, owner_id=principal.user_id)
    if row is None:
        logger.info("influencer delete matched no rows id=%s owner=%s", payload.id, principal.user_id)
        return None
    logger.info("influencer deleted id=%s owner=%s", row["id"], principal.user_id)
    return InfluencerOut(**row)


@router.mutation("assignToCampaign")
async def assign_to_campaign(ctx: RequestContext, raw: Any) -> CampaignInfluencerLinkOut | None:
    payload = parse_input(CampaignInfluencerLinkInput, raw)
    principal = ctx.require_principal()
    async with translate_store_errors():
        if not await _owns_campaign_and_influencer(ctx, payload):
            return None
        row = await ctx.repository.create_link(
            campaign_id=payload.campaign_id,
            influencer_id=payload.influencer_id,
        )
    logger.info(
        "influencer assigned influencer=%s campaign=%s owner=%s",
        payload.influencer_id,
        payload.campaign_id,
        principal.user_id,
    )
    return CampaignInfluencerLinkOut(**row)


@router.mutation("unassignFromCampaign")
async def unassign_from_campaign(ctx: RequestContext, raw: Any) -> list[CampaignInfluencerLinkOut] | None:
    payload = parse_input(CampaignInfluencerLinkInput, raw)
    ctx.require_principal()
    async with translate_store_errors():
        if not await _owns_campaign_and_influencer(ctx, payload):
            return None
        rows = await ctx.repository.delete_links(
            campaign_id=payload.campaign_id,
            influencer_id=payload.influencer_id,
        )
    return [CampaignInfluencerLinkOut(**row) for row in rows]


@router.query("byCampaign")
async def links_by_campaign(ctx: RequestContext, raw: Any) -> list[CampaignInfluencerLinkOut]:
    payload = parse_input(CampaignRefInput, raw)
    if ctx.principal is None:
        return []
    async with translate_store_errors():
        campaign = await ctx.repository.get_campaign(
            campaign_id=payload.campaign_id,
            owner_id=ctx.principal.user_id,
        )
        if campaign is None:
            return []
        rows = await ctx.repository.list_links_for_campaign(campaign_id=payload.campaign_id)
    return [CampaignInfluencerLinkOut(**row) for row in rows]


async def _owns_campaign_and_influencer(ctx: RequestContext, payload: CampaignInfluencerLinkInput) -> bool:
    owner_id = ctx.require_principal().user_id
    campaign = await ctx.repository.get_campaign(campaign_id=payload.campaign_id, owner_id=owner_id)
    influencer = await ctx.repository.get_influencer(influencer_id=payload.influencer_id, owner_id=owner_id)
    if campaign is None or influencer is None:
        logger.warning(
            "link rejected: campaign=%s influencer=%s not both owned by %s",
            payload.campaign_id,
            payload.influencer_id,
            owner_id,
        )
        return False
    return True
