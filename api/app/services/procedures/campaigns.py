import logging
from collections import defaultdict
from typing import Any

from app.core.context import RequestContext
from app.schemas.campaigns import (
    CampaignCreateInput,
    CampaignOut,
    CampaignUpdateInput,
    CampaignWithInfluencersOut,
)
from app.schemas.common import IdInput
from app.schemas.influencers import InfluencerOut
from app.services.procedures.registry import ProcedureRouter, translate_store_errors
from app.services.validation import parse_input

logger = logging.getLogger(__name__)

router = ProcedureRouter("campaigns")


@router.query("list")
async def list_campaigns(ctx: RequestContext, raw: Any) -> list[CampaignOut]:
    if ctx.principal is None:
        return []
    async with translate_store_errors():
        rows = await ctx.repository.list_campaigns(owner_id=ctx.principal.user_id)
    return [CampaignOut(**row) for row in rows]


@router.query("listWithInfluencers")
async def list_campaigns_with_influencers(ctx: RequestContext, raw: Any) -> list[CampaignWithInfluencersOut]:
    if ctx.principal is None:
        return []
    owner_id = ctx.principal.user_id
    async with translate_store_errors():
        campaigns = await ctx.repository.list_campaigns(owner_id=owner_id)
        influencers = await ctx.repository.list_influencers(owner_id=owner_id)
        links = await ctx.repository.list_links_for_campaigns(campaign_ids=[row["id"] for row in campaigns])

    # Links pointing at influencers outside the caller's roster are dropped.
    roster = {row["id"]: InfluencerOut(**row) for row in influencers}
    assigned: dict[int, list[InfluencerOut]] = defaultdict(list)
    seen: set[tuple[int, int]] = set()
    for link in links:
        pair = (link["campaign_id"], link["influencer_id"])
        influencer = roster.get(link["influencer_id"])
        if influencer is None or pair in seen:
            continue
        seen.add(pair)
        assigned[link["campaign_id"]].append(influencer)

    return [CampaignWithInfluencersOut(**row, influencers=assigned.get(row["id"], [])) for row in campaigns]


@router.mutation("create")
async def create_campaign(ctx: RequestContext, raw: Any) -> CampaignOut:
    payload = parse_input(CampaignCreateInput, raw)
    principal = ctx.require_principal()
    async with translate_store_errors():
        row = await ctx.repository.create_campaign(
            owner_id=principal.user_id,
            title=payload.title,
            description=payload.description,
            budget=payload.budget,
            start_date=payload.start_date,
            end_date=payload.end_date,
        )
    logger.info("campaign created id=%s owner=%s", row["id"], principal.user_id)
    return CampaignOut(**row)


@router.mutation("update")
async def update_campaign(ctx: RequestContext, raw: Any) -> CampaignOut | None:
    payload = parse_input(CampaignUpdateInput, raw)
    principal = ctx.require_principal()
    async with translate_store_errors():
        row = await ctx.repository.update_campaign(
            campaign_id=payload.id,
            owner_id=principal.user_id,
            title=payload.title,
            description=payload.description,
            budget=payload.budget,
            start_date=payload.start_date,
            end_date=payload.end_date,
        )
    if row is None:
        logger.info("campaign update matched no rows id=%s owner=%s", payload.id, principal.user_id)
        return None
    return CampaignOut(**row)


@router.mutation("delete")
async def delete_campaign(ctx: RequestContext, raw: Any) -> CampaignOut | None:
    payload = parse_input(IdInput, raw)
    principal = ctx.require_principal()
    async with translate_store_errors():
        row = await ctx.repository.delete_campaign(campaign_id=payload.id, owner_id=principal.user_id)
    if row is None:
        logger.info("campaign delete matched no rows id=%s owner=%s", payload.id, principal.user_id)
        return None
    logger.info("campaign deleted id=%s owner=%s", row["id"], principal.user_id)
    return CampaignOut(**row)
