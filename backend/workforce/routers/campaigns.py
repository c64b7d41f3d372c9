from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.database import get_session
from workforce.models import CampaignStatus
from workforce.routers.deps import get_tenant
from workforce.services import campaigns as campaign_svc
from workforce.services import events as event_svc
from workforce.services.tenant import TenantContext

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


class TargetAudience(BaseModel):
    inactiveDays: int | None = None
    tags: list[str] | None = None
    minReservations: int | None = None


class CreateCampaignRequest(BaseModel):
    name: str
    message_template: str
    target_audience: TargetAudience = TargetAudience()


async def _campaign(session: AsyncSession, tenant: TenantContext, campaign_id: int):
    campaign = await campaign_svc.get_campaign(session, tenant.restaurant_id, campaign_id)
    if campaign is None:
        raise HTTPException(404, "Campaign not found")
    return campaign


@router.get("")
async def list_campaigns(
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    campaigns = await campaign_svc.list_campaigns(session, tenant.restaurant_id)
    return [c.to_dict() for c in campaigns]


@router.post("")
async def create_campaign(
    body: CreateCampaignRequest,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    campaign = await campaign_svc.create_campaign(
        session,
        tenant.restaurant_id,
        body.name,
        body.message_template,
        body.target_audience.model_dump(exclude_none=True),
    )
    await session.commit()
    return campaign.to_dict()


@router.post("/{campaign_id}/launch")
async def launch_campaign(
    campaign_id: int,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    campaign = await _campaign(session, tenant, campaign_id)
    if campaign.status not in (CampaignStatus.DRAFT, CampaignStatus.SCHEDULED):
        raise HTTPException(400, f"Campaign is already {CampaignStatus(campaign.status).value}")
    campaign.status = CampaignStatus.RUNNING
    event = await event_svc.enqueue(
        session,
        tenant.restaurant_id,
        "campaign.launched",
        "reengagement",
        {"campaignId": campaign.id},
    )
    await session.commit()
    return {"campaign_id": campaign.id, "event_id": event.id}


@router.post("/{campaign_id}/pause")
async def pause_campaign(
    campaign_id: int,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    campaign = await _campaign(session, tenant, campaign_id)
    campaign.status = CampaignStatus.CANCELLED
    await session.commit()
    return campaign.to_dict()
