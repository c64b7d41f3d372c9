from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.models import Campaign, CampaignStatus


async def create_campaign(
    session: AsyncSession,
    restaurant_id: int,
    name: str,
    message_template: str,
    target_audience: dict | None = None,
) -> Campaign:
    campaign = Campaign(
        restaurant_id=restaurant_id,
        name=name,
        message_template=message_template,
        target_audience=target_audience or {},
        status=CampaignStatus.DRAFT,
    )
    session.add(campaign)
    await session.flush()
    return campaign


async def get_campaign(
    session: AsyncSession, restaurant_id: int, campaign_id: int
) -> Campaign | None:
    """Fetch a campaign only if it belongs to the restaurant."""
    result = await session.execute(
        select(Campaign)
        .where(Campaign.id == campaign_id, Campaign.restaurant_id == restaurant_id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_campaigns(session: AsyncSession, restaurant_id: int) -> list[Campaign]:
    result = await session.execute(
        select(Campaign)
        .where(Campaign.restaurant_id == restaurant_id)
        .order_by(Campaign.created_at.desc())
    )
    return list(result.scalars().all())
