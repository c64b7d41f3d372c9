from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.database import get_session
from workforce.models import utcnow
from workforce.routers.deps import get_tenant
from workforce.services import events as event_svc
from workforce.services import reviews as review_svc
from workforce.services.tenant import TenantContext

router = APIRouter(prefix="/reviews", tags=["reviews"])


class CreateReviewRequest(BaseModel):
    platform: str
    rating: int = Field(ge=1, le=5)
    review_text: str | None = None
    author_name: str | None = None
    review_date: datetime | None = None


class RespondRequest(BaseModel):
    response_text: str


@router.get("")
async def list_reviews(
    limit: int = 100,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    reviews = await review_svc.list_reviews(session, tenant.restaurant_id, limit)
    return [r.to_dict() for r in reviews]


@router.post("")
async def create_review(
    body: CreateReviewRequest,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    review = await review_svc.create_review(
        session,
        restaurant_id=tenant.restaurant_id,
        platform=body.platform,
        rating=body.rating,
        review_text=body.review_text,
        author_name=body.author_name,
        review_date=body.review_date,
    )
    event = await event_svc.enqueue(
        session, tenant.restaurant_id, "review.detected", "reviews", {"reviewId": review.id}
    )
    await session.commit()
    return {"review_id": review.id, "event_id": event.id}


@router.post("/{review_id}/respond")
async def respond(
    review_id: int,
    body: RespondRequest,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    review = await review_svc.get_review(session, review_id)
    if review is None or review.restaurant_id != tenant.restaurant_id:
        raise HTTPException(404, "Review not found")
    review.response_text = body.response_text
    review.response_generated_by = "manual"
    review.responded_at = utcnow()
    await session.commit()
    return review.to_dict()
