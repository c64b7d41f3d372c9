from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.models import Review, utcnow


async def create_review(
    session: AsyncSession,
    restaurant_id: int,
    platform: str,
    rating: int,
    review_text: str | None = None,
    author_name: str | None = None,
    review_date: datetime | None = None,
) -> Review:
    review = Review(
        restaurant_id=restaurant_id,
        platform=platform,
        rating=rating,
        review_text=review_text,
        author_name=author_name,
        review_date=review_date or utcnow(),
    )
    session.add(review)
    await session.flush()
    return review


async def get_review(session: AsyncSession, review_id: int) -> Review | None:
    return await session.get(Review, review_id)


async def list_reviews(session: AsyncSession, restaurant_id: int, limit: int = 100) -> list[Review]:
    result = await session.execute(
        select(Review)
        .where(Review.restaurant_id == restaurant_id)
        .order_by(Review.review_date.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
