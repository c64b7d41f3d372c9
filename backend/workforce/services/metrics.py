from __future__ import annotations

from datetime import datetime

from sqlalchemy import Float, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.models import AnalyticsMetric


async def record_metric(
    session: AsyncSession,
    restaurant_id: int,
    metric_type: str,
    metric_value: str | int | float = "1",
    agent_key: str | None = None,
    dimensions: dict | None = None,
) -> AnalyticsMetric:
    metric = AnalyticsMetric(
        restaurant_id=restaurant_id,
        agent_key=agent_key,
        metric_type=metric_type,
        metric_value=str(metric_value),
        dimensions=dimensions or {},
    )
    session.add(metric)
    await session.flush()
    return metric


async def get_metrics(
    session: AsyncSession,
    restaurant_id: int,
    metric_type: str,
    start: datetime,
    end: datetime,
) -> list[AnalyticsMetric]:
    result = await session.execute(
        select(AnalyticsMetric)
        .where(
            AnalyticsMetric.restaurant_id == restaurant_id,
            AnalyticsMetric.metric_type == metric_type,
            AnalyticsMetric.recorded_at >= start,
            AnalyticsMetric.recorded_at <= end,
        )
        .order_by(AnalyticsMetric.recorded_at, AnalyticsMetric.id)
    )
    return list(result.scalars().all())


async def get_aggregated_metrics(
    session: AsyncSession,
    restaurant_id: int,
    metric_type: str,
    start: datetime,
    end: datetime,
) -> dict:
    """{"total", "average", "count"} over numeric metric values in the window."""
    value = cast(AnalyticsMetric.metric_value, Float)
    result = await session.execute(
        select(func.sum(value), func.avg(value), func.count(AnalyticsMetric.id)).where(
            AnalyticsMetric.restaurant_id == restaurant_id,
            AnalyticsMetric.metric_type == metric_type,
            AnalyticsMetric.recorded_at >= start,
            AnalyticsMetric.recorded_at <= end,
        )
    )
    total, average, count = result.one()
    return {"total": total or 0, "average": average or 0, "count": count or 0}
