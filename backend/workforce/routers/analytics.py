from __future__ import annotations

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.database import get_session
from workforce.models import as_utc, utcnow
from workforce.routers.deps import get_tenant
from workforce.services import metrics as metric_svc
from workforce.services.tenant import TenantContext

router = APIRouter(prefix="/analytics", tags=["analytics"])


def _window(start: datetime | None, end: datetime | None) -> tuple[datetime, datetime]:
    """UTC bounds, defaulting to the last 30 days."""
    end = as_utc(end) if end else utcnow()
    start = as_utc(start) if start else end - timedelta(days=30)
    return start, end


@router.get("/metrics")
async def aggregated_metrics(
    metric_type: str = "agent_activity",
    start: datetime | None = None,
    end: datetime | None = None,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    """Total, average and count of one metric type; defaults to the last 30 days."""
    start, end = _window(start, end)
    summary = await metric_svc.get_aggregated_metrics(
        session, tenant.restaurant_id, metric_type, start, end
    )
    return {"metric_type": metric_type, "start": start.isoformat(), "end": end.isoformat(), **summary}


@router.get("/chart")
async def chart_data(
    metric_type: str = "agent_activity",
    start: datetime | None = None,
    end: datetime | None = None,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    """Individual metric points in the window, oldest first."""
    start, end = _window(start, end)
    metrics = await metric_svc.get_metrics(session, tenant.restaurant_id, metric_type, start, end)
    return [m.to_dict() for m in metrics]
