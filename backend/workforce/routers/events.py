from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.database import get_session
from workforce.models import EventStatus
from workforce.routers.deps import get_tenant
from workforce.services import events as event_svc
from workforce.services.tenant import TenantContext

router = APIRouter(prefix="/events", tags=["events"])


@router.get("")
async def list_events(
    status: EventStatus | None = None,
    limit: int = 50,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    events = await event_svc.list_events(session, tenant.restaurant_id, status, limit)
    return [e.to_dict() for e in events]
