from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.database import get_session
from workforce.services import tenant as tenant_svc
from workforce.services.tenant import TenantAccessError, TenantContext


async def get_tenant(
    x_user_id: int | None = Header(None),
    restaurant_id: int | None = Query(None),
    session: AsyncSession = Depends(get_session),
) -> TenantContext:
    """Resolve the caller's restaurant from the X-User-Id header."""
    if x_user_id is None:
        raise HTTPException(401, "Missing X-User-Id header")
    try:
        return await tenant_svc.get_tenant_context(session, x_user_id, restaurant_id)
    except TenantAccessError as exc:
        raise HTTPException(403, str(exc))


def require_owner(tenant: TenantContext = Depends(get_tenant)) -> TenantContext:
    if not tenant.is_owner:
        raise HTTPException(403, "Owner access required")
    return tenant


def require_agent_access(agent_key: str, tenant: TenantContext) -> None:
    if not tenant.can_access_agent(agent_key):
        raise HTTPException(403, f"No access to agent '{agent_key}'")
