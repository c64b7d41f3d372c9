from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.database import get_session
from workforce.routers.deps import get_tenant, require_agent_access, require_owner
from workforce.services import restaurants as restaurant_svc
from workforce.services.tenant import TenantContext

router = APIRouter(prefix="/agents", tags=["agents"])


class SubscribeRequest(BaseModel):
    agent_key: str
    configuration: dict = {}


class ToggleRequest(BaseModel):
    is_enabled: bool


class ConfigRequest(BaseModel):
    configuration: dict


@router.get("/catalog")
async def get_catalog(session: AsyncSession = Depends(get_session)):
    catalog = await restaurant_svc.get_agent_catalog(session)
    return [a.to_dict() for a in catalog]


@router.get("")
async def list_subscriptions(
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    agents = await restaurant_svc.get_restaurant_agents(session, tenant.restaurant_id)
    return [a.to_dict() for a in agents if tenant.can_access_agent(a.agent_key)]


@router.post("/subscribe")
async def subscribe(
    body: SubscribeRequest,
    tenant: TenantContext = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    catalog = await restaurant_svc.get_agent_catalog(session)
    if body.agent_key not in {a.agent_key for a in catalog}:
        raise HTTPException(404, "Unknown agent")
    existing = await restaurant_svc.get_restaurant_agent(
        session, tenant.restaurant_id, body.agent_key
    )
    if existing is not None:
        raise HTTPException(400, "Already subscribed to this agent")
    try:
        subscription = await restaurant_svc.subscribe_to_agent(
            session, tenant.restaurant_id, body.agent_key, body.configuration
        )
        await session.commit()
    except IntegrityError:
        # Lost a race with a concurrent subscribe
        await session.rollback()
        raise HTTPException(400, "Already subscribed to this agent")
    return subscription.to_dict()


@router.delete("/{agent_key}")
async def unsubscribe(
    agent_key: str,
    tenant: TenantContext = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    subscription = await restaurant_svc.get_restaurant_agent(
        session, tenant.restaurant_id, agent_key
    )
    if subscription is None:
        raise HTTPException(404, "Agent not subscribed")
    await restaurant_svc.unsubscribe_from_agent(session, subscription)
    await session.commit()
    return {"success": True}


async def _subscription(session: AsyncSession, tenant: TenantContext, agent_key: str):
    require_agent_access(agent_key, tenant)
    subscription = await restaurant_svc.get_restaurant_agent(
        session, tenant.restaurant_id, agent_key
    )
    if subscription is None:
        raise HTTPException(404, "Agent not subscribed")
    return subscription


@router.post("/{agent_key}/toggle")
async def toggle(
    agent_key: str,
    body: ToggleRequest,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    subscription = await _subscription(session, tenant, agent_key)
    subscription.is_enabled = body.is_enabled
    await session.commit()
    return subscription.to_dict()


@router.get("/{agent_key}/config")
async def get_config(
    agent_key: str,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    subscription = await _subscription(session, tenant, agent_key)
    return subscription.configuration or {}


@router.put("/{agent_key}/config")
async def update_config(
    agent_key: str,
    body: ConfigRequest,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    subscription = await _subscription(session, tenant, agent_key)
    # New dict so the JSON column registers the change
    subscription.configuration = dict(body.configuration)
    await session.commit()
    return subscription.configuration
