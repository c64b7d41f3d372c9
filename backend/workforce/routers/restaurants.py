from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.database import get_session
from workforce.routers.deps import get_tenant, require_owner
from workforce.services import restaurants as restaurant_svc
from workforce.services.tenant import TenantContext

router = APIRouter(prefix="/restaurants", tags=["restaurants"])


class CreateRestaurantRequest(BaseModel):
    name: str
    slug: str | None = None
    description: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    website_url: str | None = None
    menu_url: str | None = None
    timezone: str = "UTC"
    business_hours: dict | None = None


class UpdateRestaurantRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    website_url: str | None = None
    menu_url: str | None = None
    timezone: str | None = None
    business_hours: dict | None = None
    settings: dict | None = None


def _user_id(x_user_id: int | None) -> int:
    if x_user_id is None:
        raise HTTPException(401, "Missing X-User-Id header")
    return x_user_id


@router.get("")
async def list_restaurants(
    x_user_id: int | None = Header(None),
    session: AsyncSession = Depends(get_session),
):
    rows = await restaurant_svc.get_restaurants_for_user(session, _user_id(x_user_id))
    return [{"id": r.id, "name": r.name, "role": s.role.value} for r, s in rows]


@router.post("")
async def create_restaurant(
    body: CreateRestaurantRequest,
    x_user_id: int | None = Header(None),
    session: AsyncSession = Depends(get_session),
):
    user = await restaurant_svc.ensure_user(session, _user_id(x_user_id))
    restaurant = await restaurant_svc.create_restaurant(
        session, user.id, body.name, **body.model_dump(exclude={"name"})
    )
    await session.commit()
    return {"id": restaurant.id, "name": restaurant.name}


@router.get("/current")
async def get_current_restaurant(
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    restaurant = await restaurant_svc.get_restaurant(session, tenant.restaurant_id)
    return {**restaurant.to_dict(), "role": tenant.role.value}


@router.patch("/current")
async def update_current_restaurant(
    body: UpdateRestaurantRequest,
    tenant: TenantContext = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    restaurant = await restaurant_svc.get_restaurant(session, tenant.restaurant_id)
    for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(restaurant, field, value)
    await session.commit()
    return restaurant.to_dict()
