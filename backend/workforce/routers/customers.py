from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.database import get_session
from workforce.routers.deps import get_tenant
from workforce.services import customers as customer_svc
from workforce.services.tenant import TenantContext

router = APIRouter(prefix="/customers", tags=["customers"])


class UpdateCustomerRequest(BaseModel):
    name: str | None = None
    email: str | None = None
    tags: list[str] | None = None
    metadata: dict | None = None


async def _customer(session: AsyncSession, tenant: TenantContext, customer_id: int):
    customer = await customer_svc.get_customer(session, customer_id)
    if customer is None or customer.restaurant_id != tenant.restaurant_id:
        raise HTTPException(404, "Customer not found")
    return customer


@router.get("")
async def list_customers(
    limit: int = 100,
    offset: int = 0,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    customers = await customer_svc.list_customers(session, tenant.restaurant_id, limit, offset)
    return [c.to_dict() for c in customers]


@router.get("/{customer_id}")
async def get_customer(
    customer_id: int,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    customer = await _customer(session, tenant, customer_id)
    return customer.to_dict()


@router.patch("/{customer_id}")
async def update_customer(
    customer_id: int,
    body: UpdateCustomerRequest,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    customer = await _customer(session, tenant, customer_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if "metadata" in changes:
        customer.extra = dict(changes.pop("metadata"))
    if "tags" in changes:
        customer.tags = list(changes.pop("tags"))
    for field, value in changes.items():
        setattr(customer, field, value)
    await session.commit()
    return customer.to_dict()
