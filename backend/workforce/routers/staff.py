from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.database import get_session
from workforce.models import StaffRole
from workforce.routers.deps import get_tenant, require_owner
from workforce.services import restaurants as restaurant_svc
from workforce.services.tenant import TenantContext

router = APIRouter(prefix="/staff", tags=["staff"])


class InviteStaffRequest(BaseModel):
    user_id: int
    name: str | None = None
    role: Literal["manager", "staff"] = "staff"
    # {"agents": [...], "canManageBilling": bool, "canManageStaff": bool}
    permissions: dict = {}


class UpdateStaffRequest(BaseModel):
    role: Literal["manager", "staff"] | None = None
    permissions: dict | None = None


async def _non_owner(session: AsyncSession, tenant: TenantContext, staff_id: int):
    staff = await restaurant_svc.get_staff_by_id(session, tenant.restaurant_id, staff_id)
    if staff is None:
        raise HTTPException(404, "Staff member not found")
    if staff.role == StaffRole.OWNER:
        raise HTTPException(400, "The owner cannot be modified")
    return staff


@router.get("")
async def list_staff(
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    rows = await restaurant_svc.get_restaurant_staff(session, tenant.restaurant_id)
    return [{**s.to_dict(), "name": u.name, "email": u.email} for s, u in rows]


@router.post("")
async def invite_staff(
    body: InviteStaffRequest,
    tenant: TenantContext = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    user = await restaurant_svc.ensure_user(session, body.user_id, body.name)
    existing = await restaurant_svc.get_staff_member(session, tenant.restaurant_id, user.id)
    if existing is not None:
        raise HTTPException(400, "User is already a staff member")
    staff = await restaurant_svc.add_staff_member(
        session, tenant.restaurant_id, user.id, StaffRole(body.role), body.permissions
    )
    await session.commit()
    return staff.to_dict()


@router.patch("/{staff_id}")
async def update_staff(
    staff_id: int,
    body: UpdateStaffRequest,
    tenant: TenantContext = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    staff = await _non_owner(session, tenant, staff_id)
    if body.role is not None:
        staff.role = StaffRole(body.role)
    if body.permissions is not None:
        staff.permissions = dict(body.permissions)
    await session.commit()
    return staff.to_dict()


@router.delete("/{staff_id}")
async def remove_staff(
    staff_id: int,
    tenant: TenantContext = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    staff = await _non_owner(session, tenant, staff_id)
    await restaurant_svc.remove_staff_member(session, staff)
    await session.commit()
    return {"success": True}
