"""Tenant resolution and role checks.

Every API call acts on exactly one restaurant. The caller's staff row for
that restaurant decides the role; owners and managers see every agent, plain
staff only the agent keys listed in their permissions.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from workforce.models import StaffRole
from workforce.services import restaurants as restaurant_svc


class TenantAccessError(Exception):
    """The caller may not act on the requested restaurant."""


@dataclass
class TenantContext:
    restaurant_id: int
    role: StaffRole
    permissions: dict = field(default_factory=dict)
    user_id: int | None = None

    @property
    def is_owner(self) -> bool:
        return self.role == StaffRole.OWNER

    def can_access_agent(self, agent_key: str) -> bool:
        if self.role in (StaffRole.OWNER, StaffRole.MANAGER):
            return True
        return agent_key in (self.permissions.get("agents") or [])


async def get_tenant_context(
    session: AsyncSession, user_id: int, restaurant_id: int | None = None
) -> TenantContext:
    """Resolve which restaurant the user acts on and with which role.

    Without an explicit restaurant the user's first membership is used.
    """
    memberships = await restaurant_svc.get_restaurants_for_user(session, user_id)
    if not memberships:
        raise TenantAccessError("User does not have access to any restaurant")

    if restaurant_id is not None:
        match = next((m for m in memberships if m[0].id == restaurant_id), None)
        if match is None:
            raise TenantAccessError("User does not have access to this restaurant")
    else:
        match = memberships[0]

    restaurant, staff = match
    return TenantContext(
        restaurant_id=restaurant.id,
        role=StaffRole(staff.role),
        permissions=staff.permissions or {},
        user_id=user_id,
    )


async def verify_restaurant_access(session: AsyncSession, user_id: int, restaurant_id: int) -> bool:
    staff = await restaurant_svc.get_staff_member(session, restaurant_id, user_id)
    return staff is not None


async def verify_owner_access(session: AsyncSession, user_id: int, restaurant_id: int) -> bool:
    staff = await restaurant_svc.get_staff_member(session, restaurant_id, user_id)
    return staff is not None and staff.role == StaffRole.OWNER


async def verify_billing_access(session: AsyncSession, user_id: int, restaurant_id: int) -> bool:
    staff = await restaurant_svc.get_staff_member(session, restaurant_id, user_id)
    if staff is None:
        return False
    if staff.role == StaffRole.OWNER:
        return True
    return (staff.permissions or {}).get("canManageBilling") is True


async def verify_agent_access(
    session: AsyncSession, user_id: int, restaurant_id: int, agent_key: str
) -> bool:
    staff = await restaurant_svc.get_staff_member(session, restaurant_id, user_id)
    if staff is None:
        return False
    if staff.role in (StaffRole.OWNER, StaffRole.MANAGER):
        return True
    return agent_key in ((staff.permissions or {}).get("agents") or [])
