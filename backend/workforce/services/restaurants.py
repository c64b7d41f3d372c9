from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.models import (
    AgentCatalog,
    Restaurant,
    RestaurantAgent,
    RestaurantStaff,
    StaffRole,
    User,
    utcnow,
)


# ── Restaurants & staff ─────────────────────────────────────────


async def ensure_user(session: AsyncSession, user_id: int, name: str | None = None) -> User:
    user = await session.get(User, user_id)
    if user is None:
        user = User(id=user_id, open_id=str(user_id), name=name)
        session.add(user)
        await session.flush()
    return user


async def create_restaurant(session: AsyncSession, owner_id: int, name: str, **fields) -> Restaurant:
    """Create a restaurant and make its creator the owner."""
    restaurant = Restaurant(owner_id=owner_id, name=name, **fields)
    session.add(restaurant)
    await session.flush()
    session.add(
        RestaurantStaff(
            restaurant_id=restaurant.id,
            user_id=owner_id,
            role=StaffRole.OWNER,
            permissions={},
        )
    )
    await session.flush()
    return restaurant


async def get_restaurant(session: AsyncSession, restaurant_id: int) -> Restaurant | None:
    return await session.get(Restaurant, restaurant_id)


async def get_restaurants_for_user(
    session: AsyncSession, user_id: int
) -> list[tuple[Restaurant, RestaurantStaff]]:
    """(restaurant, staff row) pairs for every active membership, oldest first."""
    result = await session.execute(
        select(Restaurant, RestaurantStaff)
        .join(RestaurantStaff, RestaurantStaff.restaurant_id == Restaurant.id)
        .where(RestaurantStaff.user_id == user_id, RestaurantStaff.is_active.is_(True))
        .order_by(RestaurantStaff.id)
    )
    return [(row[0], row[1]) for row in result.all()]


async def get_staff_member(
    session: AsyncSession, restaurant_id: int, user_id: int
) -> RestaurantStaff | None:
    result = await session.execute(
        select(RestaurantStaff)
        .where(
            RestaurantStaff.restaurant_id == restaurant_id,
            RestaurantStaff.user_id == user_id,
            RestaurantStaff.is_active.is_(True),
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def add_staff_member(
    session: AsyncSession,
    restaurant_id: int,
    user_id: int,
    role: StaffRole,
    permissions: dict | None = None,
) -> RestaurantStaff:
    staff = RestaurantStaff(
        restaurant_id=restaurant_id, user_id=user_id, role=role, permissions=permissions or {}
    )
    session.add(staff)
    await session.flush()
    return staff


async def get_restaurant_staff(
    session: AsyncSession, restaurant_id: int
) -> list[tuple[RestaurantStaff, User]]:
    """Active staff of a restaurant with their user rows, in invitation order."""
    result = await session.execute(
        select(RestaurantStaff, User)
        .join(User, User.id == RestaurantStaff.user_id)
        .where(
            RestaurantStaff.restaurant_id == restaurant_id,
            RestaurantStaff.is_active.is_(True),
        )
        .order_by(RestaurantStaff.id)
    )
    return [(row[0], row[1]) for row in result.all()]


async def get_staff_by_id(
    session: AsyncSession, restaurant_id: int, staff_id: int
) -> RestaurantStaff | None:
    staff = await session.get(RestaurantStaff, staff_id)
    if staff is None or staff.restaurant_id != restaurant_id or not staff.is_active:
        return None
    return staff


async def remove_staff_member(session: AsyncSession, staff: RestaurantStaff) -> None:
    """Deactivate a membership; the row is kept for history."""
    staff.is_active = False
    await session.flush()


# ── Agent catalog & subscriptions ───────────────────────────────


async def get_agent_catalog(
    session: AsyncSession, active_only: bool = True
) -> list[AgentCatalog]:
    query = select(AgentCatalog)
    if active_only:
        query = query.where(AgentCatalog.is_active.is_(True))
    result = await session.execute(query.order_by(AgentCatalog.sort_order))
    return list(result.scalars().all())


async def get_restaurant_agents(session: AsyncSession, restaurant_id: int) -> list[RestaurantAgent]:
    result = await session.execute(
        select(RestaurantAgent)
        .where(RestaurantAgent.restaurant_id == restaurant_id)
        .order_by(RestaurantAgent.id)
    )
    return list(result.scalars().all())


async def get_restaurant_agent(
    session: AsyncSession, restaurant_id: int, agent_key: str
) -> RestaurantAgent | None:
    result = await session.execute(
        select(RestaurantAgent)
        .where(
            RestaurantAgent.restaurant_id == restaurant_id,
            RestaurantAgent.agent_key == agent_key,
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def is_agent_enabled(session: AsyncSession, restaurant_id: int, agent_key: str) -> bool:
    subscription = await get_restaurant_agent(session, restaurant_id, agent_key)
    return subscription is not None and subscription.is_enabled


async def subscribe_to_agent(
    session: AsyncSession,
    restaurant_id: int,
    agent_key: str,
    configuration: dict | None = None,
    is_enabled: bool = True,
) -> RestaurantAgent:
    subscription = RestaurantAgent(
        restaurant_id=restaurant_id,
        agent_key=agent_key,
        is_enabled=is_enabled,
        configuration=configuration or {},
    )
    session.add(subscription)
    await session.flush()
    return subscription


async def unsubscribe_from_agent(session: AsyncSession, subscription: RestaurantAgent) -> None:
    await session.delete(subscription)
    await session.flush()


async def touch_agent(session: AsyncSession, restaurant_id: int, agent_key: str) -> None:
    """Record that a subscribed agent just finished work."""
    await session.execute(
        update(RestaurantAgent)
        .where(
            RestaurantAgent.restaurant_id == restaurant_id,
            RestaurantAgent.agent_key == agent_key,
        )
        .values(last_active_at=utcnow())
        .execution_options(synchronize_session=False)
    )
