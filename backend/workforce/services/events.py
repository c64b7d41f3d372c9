"""Event store: durable work items consumed by the event processor.

Events move strictly forward: pending, then processing, then completed or failed.
Every status write here is a conditional UPDATE against the expected source
state, so a lost race shows up as an affected-row count of zero instead of
silently overwriting another writer.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.models import Event, EventStatus, utcnow

logger = logging.getLogger(__name__)

STALE_EVENT_ERROR = "Processing timed out"

# target status -> statuses it may be reached from
_TRANSITIONS: dict[EventStatus, set[EventStatus]] = {
    EventStatus.PROCESSING: {EventStatus.PENDING},
    EventStatus.COMPLETED: {EventStatus.PROCESSING},
    EventStatus.FAILED: {EventStatus.PROCESSING},
}


async def enqueue(
    session: AsyncSession,
    restaurant_id: int,
    event_type: str,
    agent_key: str | None,
    payload: dict | None = None,
) -> Event:
    """Insert a pending event. The caller owns the transaction."""
    event = Event(
        restaurant_id=restaurant_id,
        event_type=event_type,
        agent_key=agent_key,
        payload=payload or {},
        status=EventStatus.PENDING,
    )
    session.add(event)
    await session.flush()
    logger.debug(
        "enqueued event %d (%s for %s) for restaurant %d",
        event.id, event_type, agent_key, restaurant_id,
    )
    return event


async def get_event(session: AsyncSession, event_id: int) -> Event | None:
    return await session.get(Event, event_id)


async def list_pending(session: AsyncSession, limit: int = 100) -> list[Event]:
    """Pending events, oldest first across all tenants."""
    result = await session.execute(
        select(Event)
        .where(Event.status == EventStatus.PENDING)
        .order_by(Event.created_at, Event.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_events(
    session: AsyncSession,
    restaurant_id: int,
    status: EventStatus | None = None,
    limit: int = 50,
) -> list[Event]:
    query = select(Event).where(Event.restaurant_id == restaurant_id)
    if status is not None:
        query = query.where(Event.status == status)
    result = await session.execute(
        query.order_by(Event.created_at.desc(), Event.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def update_status(
    session: AsyncSession,
    event_id: int,
    status: EventStatus,
    error: str | None = None,
    processed_at: datetime | None = None,
) -> bool:
    """Move an event forward. Returns False if it was not in a valid source state."""
    sources = _TRANSITIONS.get(status)
    if not sources:
        raise ValueError(f"Events cannot be moved to '{status.value}'")

    values: dict = {"status": status}
    if error is not None:
        values["error"] = error
    if processed_at is not None:
        values["processed_at"] = processed_at

    result = await session.execute(
        update(Event)
        .where(Event.id == event_id, Event.status.in_(sources))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def claim(session: AsyncSession, event_id: int) -> bool:
    """Atomically take a pending event. Only one caller can win."""
    result = await session.execute(
        update(Event)
        .where(Event.id == event_id, Event.status == EventStatus.PENDING)
        .values(status=EventStatus.PROCESSING, claimed_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def fail_stale(session: AsyncSession, older_than: timedelta) -> int:
    """Fail events left in processing since before now - older_than.

    A crashed worker leaves its claimed event in processing forever; those are
    failed (never re-queued) so the status column stays monotonic.
    """
    now = utcnow()
    stale = await session.execute(
        select(Event.id).where(
            Event.status == EventStatus.PROCESSING,
            Event.claimed_at < now - older_than,
        )
    )
    ids = list(stale.scalars().all())
    if not ids:
        return 0
    result = await session.execute(
        update(Event)
        .where(Event.id.in_(ids), Event.status == EventStatus.PROCESSING)
        .values(status=EventStatus.FAILED, error=STALE_EVENT_ERROR, processed_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.warning("failed %d stale event(s) stuck in processing", result.rowcount)
    return result.rowcount
