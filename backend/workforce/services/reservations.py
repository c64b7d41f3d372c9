from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.models import Customer, Reservation, ReservationStatus, utcnow


async def create_reservation(
    session: AsyncSession,
    restaurant_id: int,
    customer_id: int,
    reservation_date: datetime,
    party_size: int,
    special_requests: str | None = None,
    source: str | None = "manual",
) -> Reservation:
    reservation = Reservation(
        restaurant_id=restaurant_id,
        customer_id=customer_id,
        reservation_date=reservation_date,
        party_size=party_size,
        special_requests=special_requests,
        source=source,
        status=ReservationStatus.PENDING,
    )
    session.add(reservation)

    customer = await session.get(Customer, customer_id)
    if customer is not None:
        customer.total_reservations = (customer.total_reservations or 0) + 1

    await session.flush()
    return reservation


async def get_reservation(session: AsyncSession, reservation_id: int) -> Reservation | None:
    return await session.get(Reservation, reservation_id)


async def list_reservations(
    session: AsyncSession,
    restaurant_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> list[tuple[Reservation, Customer]]:
    query = (
        select(Reservation, Customer)
        .join(Customer, Customer.id == Reservation.customer_id)
        .where(Reservation.restaurant_id == restaurant_id)
    )
    if start is not None:
        query = query.where(Reservation.reservation_date >= start)
    if end is not None:
        query = query.where(Reservation.reservation_date <= end)
    result = await session.execute(
        query.order_by(Reservation.reservation_date.desc()).limit(limit)
    )
    return [(row[0], row[1]) for row in result.all()]


async def list_due_reminders(
    session: AsyncSession, restaurant_id: int, within: timedelta
) -> list[Reservation]:
    """Confirmed reservations starting within `within` that have had no reminder."""
    now = utcnow()
    result = await session.execute(
        select(Reservation)
        .where(
            Reservation.restaurant_id == restaurant_id,
            Reservation.status == ReservationStatus.CONFIRMED,
            Reservation.reminder_sent_at.is_(None),
            Reservation.reservation_date > now,
            Reservation.reservation_date <= now + within,
        )
        .order_by(Reservation.reservation_date)
    )
    return list(result.scalars().all())
