from __future__ import annotations

from datetime import datetime, timedelta
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.agents.constants import REMINDER_WINDOW_HOURS
from workforce.database import get_session
from workforce.models import ReservationStatus, as_utc
from workforce.routers.deps import get_tenant
from workforce.services import customers as customer_svc
from workforce.services import events as event_svc
from workforce.services import reservations as reservation_svc
from workforce.services.tenant import TenantContext

router = APIRouter(prefix="/reservations", tags=["reservations"])


class CreateReservationRequest(BaseModel):
    customer_id: int
    reservation_date: datetime
    party_size: int = Field(ge=1)
    special_requests: str | None = None
    source: Literal["whatsapp", "web", "phone", "manual"] = "manual"


class UpdateReservationRequest(BaseModel):
    status: ReservationStatus | None = None
    party_size: int | None = Field(default=None, ge=1)
    special_requests: str | None = None


@router.post("")
async def create_reservation(
    body: CreateReservationRequest,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    customer = await customer_svc.get_customer(session, body.customer_id)
    if customer is None or customer.restaurant_id != tenant.restaurant_id:
        raise HTTPException(404, "Customer not found")

    reservation = await reservation_svc.create_reservation(
        session,
        restaurant_id=tenant.restaurant_id,
        customer_id=customer.id,
        reservation_date=as_utc(body.reservation_date),
        party_size=body.party_size,
        special_requests=body.special_requests,
        source=body.source,
    )
    event = await event_svc.enqueue(
        session,
        tenant.restaurant_id,
        "reservation.created",
        "reservation",
        {"reservationId": reservation.id},
    )
    await session.commit()
    return {"reservation_id": reservation.id, "event_id": event.id}


@router.get("")
async def list_reservations(
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    rows = await reservation_svc.list_reservations(
        session, tenant.restaurant_id, as_utc(start), as_utc(end), limit
    )
    return [{**r.to_dict(), "customer": c.to_dict()} for r, c in rows]


@router.post("/reminders")
async def schedule_reminders(
    within_hours: float = REMINDER_WINDOW_HOURS,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    """Queue a reminder for every confirmed reservation coming up soon."""
    due = await reservation_svc.list_due_reminders(
        session, tenant.restaurant_id, timedelta(hours=within_hours)
    )
    for reservation in due:
        await event_svc.enqueue(
            session,
            tenant.restaurant_id,
            "reservation.reminder",
            "reservation",
            {"reservationId": reservation.id},
        )
    await session.commit()
    return {"enqueued": len(due)}


@router.post("/{reservation_id}/cancel")
async def cancel_reservation(
    reservation_id: int,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    reservation = await reservation_svc.get_reservation(session, reservation_id)
    if reservation is None or reservation.restaurant_id != tenant.restaurant_id:
        raise HTTPException(404, "Reservation not found")
    reservation.status = ReservationStatus.CANCELLED
    await session.commit()
    return reservation.to_dict()


@router.patch("/{reservation_id}")
async def update_reservation(
    reservation_id: int,
    body: UpdateReservationRequest,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    reservation = await reservation_svc.get_reservation(session, reservation_id)
    if reservation is None or reservation.restaurant_id != tenant.restaurant_id:
        raise HTTPException(404, "Reservation not found")
    for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(reservation, field, value)
    await session.commit()
    return reservation.to_dict()
