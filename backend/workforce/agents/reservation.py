from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from datetime import datetime

from workforce.agents.base import BaseAgent
from workforce.agents.constants import DEFAULT_PARTY_SIZE, RESERVATION_HISTORY_MESSAGES
from workforce.agents.types import AgentEvent, AgentResponse
from workforce.models import (
    Customer,
    MessageDirection,
    Reservation,
    ReservationStatus,
    as_utc,
    utcnow,
)
from workforce.services import customers as customer_svc
from workforce.services import reservations as reservation_svc
from workforce.services import restaurants as restaurant_svc

logger = logging.getLogger(__name__)

INTENT_PROMPT = """Analyze this message and determine if it's a reservation request. Extract date, time, party size, and special requests.

Message: "{message}"

Respond in JSON format only:
{{
  "isReservation": true/false,
  "date": "ISO 8601 date-time string if found",
  "partySize": number if found,
  "specialRequests": "any special requests mentioned"
}}"""


class ReservationEvent(str, enum.Enum):
    CREATED = "reservation.created"
    REMINDER = "reservation.reminder"
    MESSAGE_RECEIVED = "message.received"


@dataclass
class ReservationIntent:
    is_reservation: bool = False
    date: datetime | None = None
    party_size: int | None = None
    special_requests: str | None = None


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_intent_reply(reply: str | None) -> ReservationIntent:
    """Turn the completion's JSON reply into a ReservationIntent.

    Anything unparsable is treated as "not a reservation"; a bad date or
    party size only drops that field.
    """
    if not reply:
        return ReservationIntent()
    try:
        data = json.loads(_strip_code_fence(reply))
    except json.JSONDecodeError:
        logger.warning("reservation intent reply is not JSON: %.200s", reply)
        return ReservationIntent()
    if not isinstance(data, dict):
        return ReservationIntent()

    date = None
    if isinstance(data.get("date"), str) and data["date"]:
        try:
            date = datetime.fromisoformat(data["date"])
        except ValueError:
            date = None
        date = as_utc(date)

    party_size = None
    try:
        party_size = int(data.get("partySize"))
    except (TypeError, ValueError):
        party_size = None
    if party_size is not None and party_size < 1:
        party_size = None

    special = data.get("specialRequests")
    return ReservationIntent(
        is_reservation=data.get("isReservation") is True,
        date=date,
        party_size=party_size,
        special_requests=special if isinstance(special, str) and special else None,
    )


class ReservationAgent(BaseAgent):
    """Booking confirmations, reminders and reservation requests from chat."""

    key = "reservation"
    event_kinds = ReservationEvent
    handlers = {
        ReservationEvent.CREATED: "handle_reservation_created",
        ReservationEvent.REMINDER: "send_reminder",
        ReservationEvent.MESSAGE_RECEIVED: "handle_incoming_message",
    }

    async def _load(self, event: AgentEvent) -> tuple[Reservation | None, Customer | None]:
        reservation_id = event.payload.get("reservationId")
        if reservation_id is None:
            return None, None
        reservation = await reservation_svc.get_reservation(self.session, int(reservation_id))
        if reservation is None or reservation.restaurant_id != self.context.restaurant_id:
            return None, None
        customer = await customer_svc.get_customer(self.session, reservation.customer_id)
        return reservation, customer

    async def handle_reservation_created(self, event: AgentEvent) -> AgentResponse:
        reservation, customer = await self._load(event)
        if reservation is None:
            return AgentResponse.fail("Reservation not found")
        if reservation.status != ReservationStatus.PENDING:
            return AgentResponse.fail("Reservation not pending")
        if customer is None:
            return AgentResponse.fail("Customer not found")

        text = await self._confirmation_message(reservation, customer)
        if not await self.send_message(customer.id, text):
            return AgentResponse.fail("Failed to send confirmation")

        reservation.status = ReservationStatus.CONFIRMED
        reservation.confirmation_sent_at = utcnow()
        await self.log_activity("Reservation confirmed", reservation_id=reservation.id)
        return AgentResponse.ok(
            "Confirmation sent successfully", {"reservationId": reservation.id}
        )

    async def send_reminder(self, event: AgentEvent) -> AgentResponse:
        reservation, customer = await self._load(event)
        if reservation is None or reservation.status != ReservationStatus.CONFIRMED:
            return AgentResponse.fail("Reservation not valid for reminder")
        if reservation.reminder_sent_at is not None:
            return AgentResponse.fail("Reminder already sent")
        if customer is None:
            return AgentResponse.fail("Customer not found")

        text = await self._reminder_message(reservation, customer)
        if not await self.send_message(customer.id, text):
            return AgentResponse.fail("Failed to send reminder")

        reservation.reminder_sent_at = utcnow()
        await self.log_activity("Reminder sent", reservation_id=reservation.id)
        return AgentResponse.ok("Reminder sent successfully")

    async def handle_incoming_message(self, event: AgentEvent) -> AgentResponse:
        conversation_id = event.payload.get("conversationId")
        conversation = (
            await customer_svc.get_conversation(self.session, int(conversation_id))
            if conversation_id is not None
            else None
        )
        if conversation is None or conversation.restaurant_id != self.context.restaurant_id:
            return AgentResponse.fail("Conversation not found")

        messages = await customer_svc.get_conversation_messages(
            self.session, conversation.id, RESERVATION_HISTORY_MESSAGES
        )
        last = messages[-1] if messages else None
        if last is None or last.direction != MessageDirection.INBOUND:
            return AgentResponse.fail("No inbound message found")

        intent = await self._parse_intent(last.content)
        if intent.is_reservation:
            reservation = await reservation_svc.create_reservation(
                self.session,
                restaurant_id=self.context.restaurant_id,
                customer_id=conversation.customer_id,
                reservation_date=intent.date or utcnow(),
                party_size=intent.party_size or DEFAULT_PARTY_SIZE,
                special_requests=intent.special_requests,
                source=conversation.channel,
            )
            await self.enqueue_event(
                ReservationEvent.CREATED.value, self.key, {"reservationId": reservation.id}
            )
            await self.log_activity(
                "Reservation created from message",
                reservation_id=reservation.id,
                conversation_id=conversation.id,
            )
            return AgentResponse.ok(
                "Reservation created and confirmation triggered",
                {"reservationId": reservation.id},
            )

        if await restaurant_svc.is_agent_enabled(
            self.session, self.context.restaurant_id, "support"
        ):
            await self.enqueue_event(
                "message.received",
                "support",
                {"conversationId": conversation.id, "messageId": last.id},
            )
            return AgentResponse.ok("Not a reservation request, handed to support")
        return AgentResponse.ok("Not a reservation request")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _parse_intent(self, message: str) -> ReservationIntent:
        try:
            reply = await self.call_llm(
                [{"role": "user", "content": INTENT_PROMPT.format(message=message)}]
            )
        except Exception:
            logger.exception("reservation: intent parsing failed")
            return ReservationIntent()
        return parse_intent_reply(reply)

    async def _confirmation_message(self, reservation: Reservation, customer: Customer) -> str:
        restaurant = await self.get_restaurant()
        date = reservation.reservation_date
        lines = [
            "Reservation Confirmed!",
            "",
            f"Hi {customer.name or 'there'}!",
            "",
            f"Your reservation at {restaurant.name if restaurant else 'our restaurant'} is confirmed:",
            "",
            f"Date: {date:%Y-%m-%d}",
            f"Time: {date:%H:%M}",
            f"Party Size: {reservation.party_size} people",
        ]
        if reservation.special_requests:
            lines.append(f"Special Requests: {reservation.special_requests}")
        lines += [
            "",
            "We look forward to seeing you! If you need to make changes, please reply to this message.",
        ]
        if restaurant and restaurant.address:
            lines.append(restaurant.address)
        if restaurant and restaurant.phone:
            lines.append(restaurant.phone)
        return "\n".join(lines)

    async def _reminder_message(self, reservation: Reservation, customer: Customer) -> str:
        restaurant = await self.get_restaurant()
        date = reservation.reservation_date
        lines = [
            "Reservation Reminder",
            "",
            f"Hi {customer.name or 'there'}!",
            "",
            "This is a friendly reminder about your reservation at "
            f"{restaurant.name if restaurant else 'our restaurant'}:",
            "",
            f"Date: {date:%Y-%m-%d}",
            f"Time: {date:%H:%M}",
            f"Party Size: {reservation.party_size} people",
            "",
            "We're excited to see you! If you need to cancel or make changes, "
            "please let us know as soon as possible.",
        ]
        if restaurant and restaurant.address:
            lines.append(restaurant.address)
        return "\n".join(lines)
