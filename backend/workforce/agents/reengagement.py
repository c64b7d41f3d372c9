from __future__ import annotations

import asyncio
import enum
import logging

from workforce.agents.base import BaseAgent
from workforce.agents.constants import CAMPAIGN_SEND_DELAY_SECONDS, DEFAULT_INACTIVE_DAYS
from workforce.agents.types import AgentEvent, AgentResponse
from workforce.models import CampaignStatus, Customer, utcnow
from workforce.services import campaigns as campaign_svc
from workforce.services import customers as customer_svc

logger = logging.getLogger(__name__)

PERSONALIZE_PROMPT = """You are helping personalize a re-engagement message for a customer who hasn't visited in a while.

Guidelines:
- Keep the core message and offer intact
- Make it feel personal and genuine
- Reference their past visits if relevant
- Keep the same length and tone
- Don't add information not in the original message"""


class ReengagementEvent(str, enum.Enum):
    CAMPAIGN_LAUNCHED = "campaign.launched"


def _campaign_stats(targeted: int, sent: int) -> dict:
    # delivered/read/replied are filled in by delivery receipts, never here
    return {"targeted": targeted, "sent": sent, "delivered": 0, "read": 0, "replied": 0}


def matches_audience(customer: Customer, tags: list, min_reservations: int) -> bool:
    if tags and not set(tags) & set(customer.tags or []):
        return False
    return (customer.total_reservations or 0) >= min_reservations


def fill_template(template: str, customer_name: str | None, restaurant_name: str | None) -> str:
    first_name = customer_name.split(" ")[0] if customer_name else None
    return (
        template.replace("{name}", customer_name or "there")
        .replace("{restaurant}", restaurant_name or "our restaurant")
        .replace("{firstName}", first_name or "there")
    )


class ReengagementAgent(BaseAgent):
    """Sends campaign messages to customers who have gone quiet."""

    key = "reengagement"
    event_kinds = ReengagementEvent
    handlers = {ReengagementEvent.CAMPAIGN_LAUNCHED: "execute_campaign"}

    async def execute_campaign(self, event: AgentEvent) -> AgentResponse:
        campaign_id = event.payload.get("campaignId")
        campaign = (
            await campaign_svc.get_campaign(
                self.session, self.context.restaurant_id, int(campaign_id)
            )
            if campaign_id is not None
            else None
        )
        if campaign is None:
            return AgentResponse.fail("Campaign not found")

        audience = await self.get_target_audience(campaign.target_audience or {})
        if not audience:
            campaign.status = CampaignStatus.COMPLETED
            campaign.completed_at = utcnow()
            campaign.stats = _campaign_stats(0, 0)
            return AgentResponse.ok("No customers match campaign criteria")

        delay = float(self.get_config("send_delay_seconds", CAMPAIGN_SEND_DELAY_SECONDS))
        # Draft and pace with no pending writes, so the database write lock
        # is only taken for the outbox burst below
        drafts = []
        for i, customer in enumerate(audience):
            if i and delay > 0:
                await asyncio.sleep(delay)
            drafts.append((customer, await self.personalize(campaign.message_template, customer)))

        sent = 0
        for customer, text in drafts:
            if await self.send_message(customer.id, text):
                sent += 1

        campaign.status = CampaignStatus.COMPLETED
        campaign.completed_at = utcnow()
        campaign.stats = _campaign_stats(len(audience), sent)

        await self.log_activity(
            "Campaign executed", campaign_id=campaign.id, targeted=len(audience), sent=sent
        )
        return AgentResponse.ok(
            f"Campaign sent to {sent}/{len(audience)} customers",
            {"targeted": len(audience), "sent": sent},
        )

    async def get_target_audience(self, criteria: dict) -> list[Customer]:
        """Inactive customers filtered by any-tag match and a reservation floor."""
        inactive_days = int(criteria.get("inactiveDays") or DEFAULT_INACTIVE_DAYS)
        tags = criteria.get("tags") or []
        min_reservations = int(criteria.get("minReservations") or 0)

        customers = await customer_svc.get_inactive_customers(
            self.session, self.context.restaurant_id, inactive_days
        )
        return [c for c in customers if matches_audience(c, tags, min_reservations)]

    async def personalize(self, template: str, customer: Customer) -> str:
        restaurant = await self.get_restaurant()
        message = fill_template(template, customer.name, restaurant.name if restaurant else None)
        if self.get_config("use_llm_personalization", False):
            message = await self._enhance(message, customer)
        return message

    async def _enhance(self, message: str, customer: Customer) -> str:
        last_seen = (
            f"{customer.last_interaction_at:%Y-%m-%d}"
            if customer.last_interaction_at
            else "Unknown"
        )
        user = (
            f'Original message: "{message}"\n\n'
            "Customer info:\n"
            f"- Name: {customer.name or 'Unknown'}\n"
            f"- Total past reservations: {customer.total_reservations or 0}\n"
            f"- Last interaction: {last_seen}\n\n"
            "Personalize this message:"
        )
        try:
            reply = await self.call_llm(
                [
                    {"role": "system", "content": PERSONALIZE_PROMPT},
                    {"role": "user", "content": user},
                ]
            )
        except Exception:
            logger.exception("reengagement: personalization failed for customer %d", customer.id)
            return message
        return reply or message
