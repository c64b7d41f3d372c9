"""Built-in agent catalog, upserted into agent_catalog at startup."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from workforce.models import AgentCatalog
from workforce.services import restaurants as restaurant_svc

logger = logging.getLogger(__name__)

AGENT_CATALOG = [
    {
        "agent_key": "reservation",
        "name": "Reservation & Confirmation Agent",
        "description": (
            "Automates booking, confirmations, and reminders through WhatsApp and "
            "web widget. Handles reservation requests 24/7 with intelligent "
            "date/time parsing."
        ),
        "category": "starter",
        "base_price_monthly": "79.00",
        "features": [
            "WhatsApp & Web booking",
            "Automatic confirmations",
            "Smart reminders",
            "Natural language processing",
            "Party size management",
        ],
        "sort_order": 1,
    },
    {
        "agent_key": "support",
        "name": "Customer Support Agent",
        "description": (
            "24/7 AI-powered customer support answering questions about menu, "
            "hours, location, and general inquiries."
        ),
        "category": "starter",
        "base_price_monthly": "69.00",
        "features": [
            "24/7 availability",
            "Menu information",
            "Business hours & location",
            "Conversation history",
        ],
        "sort_order": 2,
    },
    {
        "agent_key": "reviews",
        "name": "Reviews & Reputation Agent",
        "description": (
            "Classifies new reviews, drafts professional responses, and flags "
            "negative feedback."
        ),
        "category": "growth",
        "base_price_monthly": "129.00",
        "features": [
            "AI-generated responses",
            "Sentiment analysis",
            "Negative review alerts",
        ],
        "sort_order": 3,
    },
    {
        "agent_key": "reengagement",
        "name": "Customer Re-engagement Agent",
        "description": (
            "Identifies inactive customers and sends personalized promotional "
            "messages. Brings back lost customers with targeted campaigns."
        ),
        "category": "growth",
        "base_price_monthly": "149.00",
        "features": [
            "Inactive customer detection",
            "Personalized promotions",
            "Audience segmentation",
            "Campaign analytics",
        ],
        "sort_order": 4,
    },
]


async def seed_agent_catalog(session: AsyncSession) -> int:
    """Insert or refresh the built-in catalog entries. Returns how many were new."""
    existing = {
        a.agent_key: a for a in await restaurant_svc.get_agent_catalog(session, active_only=False)
    }
    created = 0
    for entry in AGENT_CATALOG:
        row = existing.get(entry["agent_key"])
        if row is None:
            session.add(AgentCatalog(**entry))
            created += 1
        else:
            for field, value in entry.items():
                setattr(row, field, value)
    await session.commit()
    if created:
        logger.info("seeded %d agent catalog entries", created)
    return created
