from __future__ import annotations

import enum
import logging

from workforce.agents.base import BaseAgent
from workforce.agents.constants import SUPPORT_CONTEXT_MESSAGES, SUPPORT_HISTORY_MESSAGES
from workforce.agents.types import AgentEvent, AgentResponse
from workforce.models import MessageDirection
from workforce.services import customers as customer_svc

logger = logging.getLogger(__name__)

SUPPORT_SYSTEM_PROMPT = """You are a helpful customer support assistant for the restaurant.

Your responsibilities:
- Answer questions about menu, business hours, location, and general information
- Be friendly, professional, and concise
- If you don't know something, politely say so and offer to have staff contact them
- Keep responses under 200 words
- Use emojis sparingly and appropriately
- Always end with an offer to help further

DO NOT:
- Make up information you don't have
- Promise things you can't deliver
- Handle reservations (that's handled by another agent)"""

EMPTY_REPLY_FALLBACK = (
    "I apologize, but I am having trouble processing your request. "
    "Please try again or contact us directly."
)
ERROR_REPLY_FALLBACK = (
    "I apologize, but I'm experiencing technical difficulties. Please try again "
    "in a moment, or feel free to call us directly."
)


class SupportEvent(str, enum.Enum):
    MESSAGE_RECEIVED = "message.received"


class SupportAgent(BaseAgent):
    """Answers general customer questions in an open conversation."""

    key = "support"
    event_kinds = SupportEvent
    handlers = {SupportEvent.MESSAGE_RECEIVED: "handle_incoming_message"}

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
            self.session, conversation.id, SUPPORT_HISTORY_MESSAGES
        )
        if not messages or messages[-1].direction != MessageDirection.INBOUND:
            return AgentResponse.fail("No inbound message found")

        history = [
            {
                "role": "user" if m.direction == MessageDirection.INBOUND else "assistant",
                "content": m.content,
            }
            for m in messages[-SUPPORT_CONTEXT_MESSAGES:]
        ]
        reply = await self._draft_reply(history)

        if not await self.send_message(conversation.customer_id, reply, conversation.channel):
            return AgentResponse.fail("Failed to send support response")

        await self.log_activity(
            "Support response sent",
            conversation_id=conversation.id,
            message_length=len(reply),
        )
        return AgentResponse.ok("Support response sent successfully")

    async def _draft_reply(self, history: list[dict]) -> str:
        try:
            reply = await self.call_llm(
                [{"role": "system", "content": SUPPORT_SYSTEM_PROMPT}, *history]
            )
        except Exception:
            logger.exception("support: failed to generate a reply")
            return ERROR_REPLY_FALLBACK
        return reply or EMPTY_REPLY_FALLBACK
