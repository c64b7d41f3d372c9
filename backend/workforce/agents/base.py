"""BaseAgent: shared capabilities for all restaurant agents.

An agent handles the events of one capability area for one restaurant.
Subclasses declare:
    key: str                         registry key ("reservation", ...)
    event_kinds: type[enum.Enum]     the event types they understand
    handlers: dict[kind, str]        handler method name per event kind

The handler table is checked when the subclass is defined: leaving an event
kind without a handler raises TypeError at import time instead of failing
events at runtime.

Shared capabilities: configuration lookup, completion calls grounded in the
restaurant's identity, outbound messages (recorded, not delivered) and
activity metrics.
"""

from __future__ import annotations

import enum
import json
import logging
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from workforce.agents.constants import DEFAULT_CHANNEL
from workforce.agents.llm import CompletionService, completion_text
from workforce.agents.types import AgentContext, AgentEvent, AgentResponse
from workforce.models import Event, MessageDirection, Restaurant
from workforce.services import customers as customer_svc
from workforce.services import events as event_svc
from workforce.services import metrics as metric_svc
from workforce.services import restaurants as restaurant_svc

logger = logging.getLogger(__name__)

Handler = Callable[[AgentEvent], Awaitable[AgentResponse]]


class BaseAgent:
    key: str
    event_kinds: type[enum.Enum]
    handlers: dict[Any, str]

    def __init_subclass__(cls, **kwargs) -> None:
        super().__init_subclass__(**kwargs)
        kinds = getattr(cls, "event_kinds", None)
        if kinds is None:
            return  # intermediate base class

        missing = [k.value for k in kinds if k not in cls.handlers]
        if missing:
            raise TypeError(f"{cls.__name__} has no handler for: {', '.join(missing)}")
        for kind, method_name in cls.handlers.items():
            if not callable(getattr(cls, method_name, None)):
                raise TypeError(
                    f"{cls.__name__}.{method_name} (handler for {kind.value}) is not defined"
                )

    def __init__(
        self,
        context: AgentContext,
        session: AsyncSession,
        completion: CompletionService,
    ) -> None:
        self.context = context
        self.session = session
        self.completion = completion
        self._restaurant: Restaurant | None = None

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def process_event(self, event: AgentEvent) -> AgentResponse:
        """Handle one event. Never raises for handler errors."""
        try:
            kind = self.event_kinds(event.event_type)
        except ValueError:
            return AgentResponse.fail(f"Unknown event type: {event.event_type}")

        handler: Handler = getattr(self, self.handlers[kind])
        try:
            return await handler(event)
        except Exception as exc:
            logger.exception(
                "%s: %s handler failed for event %d", self.key, kind.value, event.id
            )
            return AgentResponse.fail(str(exc) or type(exc).__name__)

    # ------------------------------------------------------------------
    # Shared capabilities
    # ------------------------------------------------------------------

    def get_config(self, key: str, default: Any = None) -> Any:
        value = self.context.configuration.get(key)
        return default if value is None else value

    async def get_restaurant(self) -> Restaurant | None:
        if self._restaurant is None:
            self._restaurant = await restaurant_svc.get_restaurant(
                self.session, self.context.restaurant_id
            )
        return self._restaurant

    async def system_preamble(self) -> str:
        restaurant = await self.get_restaurant()
        name = restaurant.name if restaurant else "a restaurant"

        def field(value: Any) -> str:
            return value if value else "Not provided"

        return (
            f"You are an AI assistant for {name}.\n\n"
            f"Restaurant Information:\n"
            f"- Name: {name}\n"
            f"- Address: {field(restaurant and restaurant.address)}\n"
            f"- Phone: {field(restaurant and restaurant.phone)}\n"
            f"- Business Hours: {json.dumps((restaurant and restaurant.business_hours) or {})}\n"
            f"- Description: {field(restaurant and restaurant.description)}\n"
            f"- Menu URL: {field(restaurant and restaurant.menu_url)}\n"
            f"- Website: {field(restaurant and restaurant.website_url)}\n\n"
            f"Always respond in a professional, friendly manner representing the restaurant."
        )

    async def call_llm(self, messages: list[dict]) -> str | None:
        """Run a completion with the restaurant's identity as the first system message."""
        preamble = {"role": "system", "content": await self.system_preamble()}
        response = await self.completion.complete([preamble, *messages])
        return completion_text(response)

    async def log_activity(self, message: str, **data: Any) -> None:
        logger.info("[%s] %s %s", self.context.agent_key, message, data or "")
        await metric_svc.record_metric(
            self.session,
            restaurant_id=self.context.restaurant_id,
            agent_key=self.context.agent_key,
            metric_type="agent_activity",
            metric_value="1",
            dimensions={"message": message, **data},
        )

    async def send_message(
        self, customer_id: int, content: str, channel: str = DEFAULT_CHANNEL
    ) -> bool:
        """Record an outbound message to a customer.

        Returns False when the customer cannot be messaged. Delivery through
        the channel provider is not performed; the row is the outbox.
        """
        customer = await customer_svc.get_customer(self.session, customer_id)
        if customer is None or customer.restaurant_id != self.context.restaurant_id:
            logger.warning("%s: customer %d not found", self.key, customer_id)
            return False
        if not customer.phone:
            logger.warning("%s: customer %d has no phone number", self.key, customer_id)
            return False

        conversation = await customer_svc.get_or_create_conversation(
            self.session, self.context.restaurant_id, customer_id, channel
        )
        await customer_svc.create_message(
            self.session,
            conversation,
            MessageDirection.OUTBOUND,
            content,
            agent_key=self.context.agent_key,
        )
        await self.log_activity(
            "Message sent", customer_id=customer_id, conversation_id=conversation.id
        )
        return True

    async def enqueue_event(self, event_type: str, agent_key: str, payload: dict) -> Event:
        """Queue follow-up work; committed only if this event succeeds."""
        return await event_svc.enqueue(
            self.session, self.context.restaurant_id, event_type, agent_key, payload
        )
