from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from workforce.agents.base import BaseAgent
from workforce.agents.constants import AGENT_NOT_ENABLED_ERROR, AGENT_NOT_REGISTERED_ERROR
from workforce.agents.llm import CompletionService
from workforce.agents.types import AgentContext
from workforce.services import restaurants as restaurant_svc

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Maps agent keys to agent classes.

    Built explicitly at startup and handed to the event processor; nothing is
    registered as a side effect of importing an agent module.
    """

    def __init__(self) -> None:
        self._agents: dict[str, type[BaseAgent]] = {}

    def register(self, agent_key: str, agent_class: type[BaseAgent]) -> None:
        if agent_key in self._agents:
            logger.info("replacing agent registration for %s", agent_key)
        self._agents[agent_key] = agent_class

    def resolve(self, agent_key: str | None) -> type[BaseAgent] | None:
        if agent_key is None:
            return None
        return self._agents.get(agent_key)

    def keys(self) -> list[str]:
        return sorted(self._agents)

    async def unavailable_reason(
        self, session: AsyncSession, restaurant_id: int, agent_key: str | None
    ) -> str | None:
        """Why no agent can be built for this key and tenant, or None if one can."""
        if self.resolve(agent_key) is None:
            return AGENT_NOT_REGISTERED_ERROR.format(agent_key)
        if not await restaurant_svc.is_agent_enabled(session, restaurant_id, agent_key):
            return AGENT_NOT_ENABLED_ERROR.format(restaurant_id, agent_key)
        return None

    async def create_agent(
        self,
        session: AsyncSession,
        restaurant_id: int,
        agent_key: str | None,
        completion: CompletionService,
    ) -> BaseAgent | None:
        """Instantiate the agent for a tenant, or None if it is unknown or not enabled."""
        agent_class = self.resolve(agent_key)
        if agent_class is None:
            logger.error("agent not registered: %s", agent_key)
            return None

        subscription = await restaurant_svc.get_restaurant_agent(
            session, restaurant_id, agent_key
        )
        if subscription is None or not subscription.is_enabled:
            logger.error("agent %s not enabled for restaurant %d", agent_key, restaurant_id)
            return None

        context = AgentContext(
            restaurant_id=restaurant_id,
            agent_key=agent_key,
            configuration=dict(subscription.configuration or {}),
        )
        return agent_class(context, session, completion)


def build_default_registry() -> AgentRegistry:
    from workforce.agents.reengagement import ReengagementAgent
    from workforce.agents.reservation import ReservationAgent
    from workforce.agents.reviews import ReviewsAgent
    from workforce.agents.support import SupportAgent

    registry = AgentRegistry()
    for agent_class in (ReservationAgent, SupportAgent, ReviewsAgent, ReengagementAgent):
        registry.register(agent_class.key, agent_class)
    return registry
