"""Value types passed between the event processor and the agents."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class AgentContext:
    """Per-invocation view of a restaurant's subscription to one agent."""

    restaurant_id: int
    agent_key: str
    configuration: dict = field(default_factory=dict)


@dataclass
class AgentEvent:
    """The part of an event row an agent is allowed to see."""

    id: int
    event_type: str
    payload: dict = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass
class AgentResponse:
    success: bool
    message: str | None = None
    data: dict | None = None
    error: str | None = None

    @classmethod
    def ok(cls, message: str, data: dict | None = None) -> AgentResponse:
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: str) -> AgentResponse:
        return cls(success=False, error=error)
