"""Tests for the agent registry and the BaseAgent dispatch contract."""

from __future__ import annotations

import asyncio
import enum
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from helpers import FakeCompletion, make_db, seed_restaurant
from workforce.agents.base import BaseAgent
from workforce.agents.registry import AgentRegistry, build_default_registry
from workforce.agents.reservation import ReservationAgent
from workforce.agents.reviews import ReviewsAgent
from workforce.agents.types import AgentContext, AgentEvent, AgentResponse
from workforce.services import restaurants as restaurant_svc


class EchoKind(str, enum.Enum):
    PING = "echo.ping"
    BOOM = "echo.boom"


class EchoAgent(BaseAgent):
    key = "echo"
    event_kinds = EchoKind
    handlers = {EchoKind.PING: "ping", EchoKind.BOOM: "boom"}

    async def ping(self, event):
        return AgentResponse.ok("pong", {"payload": event.payload})

    async def boom(self, event):
        raise RuntimeError("kitchen on fire")


# ── Registry ────────────────────────────────────────────────────


def test_default_registry_has_the_four_agents():
    registry = build_default_registry()
    assert registry.keys() == ["reengagement", "reservation", "reviews", "support"]
    assert registry.resolve("reservation") is ReservationAgent
    assert registry.resolve("unknown") is None
    assert registry.resolve(None) is None
    print("  PASS: default registry has the four agents")


def test_last_registration_wins():
    registry = AgentRegistry()
    registry.register("reviews", EchoAgent)
    registry.register("reviews", ReviewsAgent)
    assert registry.resolve("reviews") is ReviewsAgent
    assert registry.keys() == ["reviews"]
    print("  PASS: last registration wins")


def test_create_agent_requires_registration_and_enabled_subscription():
    async def scenario():
        engine, Session = await make_db()
        registry = build_default_registry()
        completion = FakeCompletion()
        async with Session() as session:
            restaurant = await seed_restaurant(
                session,
                agents=("reservation",),
                configuration={"reservation": {"auto_respond": True}},
            )
            await restaurant_svc.subscribe_to_agent(
                session, restaurant.id, "reviews", is_enabled=False
            )
            await session.commit()
            rid = restaurant.id

            assert await registry.create_agent(session, rid, "ghost", completion) is None
            assert await registry.create_agent(session, rid, "support", completion) is None
            assert await registry.create_agent(session, rid, "reviews", completion) is None

            agent = await registry.create_agent(session, rid, "reservation", completion)
            assert isinstance(agent, ReservationAgent)
            assert agent.context.restaurant_id == rid
            assert agent.context.agent_key == "reservation"
            assert agent.get_config("auto_respond") is True
            assert agent.get_config("missing", "default") == "default"

            assert await registry.unavailable_reason(session, rid, "ghost") == (
                "Agent not registered: ghost"
            )
            assert await registry.unavailable_reason(session, rid, "reviews") == (
                f"Agent not enabled for restaurant {rid}: reviews"
            )
            assert await registry.unavailable_reason(session, rid, "reservation") is None
        await engine.dispose()

    asyncio.run(scenario())
    print("  PASS: create_agent requires registration and enabled subscription")


# ── BaseAgent contract ──────────────────────────────────────────


def test_missing_handler_is_rejected_at_class_definition():
    class Kind(str, enum.Enum):
        A = "a"
        B = "b"

    try:
        class Incomplete(BaseAgent):
            key = "incomplete"
            event_kinds = Kind
            handlers = {Kind.A: "handle_a"}

            async def handle_a(self, event):
                return AgentResponse.ok("a")
    except TypeError as e:
        assert "b" in str(e)
    else:
        raise AssertionError("Expected TypeError for a missing handler")

    try:
        class Misnamed(BaseAgent):
            key = "misnamed"
            event_kinds = Kind
            handlers = {Kind.A: "handle_a", Kind.B: "handle_b"}

            async def handle_a(self, event):
                return AgentResponse.ok("a")
    except TypeError as e:
        assert "handle_b" in str(e)
    else:
        raise AssertionError("Expected TypeError for an undefined handler method")
    print("  PASS: missing handler rejected at class definition")


def test_process_event_dispatch_and_errors():
    async def scenario():
        agent = EchoAgent(AgentContext(restaurant_id=1, agent_key="echo"), None, FakeCompletion())

        ok = await agent.process_event(AgentEvent(id=1, event_type="echo.ping", payload={"x": 1}))
        assert ok.success and ok.message == "pong"
        assert ok.data == {"payload": {"x": 1}}

        unknown = await agent.process_event(AgentEvent(id=2, event_type="echo.nope"))
        assert not unknown.success
        assert unknown.error == "Unknown event type: echo.nope"

        crashed = await agent.process_event(AgentEvent(id=3, event_type="echo.boom"))
        assert not crashed.success
        assert crashed.error == "kitchen on fire"

    asyncio.run(scenario())
    print("  PASS: process_event dispatch and errors")


def test_call_llm_prepends_restaurant_identity():
    async def scenario():
        engine, Session = await make_db()
        completion = FakeCompletion("hello")
        async with Session() as session:
            restaurant = await seed_restaurant(session, name="Osteria Blu")
            agent = EchoAgent(
                AgentContext(restaurant_id=restaurant.id, agent_key="echo"), session, completion
            )
            text = await agent.call_llm([{"role": "user", "content": "hi"}])
        assert text == "hello"
        sent = completion.calls[0]
        assert sent[0]["role"] == "system"
        assert "Osteria Blu" in sent[0]["content"]
        assert "12 Via Roma" in sent[0]["content"]
        assert "Menu URL: Not provided" in sent[0]["content"]
        assert sent[1:] == [{"role": "user", "content": "hi"}]
        await engine.dispose()

    asyncio.run(scenario())
    print("  PASS: call_llm prepends restaurant identity")


def main():
    tests = [
        ("Default registry", test_default_registry_has_the_four_agents),
        ("Last registration wins", test_last_registration_wins),
        ("create_agent gating", test_create_agent_requires_registration_and_enabled_subscription),
        ("Handler exhaustiveness", test_missing_handler_is_rejected_at_class_definition),
        ("Dispatch and errors", test_process_event_dispatch_and_errors),
        ("Restaurant identity preamble", test_call_llm_prepends_restaurant_identity),
    ]

    passed = 0
    failed = 0
    for name, test_fn in tests:
        try:
            test_fn()
            passed += 1
        except Exception as e:
            print(f"  FAIL: {name}: {e}")
            failed += 1

    print(f"\n{'='*50}")
    print(f"Results: {passed} passed, {failed} failed, {passed + failed} total")
    if failed:
        sys.exit(1)
    print("All tests passed!")


if __name__ == "__main__":
    main()
