"""Tests for the event processor: one iteration, failure handling and the loop."""

from __future__ import annotations

import asyncio
import enum
import sys
from datetime import timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import update

from helpers import (
    FakeCompletion,
    StatementLog,
    count,
    make_db,
    seed_customer,
    seed_restaurant,
)
from workforce.agents.base import BaseAgent
from workforce.agents.processor import EventProcessor
from workforce.agents.registry import AgentRegistry, build_default_registry
from workforce.agents.types import AgentResponse
from workforce.models import (
    AnalyticsMetric,
    Event,
    EventStatus,
    Message,
    ReservationStatus,
    utcnow,
)
from workforce.services import events as event_svc
from workforce.services import reservations as reservation_svc
from workforce.services import restaurants as restaurant_svc


class ScriptKind(str, enum.Enum):
    WRITE_THEN_FAIL = "script.write_then_fail"
    CRASH = "script.crash"
    SLOW = "script.slow"


class ScriptAgent(BaseAgent):
    """Test agent with scripted misbehaviour."""

    key = "script"
    event_kinds = ScriptKind
    handlers = {
        ScriptKind.WRITE_THEN_FAIL: "write_then_fail",
        ScriptKind.CRASH: "crash",
        ScriptKind.SLOW: "slow",
    }

    async def write_then_fail(self, event):
        await self.log_activity("about to fail")
        await self.enqueue_event("script.crash", "script", {})
        return AgentResponse.fail("gave up")

    async def crash(self, event):
        raise RuntimeError("unexpected")

    async def slow(self, event):
        await asyncio.sleep(5)
        return AgentResponse.ok("too late")


def script_registry() -> AgentRegistry:
    registry = build_default_registry()
    registry.register("script", ScriptAgent)
    return registry


async def stored(Session, event_id):
    async with Session() as session:
        return await event_svc.get_event(session, event_id)


# ── One iteration ───────────────────────────────────────────────


def test_idle_iteration_returns_false_without_writes():
    async def scenario():
        engine, Session = await make_db()
        async with Session() as session:
            await seed_restaurant(session)

        processor = EventProcessor(build_default_registry(), Session, FakeCompletion())
        log = StatementLog(engine)
        try:
            assert await processor.process_next_event() is False
        finally:
            log.close()
        assert log.writes() == []
        assert log.statements, "the pending query should still run"
        await engine.dispose()

    asyncio.run(scenario())
    print("  PASS: idle iteration returns False without writes")


def test_reservation_created_completes_and_commits_agent_writes():
    async def scenario():
        engine, Session = await make_db()
        async with Session() as session:
            restaurant = await seed_restaurant(session)
            customer = await seed_customer(session, restaurant.id)
            reservation = await reservation_svc.create_reservation(
                session, restaurant.id, customer.id, utcnow() + timedelta(days=1), 4
            )
            event = await event_svc.enqueue(
                session,
                restaurant.id,
                "reservation.created",
                "reservation",
                {"reservationId": reservation.id},
            )
            await session.commit()

        processor = EventProcessor(build_default_registry(), Session, FakeCompletion())
        assert await processor.process_next_event() is True

        done = await stored(Session, event.id)
        assert done.status == EventStatus.COMPLETED
        assert done.processed_at is not None
        assert done.error is None

        async with Session() as session:
            confirmed = await reservation_svc.get_reservation(session, reservation.id)
            assert confirmed.status == ReservationStatus.CONFIRMED
            assert confirmed.confirmation_sent_at is not None
            assert await count(session, Message) == 1
            subscription = await restaurant_svc.get_restaurant_agent(
                session, restaurant.id, "reservation"
            )
            assert subscription.last_active_at is not None
        await engine.dispose()

    asyncio.run(scenario())
    print("  PASS: reservation.created completes and commits agent writes")


def test_cancelled_reservation_is_not_confirmed():
    async def scenario():
        engine, Session = await make_db()
        async with Session() as session:
            restaurant = await seed_restaurant(session)
            customer = await seed_customer(session, restaurant.id)
            reservation = await reservation_svc.create_reservation(
                session, restaurant.id, customer.id, utcnow() + timedelta(days=1), 2
            )
            event = await event_svc.enqueue(
                session,
                restaurant.id,
                "reservation.created",
                "reservation",
                {"reservationId": reservation.id},
            )
            await session.commit()
            # cancelled before the processor picks the event up
            reservation.status = ReservationStatus.CANCELLED
            await session.commit()

        processor = EventProcessor(build_default_registry(), Session, FakeCompletion())
        assert await processor.process_next_event() is True

        done = await stored(Session, event.id)
        assert done.status == EventStatus.FAILED
        assert done.error == "Reservation not pending"
        async with Session() as session:
            kept = await reservation_svc.get_reservation(session, reservation.id)
            assert kept.status == ReservationStatus.CANCELLED
            assert kept.confirmation_sent_at is None
            assert await count(session, Message) == 0
        await engine.dispose()

    asyncio.run(scenario())
    print("  PASS: cancelled reservation is not confirmed")


def test_unregistered_agent_fails_with_reason():
    async def scenario():
        engine, Session = await make_db()
        async with Session() as session:
            restaurant = await seed_restaurant(session)
            event = await event_svc.enqueue(session, restaurant.id, "x.y", "ghost")
            await session.commit()

        processor = EventProcessor(build_default_registry(), Session, FakeCompletion())
        assert await processor.process_next_event() is True
        failed = await stored(Session, event.id)
        assert failed.status == EventStatus.FAILED
        assert failed.error == "Agent not registered: ghost"
        assert failed.processed_at is not None

        # failed events are never picked up again
        assert await processor.process_next_event() is False
        assert (await stored(Session, event.id)).status == EventStatus.FAILED
        await engine.dispose()

    asyncio.run(scenario())
    print("  PASS: unregistered agent fails with reason")


def test_disabled_agent_fails_fast():
    async def scenario():
        engine, Session = await make_db()
        async with Session() as session:
            restaurant = await seed_restaurant(session, agents=("reservation",))
            event = await event_svc.enqueue(
                session, restaurant.id, "review.detected", "reviews", {"reviewId": 1}
            )
            await session.commit()

        processor = EventProcessor(build_default_registry(), Session, FakeCompletion())
        await processor.process_next_event()
        failed = await stored(Session, event.id)
        assert failed.status == EventStatus.FAILED
        assert failed.error == f"Agent not enabled for restaurant {restaurant.id}: reviews"
        await engine.dispose()

    asyncio.run(scenario())
    print("  PASS: disabled agent fails fast")


def test_failure_rolls_back_agent_writes():
    async def scenario():
        engine, Session = await make_db()
        async with Session() as session:
            restaurant = await seed_restaurant(session, agents=("script",))
            event = await event_svc.enqueue(
                session, restaurant.id, "script.write_then_fail", "script"
            )
            await session.commit()

        processor = EventProcessor(script_registry(), Session, FakeCompletion())
        await processor.process_next_event()

        failed = await stored(Session, event.id)
        assert failed.status == EventStatus.FAILED
        assert failed.error == "gave up"
        async with Session() as session:
            assert await count(session, AnalyticsMetric) == 0
            assert await count(session, Event) == 1, "follow-up event must be discarded"
        await engine.dispose()

    asyncio.run(scenario())
    print("  PASS: failure rolls back agent writes")


def test_handler_exception_is_recorded():
    async def scenario():
        engine, Session = await make_db()
        async with Session() as session:
            restaurant = await seed_restaurant(session, agents=("script",))
            event = await event_svc.enqueue(session, restaurant.id, "script.crash", "script")
            await session.commit()

        processor = EventProcessor(script_registry(), Session, FakeCompletion())
        assert await processor.process_next_event() is True
        failed = await stored(Session, event.id)
        assert failed.status == EventStatus.FAILED
        assert failed.error == "unexpected"
        await engine.dispose()

    asyncio.run(scenario())
    print("  PASS: handler exception is recorded")


def test_timeout_fails_event():
    async def scenario():
        engine, Session = await make_db()
        async with Session() as session:
            restaurant = await seed_restaurant(session, agents=("script",))
            event = await event_svc.enqueue(session, restaurant.id, "script.slow", "script")
            await session.commit()

        processor = EventProcessor(script_registry(), Session, FakeCompletion(), timeout=0.05)
        await processor.process_next_event()
        failed = await stored(Session, event.id)
        assert failed.status == EventStatus.FAILED
        assert failed.error.startswith("Agent timed out after")
        await engine.dispose()

    asyncio.run(scenario())
    print("  PASS: timeout fails event")


def test_events_are_processed_in_creation_order():
    async def scenario():
        engine, Session = await make_db()
        async with Session() as session:
            a = await seed_restaurant(session, owner_id=1, name="A", agents=("script",))
            b = await seed_restaurant(session, owner_id=2, name="B", agents=("script",))
            e1 = await event_svc.enqueue(session, a.id, "script.crash", "script")
            e2 = await event_svc.enqueue(session, b.id, "script.crash", "script")
            await session.commit()

        processor = EventProcessor(script_registry(), Session, FakeCompletion())
        await processor.process_next_event()
        assert (await stored(Session, e1.id)).status == EventStatus.FAILED
        assert (await stored(Session, e2.id)).status == EventStatus.PENDING

        await processor.process_next_event()
        first, second = await stored(Session, e1.id), await stored(Session, e2.id)
        assert second.status == EventStatus.FAILED
        assert first.processed_at < second.processed_at
        await engine.dispose()

    asyncio.run(scenario())
    print("  PASS: events processed in creation order")


# ── Loop ────────────────────────────────────────────────────────


class CountingProcessor(EventProcessor):
    idle_ticks = 0

    async def process_next_event(self):
        found = await super().process_next_event()
        if not found:
            self.idle_ticks += 1
        return found


def test_run_drains_queue_sweeps_stale_and_stops():
    async def scenario():
        engine, Session = await make_db()
        async with Session() as session:
            restaurant = await seed_restaurant(session, agents=("script",))
            stuck = await event_svc.enqueue(session, restaurant.id, "script.crash", "script")
            await event_svc.claim(session, stuck.id)
            await session.execute(
                update(Event)
                .where(Event.id == stuck.id)
                .values(claimed_at=utcnow() - timedelta(hours=1))
            )
            queued = [
                await event_svc.enqueue(session, restaurant.id, "script.crash", "script")
                for _ in range(3)
            ]
            await session.commit()

        processor = CountingProcessor(
            script_registry(), Session, FakeCompletion(), stale_after=60
        )
        task = asyncio.create_task(processor.run(idle_interval=0.01))
        # the first idle tick means the queue has been drained
        for _ in range(200):
            if processor.idle_ticks:
                break
            await asyncio.sleep(0.01)
        processor.stop()
        await asyncio.wait_for(task, timeout=2)

        swept = await stored(Session, stuck.id)
        assert swept.status == EventStatus.FAILED
        assert swept.error == event_svc.STALE_EVENT_ERROR
        for event in queued:
            assert (await stored(Session, event.id)).status == EventStatus.FAILED
        await engine.dispose()

    asyncio.run(scenario())
    print("  PASS: run drains queue, sweeps stale events and stops")


def test_idle_run_does_not_write():
    async def scenario():
        engine, Session = await make_db()
        async with Session() as session:
            await seed_restaurant(session)

        processor = CountingProcessor(
            build_default_registry(), Session, FakeCompletion(), stale_after=60
        )
        log = StatementLog(engine)
        try:
            task = asyncio.create_task(processor.run(idle_interval=0.01))
            for _ in range(200):
                if processor.idle_ticks >= 5:
                    break
                await asyncio.sleep(0.01)
            processor.stop()
            await asyncio.wait_for(task, timeout=2)
        finally:
            log.close()

        assert processor.idle_ticks >= 5
        assert log.writes() == []
        sweeps = [s for s in log.statements if "claimed_at <" in s]
        assert len(sweeps) == 1, "only the startup sweep should run within stale_after"
        await engine.dispose()

    asyncio.run(scenario())
    print("  PASS: idle run does not write")


def main():
    tests = [
        ("Idle iteration", test_idle_iteration_returns_false_without_writes),
        ("Completed with agent writes", test_reservation_created_completes_and_commits_agent_writes),
        ("Cancelled reservation", test_cancelled_reservation_is_not_confirmed),
        ("Unregistered agent", test_unregistered_agent_fails_with_reason),
        ("Disabled agent", test_disabled_agent_fails_fast),
        ("Rollback on failure", test_failure_rolls_back_agent_writes),
        ("Handler exception", test_handler_exception_is_recorded),
        ("Timeout", test_timeout_fails_event),
        ("Creation order", test_events_are_processed_in_creation_order),
        ("Run loop", test_run_drains_queue_sweeps_stale_and_stops),
        ("Idle run writes nothing", test_idle_run_does_not_write),
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
