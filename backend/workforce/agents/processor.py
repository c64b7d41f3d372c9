"""Event processor: drains the event table one event at a time.

Each iteration runs in three short transactions:

1. select the oldest pending event and claim it (pending -> processing);
2. build the agent and run it; on success the agent's writes are committed
   together with the completed status, on failure they are rolled back and
   only the failed status is committed;
3. if step 2 itself blew up, record the failure in a fresh session.

The claim is a conditional update, so several processors can share a
database; the loser of a claim race just moves on. Events left in
processing by a crashed worker are failed by the stale sweep.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workforce.agents.base import BaseAgent
from workforce.agents.constants import (
    AGENT_TIMEOUT_ERROR,
    DEFAULT_IDLE_INTERVAL_SECONDS,
    MAX_ERROR_CHARS,
)
from workforce.agents.llm import CompletionService, OpenRouterCompletion
from workforce.agents.registry import AgentRegistry
from workforce.agents.types import AgentEvent, AgentResponse
from workforce.config import settings
from workforce.database import async_session
from workforce.models import EventStatus, utcnow
from workforce.services import events as event_svc
from workforce.services import restaurants as restaurant_svc

logger = logging.getLogger(__name__)

DEFAULT_FAILURE = "Agent processing failed"


@dataclass
class _ClaimedEvent:
    restaurant_id: int
    agent_key: str | None
    event: AgentEvent


def _clip(error: str) -> str:
    return error if len(error) <= MAX_ERROR_CHARS else error[: MAX_ERROR_CHARS - 3] + "..."


class EventProcessor:
    def __init__(
        self,
        registry: AgentRegistry,
        session_factory: async_sessionmaker[AsyncSession] = async_session,
        completion: CompletionService | None = None,
        timeout: float | None = settings.EVENT_TIMEOUT_SECONDS,
        stale_after: float = settings.STALE_EVENT_AFTER_SECONDS,
    ) -> None:
        self.registry = registry
        self.session_factory = session_factory
        self.completion = completion or OpenRouterCompletion()
        self.timeout = timeout
        self.stale_after = stale_after
        self._stop = asyncio.Event()
        self._last_sweep: float | None = None

    # ------------------------------------------------------------------
    # One iteration
    # ------------------------------------------------------------------

    async def process_next_event(self) -> bool:
        """Process the oldest pending event. Returns False when there was none.

        Errors while selecting or claiming propagate; everything after a
        successful claim is caught and recorded on the event.
        """
        claimed = await self._claim_next()
        if claimed is None:
            return False
        if claimed is True:
            return True

        event_id = claimed.event.id
        try:
            await self._dispatch(claimed)
        except Exception as exc:
            logger.exception("event %d: processing crashed", event_id)
            await self._record_failure(event_id, str(exc) or type(exc).__name__)
        return True

    async def _claim_next(self) -> _ClaimedEvent | bool | None:
        async with self.session_factory() as session:
            pending = await event_svc.list_pending(session, limit=1)
            if not pending:
                return None
            row = pending[0]
            claimed = _ClaimedEvent(
                restaurant_id=row.restaurant_id,
                agent_key=row.agent_key,
                event=AgentEvent(
                    id=row.id,
                    event_type=row.event_type,
                    payload=dict(row.payload or {}),
                    created_at=row.created_at,
                ),
            )
            won = await event_svc.claim(session, row.id)
            await session.commit()

        if not won:
            logger.debug("event %d was claimed by another worker", claimed.event.id)
            return True
        return claimed

    async def _dispatch(self, claimed: _ClaimedEvent) -> None:
        event = claimed.event
        async with self.session_factory() as session:
            agent = await self.registry.create_agent(
                session, claimed.restaurant_id, claimed.agent_key, self.completion
            )
            if agent is None:
                reason = await self.registry.unavailable_reason(
                    session, claimed.restaurant_id, claimed.agent_key
                )
                response = AgentResponse.fail(reason or DEFAULT_FAILURE)
            else:
                response = await self._invoke(agent, event)

            if response.success:
                await restaurant_svc.touch_agent(
                    session, claimed.restaurant_id, agent.context.agent_key
                )
                if await event_svc.update_status(
                    session, event.id, EventStatus.COMPLETED, processed_at=utcnow()
                ):
                    await session.commit()
                    logger.info(
                        "event %d (%s -> %s) completed: %s",
                        event.id, event.event_type, claimed.agent_key, response.message,
                    )
                else:
                    await session.rollback()
                    logger.warning(
                        "event %d left processing while its agent ran; discarding its writes",
                        event.id,
                    )
                return

            await session.rollback()
            error = _clip(response.error or DEFAULT_FAILURE)
            await event_svc.update_status(
                session, event.id, EventStatus.FAILED, error=error, processed_at=utcnow()
            )
            await session.commit()
            logger.warning(
                "event %d (%s -> %s) failed: %s",
                event.id, event.event_type, claimed.agent_key, error,
            )

    async def _invoke(self, agent: BaseAgent, event: AgentEvent) -> AgentResponse:
        if not self.timeout:
            return await agent.process_event(event)
        try:
            return await asyncio.wait_for(agent.process_event(event), self.timeout)
        except asyncio.TimeoutError:
            return AgentResponse.fail(AGENT_TIMEOUT_ERROR.format(self.timeout))

    async def _record_failure(self, event_id: int, error: str) -> None:
        try:
            async with self.session_factory() as session:
                await event_svc.update_status(
                    session,
                    event_id,
                    EventStatus.FAILED,
                    error=_clip(error),
                    processed_at=utcnow(),
                )
                await session.commit()
        except Exception:
            logger.exception(
                "event %d: could not record failure, leaving it for the stale sweep", event_id
            )

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def sweep_stale(self) -> int:
        async with self.session_factory() as session:
            count = await event_svc.fail_stale(session, timedelta(seconds=self.stale_after))
            if count:
                await session.commit()
        return count

    async def _sweep_quietly(self) -> None:
        try:
            await self.sweep_stale()
        except Exception:
            logger.exception("stale event sweep failed")
        self._last_sweep = time.monotonic()

    def _sweep_due(self) -> bool:
        """True once stale_after seconds have passed since the last sweep."""
        if self._last_sweep is None:
            return True
        return time.monotonic() - self._last_sweep >= self.stale_after

    async def run(self, idle_interval: float = DEFAULT_IDLE_INTERVAL_SECONDS) -> None:
        """Process events until stop() is called.

        Runs back to back while there is work and sleeps idle_interval when
        the queue is empty. The stale sweep runs at start and then at most
        once every stale_after seconds.
        """
        self._stop.clear()
        logger.info("event processor started (idle interval %.1fs)", idle_interval)
        await self._sweep_quietly()

        while not self._stop.is_set():
            try:
                found = await self.process_next_event()
            except Exception:
                logger.exception("event processor iteration failed")
                found = False

            if found:
                await asyncio.sleep(0)
                continue

            if self._sweep_due():
                await self._sweep_quietly()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=idle_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("event processor stopped")

    def stop(self) -> None:
        self._stop.set()
