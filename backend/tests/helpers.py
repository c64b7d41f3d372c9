"""Shared fixtures for the backend tests: in-memory database, fake LLM, seed data."""

from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path
from types import SimpleNamespace

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from workforce.database import use_explicit_sqlite_transactions
from workforce.models import Base, Customer, utcnow
from workforce.services import customers as customer_svc
from workforce.services import restaurants as restaurant_svc

ALL_AGENTS = ("reservation", "support", "reviews", "reengagement")


async def make_db():
    """Fresh in-memory database. Returns (engine, session_factory)."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    use_explicit_sqlite_transactions(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


def reply(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeCompletion:
    """CompletionService returning canned replies in order, or raising `error`."""

    def __init__(self, *replies: str, error: Exception | None = None) -> None:
        self.replies = list(replies)
        self.error = error
        self.calls: list[list[dict]] = []

    async def complete(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return reply(self.replies.pop(0) if self.replies else "")

    async def close(self) -> None:
        pass


class StatementLog:
    """Records every SQL statement sent to the database."""

    def __init__(self, engine) -> None:
        self.engine = engine
        self.statements: list[str] = []
        event.listen(engine.sync_engine, "before_cursor_execute", self._record)

    def _record(self, conn, cursor, statement, parameters, context, executemany):
        self.statements.append(statement)

    def writes(self) -> list[str]:
        return [
            s for s in self.statements
            if s.lstrip().split(None, 1)[0].upper() in ("INSERT", "UPDATE", "DELETE")
        ]

    def close(self) -> None:
        event.remove(self.engine.sync_engine, "before_cursor_execute", self._record)


async def seed_restaurant(
    session: AsyncSession,
    owner_id: int = 1,
    name: str = "Trattoria Roma",
    agents=ALL_AGENTS,
    configuration: dict | None = None,
):
    """A restaurant owned by `owner_id`, subscribed to `agents`. Commits."""
    await restaurant_svc.ensure_user(session, owner_id)
    restaurant = await restaurant_svc.create_restaurant(
        session,
        owner_id,
        name,
        address="12 Via Roma",
        phone="+39 06 5550100",
        business_hours={"mon": "12:00-23:00"},
    )
    for key in agents:
        await restaurant_svc.subscribe_to_agent(
            session, restaurant.id, key, (configuration or {}).get(key)
        )
    await session.commit()
    return restaurant


async def seed_customer(
    session: AsyncSession,
    restaurant_id: int,
    name: str | None = "Maria Rossi",
    phone: str | None = "+39 333 1234567",
    inactive_days: int | None = None,
    **fields,
) -> Customer:
    if inactive_days is not None:
        fields["last_interaction_at"] = utcnow() - timedelta(days=inactive_days)
    customer = await customer_svc.create_customer(
        session, restaurant_id, name=name, phone=phone, **fields
    )
    await session.commit()
    return customer


async def count(session: AsyncSession, model, *where) -> int:
    query = select(func.count()).select_from(model)
    if where:
        query = query.where(*where)
    result = await session.execute(query)
    return result.scalar_one()
