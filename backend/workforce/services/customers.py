from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.models import Conversation, Customer, Message, MessageDirection, utcnow

logger = logging.getLogger(__name__)

OPEN = "open"


# ── Customers ───────────────────────────────────────────────────


async def get_customer(session: AsyncSession, customer_id: int) -> Customer | None:
    return await session.get(Customer, customer_id)


async def get_customer_by_phone(
    session: AsyncSession, restaurant_id: int, phone: str
) -> Customer | None:
    result = await session.execute(
        select(Customer)
        .where(Customer.restaurant_id == restaurant_id, Customer.phone == phone)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def create_customer(session: AsyncSession, restaurant_id: int, **fields) -> Customer:
    customer = Customer(restaurant_id=restaurant_id, **fields)
    session.add(customer)
    await session.flush()
    return customer


async def get_or_create_customer_by_phone(
    session: AsyncSession, restaurant_id: int, phone: str, name: str | None = None
) -> Customer:
    customer = await get_customer_by_phone(session, restaurant_id, phone)
    if customer is None:
        customer = await create_customer(session, restaurant_id, phone=phone, name=name, tags=[])
    return customer


async def list_customers(
    session: AsyncSession, restaurant_id: int, limit: int = 100, offset: int = 0
) -> list[Customer]:
    result = await session.execute(
        select(Customer)
        .where(Customer.restaurant_id == restaurant_id)
        .order_by(Customer.last_interaction_at.desc(), Customer.id)
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def get_inactive_customers(
    session: AsyncSession, restaurant_id: int, inactive_days: int
) -> list[Customer]:
    """Customers whose last interaction is at least inactive_days old.

    Customers that never interacted have no timestamp and are not included.
    """
    cutoff = utcnow() - timedelta(days=inactive_days)
    result = await session.execute(
        select(Customer)
        .where(
            Customer.restaurant_id == restaurant_id,
            Customer.last_interaction_at <= cutoff,
        )
        .order_by(Customer.id)
    )
    return list(result.scalars().all())


# ── Conversations ───────────────────────────────────────────────


async def get_conversation(session: AsyncSession, conversation_id: int) -> Conversation | None:
    return await session.get(Conversation, conversation_id)


async def _find_open_conversation(
    session: AsyncSession, restaurant_id: int, customer_id: int, channel: str
) -> Conversation | None:
    result = await session.execute(
        select(Conversation)
        .where(
            Conversation.restaurant_id == restaurant_id,
            Conversation.customer_id == customer_id,
            Conversation.channel == channel,
            Conversation.status == OPEN,
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_or_create_conversation(
    session: AsyncSession, restaurant_id: int, customer_id: int, channel: str
) -> Conversation:
    """Return the customer's open conversation on a channel, creating it if needed.

    The partial unique index on open conversations makes a concurrent insert
    fail; the loser rolls back its savepoint and reads the winner's row.
    """
    existing = await _find_open_conversation(session, restaurant_id, customer_id, channel)
    if existing is not None:
        return existing

    conversation = Conversation(
        restaurant_id=restaurant_id,
        customer_id=customer_id,
        channel=channel,
        status=OPEN,
        last_message_at=utcnow(),
    )
    try:
        async with session.begin_nested():
            session.add(conversation)
            await session.flush()
    except IntegrityError:
        logger.info(
            "open %s conversation for customer %d created concurrently, reusing it",
            channel, customer_id,
        )
        existing = await _find_open_conversation(session, restaurant_id, customer_id, channel)
        if existing is None:
            raise
        return existing
    return conversation


async def list_conversations(
    session: AsyncSession, restaurant_id: int, limit: int = 50
) -> list[tuple[Conversation, Customer]]:
    result = await session.execute(
        select(Conversation, Customer)
        .join(Customer, Customer.id == Conversation.customer_id)
        .where(Conversation.restaurant_id == restaurant_id)
        .order_by(Conversation.last_message_at.desc())
        .limit(limit)
    )
    return [(row[0], row[1]) for row in result.all()]


# ── Messages ────────────────────────────────────────────────────


async def create_message(
    session: AsyncSession,
    conversation: Conversation,
    direction: MessageDirection,
    content: str,
    agent_key: str | None = None,
    message_type: str = "text",
) -> Message:
    """Append a message and bump the conversation (and, for inbound, the customer)."""
    now = utcnow()
    message = Message(
        conversation_id=conversation.id,
        direction=direction,
        content=content,
        message_type=message_type,
        agent_key=agent_key,
        created_at=now,
    )
    session.add(message)
    conversation.last_message_at = now

    if direction == MessageDirection.INBOUND:
        customer = await session.get(Customer, conversation.customer_id)
        if customer is not None:
            customer.last_interaction_at = now

    await session.flush()
    return message


async def get_conversation_messages(
    session: AsyncSession, conversation_id: int, limit: int = 50
) -> list[Message]:
    """The latest `limit` messages, returned in chronological order."""
    result = await session.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
    )
    messages = list(result.scalars().all())
    messages.reverse()
    return messages
