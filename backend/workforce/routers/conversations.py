from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.database import get_session
from workforce.models import MessageDirection
from workforce.routers.deps import get_tenant
from workforce.services import customers as customer_svc
from workforce.services import events as event_svc
from workforce.services import restaurants as restaurant_svc
from workforce.services.tenant import TenantContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])


class InboundMessageRequest(BaseModel):
    phone: str
    content: str
    name: str | None = None
    channel: Literal["whatsapp", "web"] = "whatsapp"


class OutboundMessageRequest(BaseModel):
    content: str
    message_type: Literal["text", "image", "template", "interactive"] = "text"


async def _conversation(session: AsyncSession, tenant: TenantContext, conversation_id: int):
    conversation = await customer_svc.get_conversation(session, conversation_id)
    if conversation is None or conversation.restaurant_id != tenant.restaurant_id:
        raise HTTPException(404, "Conversation not found")
    return conversation


@router.get("")
async def list_conversations(
    limit: int = 50,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    rows = await customer_svc.list_conversations(session, tenant.restaurant_id, limit)
    return [{**conv.to_dict(), "customer": cust.to_dict()} for conv, cust in rows]


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: int,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    conversation = await _conversation(session, tenant, conversation_id)
    messages = await customer_svc.get_conversation_messages(session, conversation.id)
    return {
        "conversation": conversation.to_dict(),
        "messages": [m.to_dict() for m in messages],
    }


@router.post("/inbound")
async def receive_message(
    body: InboundMessageRequest,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    """Record a customer's message and hand it to the first agent that can take it."""
    customer = await customer_svc.get_or_create_customer_by_phone(
        session, tenant.restaurant_id, body.phone, body.name
    )
    conversation = await customer_svc.get_or_create_conversation(
        session, tenant.restaurant_id, customer.id, body.channel
    )
    message = await customer_svc.create_message(
        session, conversation, MessageDirection.INBOUND, body.content
    )

    agent_key = None
    for candidate in ("reservation", "support"):
        if await restaurant_svc.is_agent_enabled(session, tenant.restaurant_id, candidate):
            agent_key = candidate
            break

    event_id = None
    if agent_key is not None:
        event = await event_svc.enqueue(
            session,
            tenant.restaurant_id,
            "message.received",
            agent_key,
            {"conversationId": conversation.id, "messageId": message.id},
        )
        event_id = event.id
    else:
        logger.info(
            "no messaging agent enabled for restaurant %d, message %d left for staff",
            tenant.restaurant_id, message.id,
        )
    await session.commit()
    return {
        "conversation_id": conversation.id,
        "message_id": message.id,
        "agent_key": agent_key,
        "event_id": event_id,
    }


@router.post("/{conversation_id}/messages")
async def send_message(
    conversation_id: int,
    body: OutboundMessageRequest,
    tenant: TenantContext = Depends(get_tenant),
    session: AsyncSession = Depends(get_session),
):
    conversation = await _conversation(session, tenant, conversation_id)
    message = await customer_svc.create_message(
        session,
        conversation,
        MessageDirection.OUTBOUND,
        body.content,
        message_type=body.message_type,
    )
    await session.commit()
    return message.to_dict()
