from __future__ import annotations

from fastapi import APIRouter, Query

from community_chat.api.deps import ChatServiceDep, CurrentPrincipal, UoWDep
from community_chat.api.v1.schemas.conversation import ConversationResponse
from community_chat.api.v1.schemas.message import MarkReadResponse, MessageResponse
from community_chat.application.dto.principal import Principal
from community_chat.application.policies.permissions import assert_conversation_access
from community_chat.application.ports.chat import ChatService
from community_chat.domain.entities.conversation import Conversation
from community_chat.domain.entities.message import Message
from community_chat.services import message_service

router = APIRouter(prefix="/api/v1/conversations", tags=["conversations"])


async def _accessible(
    conversation_id: int,
    principal: Principal,
    chat: ChatService,
) -> Conversation:
    conversation = await chat.get_conversation(conversation_id)
    return assert_conversation_access(principal, conversation)


async def _last_messages(
    conversations: list[Conversation],
    chat: ChatService,
) -> dict[int, Message]:
    ids = [c.last_message_id for c in conversations if c.last_message_id is not None]
    if not ids:
        return {}
    return {m.id: m for m in await chat.get_messages_by_ids(ids)}


@router.get("", response_model=list[ConversationResponse])
async def list_conversations(
    principal: CurrentPrincipal,
    chat: ChatServiceDep,
) -> list[ConversationResponse]:
    convs = await chat.get_conversations_for_user(principal.user_id)
    last = await _last_messages(convs, chat)
    return [
        ConversationResponse.from_entity(c, last.get(c.last_message_id)) for c in convs
    ]


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: int,
    principal: CurrentPrincipal,
    chat: ChatServiceDep,
) -> ConversationResponse:
    conv = await _accessible(conversation_id, principal, chat)
    last = await _last_messages([conv], chat)
    return ConversationResponse.from_entity(conv, last.get(conv.last_message_id))


@router.get("/{conversation_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    conversation_id: int,
    principal: CurrentPrincipal,
    chat: ChatServiceDep,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> list[MessageResponse]:
    await _accessible(conversation_id, principal, chat)
    messages = await chat.get_messages(conversation_id, limit=limit, offset=offset)
    return [MessageResponse.model_validate(m) for m in messages]


@router.post("/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_read(
    conversation_id: int,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MarkReadResponse:
    updated = await message_service.mark_read(conversation_id, principal, uow)
    return MarkReadResponse(updated=updated)
