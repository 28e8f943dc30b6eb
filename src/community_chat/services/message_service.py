from __future__ import annotations

from community_chat.application.dto.message import NewMessageDTO
from community_chat.application.dto.principal import Principal
from community_chat.application.exceptions import NotFoundError, ValidationError
from community_chat.application.policies.permissions import assert_conversation_access
from community_chat.application.uow import UnitOfWork
from community_chat.domain.entities.message import Message


async def create_message(
    message: NewMessageDTO,
    uow: UnitOfWork,
) -> Message:
    """Persist a message and make it the conversation's latest one."""
    if not message.content:
        raise ValidationError("Message content must not be empty")

    conversation = await uow.conversations.get_by_id(message.conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    if not conversation.has_participant(message.sender_id):
        raise ValidationError("Sender is not a participant of this conversation")

    stored = await uow.messages_w.create(message)
    await uow.conversations_w.touch_last_message(
        stored.conversation_id, stored.id, stored.created_at,
    )
    await uow.commit()
    return stored



async def mark_read(
    conversation_id: int,
    principal: Principal,
    uow: UnitOfWork,
) -> int:
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal, conversation)
    updated = await uow.messages_w.mark_read(conversation_id, principal.user_id)
    await uow.commit()
    return updated
