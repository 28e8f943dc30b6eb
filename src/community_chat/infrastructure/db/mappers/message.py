from __future__ import annotations

from community_chat.domain.entities.message import Message
from community_chat.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        conversation_id=model.conversation_id,
        sender_id=model.sender_id,
        content=model.content,
        is_read=model.is_read,
        created_at=model.created_at,
    )
