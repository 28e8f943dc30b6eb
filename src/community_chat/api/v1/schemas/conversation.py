from __future__ import annotations

from datetime import datetime

from community_chat.api.v1.schemas.common import CamelModel
from community_chat.api.v1.schemas.message import MessageResponse
from community_chat.domain.entities.conversation import Conversation
from community_chat.domain.entities.message import Message


class ConversationResponse(CamelModel):
    id: int
    participant_ids: list[int]
    last_message_id: int | None
    # Resolved from last_message_id for list previews
    last_message: MessageResponse | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(
        cls,
        conversation: Conversation,
        last_message: Message | None = None,
    ) -> ConversationResponse:
        return cls(
            id=conversation.id,
            participant_ids=list(conversation.participant_ids),
            last_message_id=conversation.last_message_id,
            last_message=MessageResponse.model_validate(last_message) if last_message else None,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )
