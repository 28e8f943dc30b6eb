from __future__ import annotations

from community_chat.domain.entities.conversation import Conversation
from community_chat.infrastructure.db.models.conversation import ConversationModel


def model_to_entity(model: ConversationModel) -> Conversation:
    return Conversation(
        id=model.id,
        participant_ids=tuple(sorted(p.user_id for p in model.participants)),
        last_message_id=model.last_message_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )
