from __future__ import annotations

from community_chat.application.dto.principal import Principal
from community_chat.application.exceptions import ForbiddenError, NotFoundError
from community_chat.domain.entities.conversation import Conversation


def assert_conversation_access(
    principal: Principal,
    conversation: Conversation | None,
) -> Conversation:
    """Raise if conversation doesn't exist or principal has no access."""
    if conversation is None:
        raise NotFoundError("Conversation not found")

    # Admins can read any thread
    if principal.is_admin:
        return conversation

    if not conversation.has_participant(principal.user_id):
        raise ForbiddenError("Not a participant of this conversation")

    return conversation
