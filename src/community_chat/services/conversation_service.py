from __future__ import annotations

import logging
from datetime import datetime, timezone

from community_chat.application.exceptions import ValidationError
from community_chat.application.uow import UnitOfWork
from community_chat.domain.entities.conversation import Conversation

logger = logging.getLogger(__name__)


async def get_or_create_direct_conversation(
    user_a: int,
    user_b: int,
    uow: UnitOfWork,
) -> Conversation:
    """Return the direct conversation between two users, creating it on first contact.

    The writer resolves concurrent creations for the same unordered pair to a
    single row, so every caller ends up with the same conversation.
    """
    if user_a == user_b:
        raise ValidationError("You cannot start a conversation with yourself")

    existing = await uow.conversations.get_direct(user_a, user_b)
    if existing is not None:
        return existing

    now = datetime.now(timezone.utc)
    conversation, created = await uow.conversations_w.create_direct_if_not_exists(
        user_a, user_b, now,
    )
    if created:
        await uow.commit()
        logger.info(
            "Created conversation %d between users %d and %d",
            conversation.id, user_a, user_b,
        )
    return conversation

