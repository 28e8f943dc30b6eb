"""Chat persistence boundary consumed by the WebSocket and REST layers."""
from __future__ import annotations

from typing import Protocol

from community_chat.application.dto.message import NewMessageDTO
from community_chat.domain.entities.conversation import Conversation
from community_chat.domain.entities.message import Message


class ChatService(Protocol):
    async def get_or_create_conversation(self, user_a: int, user_b: int) -> Conversation:
        """Return the direct conversation of the pair, creating it at most once."""
        ...

    async def create_message(self, message: NewMessageDTO) -> Message:
        """Persist a message and advance its conversation's last-message pointer."""
        ...

    async def get_conversations_for_user(self, user_id: int) -> list[Conversation]:
        """Most recently active first."""
        ...

    async def get_messages(
        self, conversation_id: int, limit: int = 50, offset: int = 0,
    ) -> list[Message]:
        """Newest first."""
        ...

    async def get_conversation(self, conversation_id: int) -> Conversation | None: ...

    async def get_messages_by_ids(self, message_ids: list[int]) -> list[Message]:
        """Resolve ``last_message_id`` references in one round trip."""
        ...
