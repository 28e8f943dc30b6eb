from __future__ import annotations

from typing import Protocol

from community_chat.application.dto.message import NewMessageDTO
from community_chat.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_messages(
        self,
        conversation_id: int,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Message]:
        """Newest first."""
        ...

    async def get_by_ids(self, message_ids: list[int]) -> list[Message]: ...


class MessageWriter(Protocol):
    async def create(self, message: NewMessageDTO) -> Message: ...

    async def mark_read(self, conversation_id: int, reader_id: int) -> int:
        """Flag messages not sent by ``reader_id`` as read. Return the count."""
        ...
