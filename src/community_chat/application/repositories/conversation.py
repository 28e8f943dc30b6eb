from __future__ import annotations

from datetime import datetime
from typing import Protocol

from community_chat.domain.entities.conversation import Conversation


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: int) -> Conversation | None: ...

    async def get_direct(self, user_a: int, user_b: int) -> Conversation | None:
        """Find the two-party conversation between the users, in either order."""
        ...

    async def list_for_user(self, user_id: int) -> list[Conversation]: ...


class ConversationWriter(Protocol):
    async def create_direct_if_not_exists(
        self, user_a: int, user_b: int, ts: datetime,
    ) -> tuple[Conversation, bool]:
        """Insert the pair's direct conversation. Return (conversation, created).

        A concurrent insert for the same pair must resolve to the existing row.
        """
        ...

    async def touch_last_message(
        self, conversation_id: int, message_id: int, ts: datetime,
    ) -> None: ...
