"""Unit-of-work backed implementation of the chat persistence boundary."""
from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable

from community_chat.application.dto.message import NewMessageDTO
from community_chat.application.uow import UnitOfWork
from community_chat.domain.entities.conversation import Conversation
from community_chat.domain.entities.message import Message
from community_chat.services import conversation_service, message_service

UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]


class UoWChatService:
    """Implements application.ports.chat.ChatService.

    Each call opens and closes its own unit of work.
    """

    def __init__(self, uow_factory: UoWFactory) -> None:
        self._uow_factory = uow_factory

    async def get_or_create_conversation(self, user_a: int, user_b: int) -> Conversation:
        async with self._uow_factory() as uow:
            return await conversation_service.get_or_create_direct_conversation(
                user_a, user_b, uow,
            )

    async def create_message(self, message: NewMessageDTO) -> Message:
        async with self._uow_factory() as uow:
            return await message_service.create_message(message, uow)

    async def get_conversations_for_user(self, user_id: int) -> list[Conversation]:
        async with self._uow_factory() as uow:
            return await uow.conversations.list_for_user(user_id)

    async def get_messages(
        self, conversation_id: int, limit: int = 50, offset: int = 0,
    ) -> list[Message]:
        async with self._uow_factory() as uow:
            return await uow.messages.list_messages(
                conversation_id, limit=limit, offset=offset,
            )

    async def get_conversation(self, conversation_id: int) -> Conversation | None:
        async with self._uow_factory() as uow:
            return await uow.conversations.get_by_id(conversation_id)

    async def get_messages_by_ids(self, message_ids: list[int]) -> list[Message]:
        async with self._uow_factory() as uow:
            return await uow.messages.get_by_ids(message_ids)
