from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from community_chat.domain.entities.conversation import Conversation, direct_key
from community_chat.infrastructure.db.mappers import conversation as mapper
from community_chat.infrastructure.db.models.conversation import ConversationModel
from community_chat.infrastructure.db.models.participant import ParticipantModel


async def _find_by_direct_key(session: AsyncSession, key: str) -> Conversation | None:
    stmt = (
        select(ConversationModel)
        .options(selectinload(ConversationModel.participants))
        .where(ConversationModel.direct_key == key)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    model = result.scalar_one_or_none()
    return mapper.model_to_entity(model) if model else None


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: int) -> Conversation | None:
        stmt = (
            select(ConversationModel)
            .options(selectinload(ConversationModel.participants))
            .where(ConversationModel.id == conversation_id)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def get_direct(self, user_a: int, user_b: int) -> Conversation | None:
        return await _find_by_direct_key(self._session, direct_key(user_a, user_b))

    async def list_for_user(self, user_id: int) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .options(selectinload(ConversationModel.participants))
            .join(
                ParticipantModel,
                ParticipantModel.conversation_id == ConversationModel.id,
            )
            .where(ParticipantModel.user_id == user_id)
            .order_by(ConversationModel.updated_at.desc(), ConversationModel.id.desc())
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_direct_if_not_exists(
        self,
        user_a: int,
        user_b: int,
        ts: datetime,
    ) -> tuple[Conversation, bool]:
        """Insert the pair's conversation idempotently. Returns (conversation, created_flag)."""
        key = direct_key(user_a, user_b)
        stmt = (
            pg_insert(ConversationModel)
            .values(direct_key=key, created_at=ts, updated_at=ts)
            .on_conflict_do_nothing(index_elements=[ConversationModel.direct_key])
            .returning(ConversationModel.id)
        )
        result = await self._session.execute(stmt)
        conversation_id = result.scalar_one_or_none()

        if conversation_id is None:
            # Lost the race: the other insert has committed by now
            existing = await _find_by_direct_key(self._session, key)
            assert existing is not None
            return existing, False

        low, high = sorted((user_a, user_b))
        self._session.add_all(
            [
                ParticipantModel(conversation_id=conversation_id, user_id=low, joined_at=ts),
                ParticipantModel(conversation_id=conversation_id, user_id=high, joined_at=ts),
            ]
        )
        await self._session.flush()
        conversation = Conversation(
            id=conversation_id,
            participant_ids=(low, high),
            last_message_id=None,
            created_at=ts,
            updated_at=ts,
        )
        return conversation, True

    async def touch_last_message(
        self,
        conversation_id: int,
        message_id: int,
        ts: datetime,
    ) -> None:
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(last_message_id=message_id, updated_at=ts)
        )
        await self._session.execute(stmt)
