"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import dataclasses
import json
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable

import pytest
import pytest_asyncio

from community_chat.application.dto.message import NewMessageDTO
from community_chat.application.dto.principal import Principal
from community_chat.domain.entities.conversation import Conversation, direct_key
from community_chat.domain.entities.message import Message
from community_chat.domain.value_objects.enums import UserRole
from community_chat.domain.value_objects.ids import UserId
from community_chat.infrastructure.ws.connection import (
    CLOSE_ABNORMAL,
    CLOSE_GOING_AWAY,
    CLOSE_NORMAL,
    ConnectionClosed,
)
from community_chat.infrastructure.ws.hub import Hub
from community_chat.infrastructure.ws.outbound import OutboundQueue
from community_chat.services.chat_service import UoWChatService


@pytest.fixture
def user_principal() -> Principal:
    return Principal(user_id=UserId(1))


@pytest.fixture
def other_principal() -> Principal:
    return Principal(user_id=UserId(2))


@pytest.fixture
def admin_principal() -> Principal:
    return Principal(user_id=UserId(99), role=UserRole.ADMIN)


def make_conversation(
    *,
    conversation_id: int = 1,
    participants: tuple[int, ...] = (1, 2),
    last_message_id: int | None = None,
) -> Conversation:
    now = datetime.now(timezone.utc)
    return Conversation(
        id=conversation_id,
        participant_ids=tuple(sorted(participants)),
        last_message_id=last_message_id,
        created_at=now,
        updated_at=now,
    )


def make_message(
    *,
    message_id: int = 1,
    conversation_id: int = 1,
    sender_id: int = 1,
    content: str = "hello",
    is_read: bool = False,
    created_at: datetime | None = None,
) -> Message:
    return Message(
        id=message_id,
        conversation_id=conversation_id,
        sender_id=sender_id,
        content=content,
        is_read=is_read,
        created_at=created_at or datetime.now(timezone.utc),
    )


# -- in-memory unit of work ------------------------------------------------


@dataclass
class FakeConversationReader:
    _store: dict[int, Conversation] = field(default_factory=dict)

    def add(self, conversation: Conversation) -> Conversation:
        self._store[conversation.id] = conversation
        return conversation

    def find_direct(self, user_a: int, user_b: int) -> Conversation | None:
        key = direct_key(user_a, user_b)
        for conv in self._store.values():
            if conv.is_direct and direct_key(*conv.participant_ids) == key:
                return conv
        return None

    async def get_by_id(self, conversation_id: int) -> Conversation | None:
        return self._store.get(conversation_id)

    async def get_direct(self, user_a: int, user_b: int) -> Conversation | None:
        # Yield so concurrent callers interleave between lookup and insert
        await asyncio.sleep(0)
        return self.find_direct(user_a, user_b)

    async def list_for_user(self, user_id: int) -> list[Conversation]:
        convs = [c for c in self._store.values() if c.has_participant(user_id)]
        return sorted(convs, key=lambda c: (c.updated_at, c.id), reverse=True)


@dataclass
class FakeConversationWriter:
    _reader: FakeConversationReader
    _next_id: int = 100
    _created: int = 0

    async def create_direct_if_not_exists(
        self, user_a: int, user_b: int, ts: datetime,
    ) -> tuple[Conversation, bool]:
        existing = self._reader.find_direct(user_a, user_b)
        if existing is not None:
            return existing, False
        conv = Conversation(
            id=self._next_id,
            participant_ids=tuple(sorted((user_a, user_b))),
            last_message_id=None,
            created_at=ts,
            updated_at=ts,
        )
        self._next_id += 1
        self._created += 1
        return self._reader.add(conv), True

    async def touch_last_message(self, conversation_id: int, message_id: int, ts: datetime) -> None:
        conv = self._reader._store[conversation_id]
        self._reader._store[conversation_id] = dataclasses.replace(
            conv, last_message_id=message_id, updated_at=ts,
        )


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)

    async def list_messages(
        self, conversation_id: int, *, limit: int = 50, offset: int = 0,
    ) -> list[Message]:
        msgs = [m for m in self._messages if m.conversation_id == conversation_id]
        msgs.sort(key=lambda m: (m.created_at, m.id), reverse=True)
        return msgs[offset:offset + limit]

    async def get_by_ids(self, message_ids: list[int]) -> list[Message]:
        wanted = set(message_ids)
        return [m for m in self._messages if m.id in wanted]


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader
    _next_id: int = 1
    fail_with: Exception | None = None

    async def create(self, message: NewMessageDTO) -> Message:
        if self.fail_with is not None:
            raise self.fail_with
        stored = Message(
            id=self._next_id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            content=message.content,
            is_read=False,
            # Strictly increasing so ordering never ties
            created_at=datetime.now(timezone.utc) + timedelta(microseconds=self._next_id),
        )
        self._next_id += 1
        self._reader._messages.append(stored)
        return stored

    async def mark_read(self, conversation_id: int, reader_id: int) -> int:
        updated = 0
        for i, m in enumerate(self._reader._messages):
            if m.conversation_id == conversation_id and m.sender_id != reader_id and not m.is_read:
                self._reader._messages[i] = dataclasses.replace(m, is_read=True)
                updated += 1
        return updated


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    conversations: FakeConversationReader = field(default_factory=FakeConversationReader)
    conversations_w: FakeConversationWriter | None = None
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    _commits: int = 0

    def __post_init__(self) -> None:
        if self.conversations_w is None:
            self.conversations_w = FakeConversationWriter(self.conversations)
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)

    @property
    def _committed(self) -> bool:
        return self._commits > 0

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self._commits += 1

    async def rollback(self) -> None:
        pass


def fake_uow_factory(uow: FakeUoW) -> Callable[[], Any]:
    @asynccontextmanager
    async def _factory() -> AsyncIterator[FakeUoW]:
        yield uow

    return _factory


def make_chat_service(uow: FakeUoW | None = None) -> UoWChatService:
    return UoWChatService(fake_uow_factory(uow or FakeUoW()))


class FailingChatService:
    """Chat boundary whose storage is down."""

    def __init__(self) -> None:
        self.calls = 0

    async def get_or_create_conversation(self, user_a: int, user_b: int) -> Conversation:
        self.calls += 1
        raise RuntimeError("database unavailable")

    async def create_message(self, message: NewMessageDTO) -> Message:
        raise AssertionError("must not be reached")

    async def get_conversations_for_user(self, user_id: int) -> list[Conversation]:
        return []

    async def get_messages(self, conversation_id: int, limit: int = 50, offset: int = 0) -> list[Message]:
        return []

    async def get_conversation(self, conversation_id: int) -> Conversation | None:
        return None

    async def get_messages_by_ids(self, message_ids: list[int]) -> list[Message]:
        return []


# -- WebSocket doubles -----------------------------------------------------


class FakeConnection:
    """Scriptable Connection: tests feed inbound frames and inspect what was sent."""

    def __init__(self) -> None:
        self._inbound: asyncio.Queue[str | None] = asyncio.Queue()
        self.sent: list[str] = []
        self.closed = False
        self.close_code: int | None = None
        self.close_calls = 0

    def feed(self, frame: str) -> None:
        self._inbound.put_nowait(frame)

    def feed_json(self, obj: Any) -> None:
        self.feed(json.dumps(obj))

    def hang_up(self) -> None:
        self._inbound.put_nowait(None)

    def envelopes(self, type_: str | None = None) -> list[dict[str, Any]]:
        decoded = [json.loads(raw) for raw in self.sent]
        if type_ is None:
            return decoded
        return [e for e in decoded if e["type"] == type_]

    async def receive(self) -> str:
        if self.closed and self._inbound.empty():
            raise ConnectionClosed(CLOSE_ABNORMAL)
        item = await self._inbound.get()
        if item is None:
            raise ConnectionClosed(CLOSE_GOING_AWAY)
        return item

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionClosed(CLOSE_ABNORMAL)
        self.sent.append(data)

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        self.close_calls += 1
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self._inbound.put_nowait(None)


class StalledConnection(FakeConnection):
    """A peer that never acknowledges writes."""

    async def send(self, data: str) -> None:
        await asyncio.Event().wait()


@dataclass(eq=False)
class StubSession:
    """Minimal hub member with no pumps attached."""
    user_id: int
    outbound: OutboundQueue = field(default_factory=lambda: OutboundQueue(8))


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest_asyncio.fixture
async def hub() -> AsyncIterator[Hub]:
    h = Hub()
    await h.start()
    try:
        yield h
    finally:
        await h.stop()
