"""WebSocket message envelope models.

Every frame is a JSON object ``{"type": ..., "payload": ..., "timestamp": ...}``.
Payload field names are camelCase on the wire.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PositiveInt
from pydantic.alias_generators import to_camel

from community_chat.domain.entities.message import Message
from community_chat.domain.value_objects.enums import EnvelopeType


class Envelope(BaseModel):
    type: str  # private_message | incoming_private_message | ping | pong | error
    payload: Any = None
    # Always assigned server-side; whatever the client sent is overwritten.
    timestamp: datetime | None = None

    def stamped(self, ts: datetime) -> Envelope:
        return self.model_copy(update={"timestamp": ts})

    def encode(self) -> str:
        return self.model_dump_json()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PrivateMessagePayload(_CamelModel):
    """Client → Server payload of ``private_message``."""

    recipient_id: PositiveInt
    content: str = Field(min_length=1)


class MessagePayload(_CamelModel):
    """Server → Client payload of ``incoming_private_message``."""

    id: int
    conversation_id: int
    sender_id: int
    content: str
    is_read: bool
    created_at: datetime

    @classmethod
    def from_entity(cls, message: Message) -> MessagePayload:
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            content=message.content,
            is_read=message.is_read,
            created_at=message.created_at,
        )


def incoming_private_message(message: Message, ts: datetime) -> Envelope:
    return Envelope(
        type=EnvelopeType.INCOMING_PRIVATE_MESSAGE,
        payload=MessagePayload.from_entity(message).model_dump(mode="json", by_alias=True),
        timestamp=ts,
    )


def ping(ts: datetime) -> Envelope:
    return Envelope(type=EnvelopeType.PING, timestamp=ts)


def pong(ts: datetime) -> Envelope:
    return Envelope(type=EnvelopeType.PONG, timestamp=ts)


def error(code: str, detail: str, ts: datetime) -> Envelope:
    return Envelope(
        type=EnvelopeType.ERROR,
        payload={"code": code, "detail": detail},
        timestamp=ts,
    )
