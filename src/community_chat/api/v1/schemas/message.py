from __future__ import annotations

from datetime import datetime

from community_chat.api.v1.schemas.common import CamelModel


class MessageResponse(CamelModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    is_read: bool
    created_at: datetime


class MarkReadResponse(CamelModel):
    updated: int
