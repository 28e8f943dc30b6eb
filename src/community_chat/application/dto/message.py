from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class NewMessageDTO:
    conversation_id: int
    sender_id: int
    content: str
