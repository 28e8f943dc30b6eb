from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Conversation:
    id: int
    participant_ids: tuple[int, ...]
    # Weak reference: resolved by id, never an owned Message.
    last_message_id: int | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_direct(self) -> bool:
        return len(self.participant_ids) == 2

    def has_participant(self, user_id: int) -> bool:
        return user_id in self.participant_ids

    def other_participant(self, user_id: int) -> int | None:
        """Return the counterpart of ``user_id`` in a direct conversation."""
        if not self.is_direct or user_id not in self.participant_ids:
            return None
        first, second = self.participant_ids
        return second if first == user_id else first


def direct_key(user_a: int, user_b: int) -> str:
    """Order-independent key identifying the direct conversation of a pair."""
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"
