from __future__ import annotations

from dataclasses import dataclass

from community_chat.domain.value_objects.enums import UserRole
from community_chat.domain.value_objects.ids import UserId


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller identity extracted from an access token."""

    user_id: UserId
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
