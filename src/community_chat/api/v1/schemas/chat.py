from __future__ import annotations

from pydantic import PositiveInt

from community_chat.api.v1.schemas.common import CamelModel


class CreateChatRequest(CamelModel):
    user_id: PositiveInt


class CreateChatResponse(CamelModel):
    session_id: int
