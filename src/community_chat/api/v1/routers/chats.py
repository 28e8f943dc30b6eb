from __future__ import annotations

from fastapi import APIRouter

from community_chat.api.deps import ChatServiceDep, CurrentPrincipal
from community_chat.api.v1.schemas.chat import CreateChatRequest, CreateChatResponse

router = APIRouter(prefix="/api/v1/chats", tags=["chats"])


@router.post("", response_model=CreateChatResponse)
async def create_chat(
    body: CreateChatRequest,
    principal: CurrentPrincipal,
    chat: ChatServiceDep,
) -> CreateChatResponse:
    """Open (or reopen) the direct conversation with another user."""
    conv = await chat.get_or_create_conversation(principal.user_id, body.user_id)
    return CreateChatResponse(session_id=conv.id)
