"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, Request, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from community_chat.application.dto.principal import Principal
from community_chat.application.ports.auth import TokenVerifier
from community_chat.application.ports.chat import ChatService
from community_chat.config import settings
from community_chat.infrastructure.auth.hs256_verifier import HS256Verifier
from community_chat.infrastructure.db.uow import SqlAlchemyUoW, sql_uow
from community_chat.infrastructure.ws.hub import Hub, MessageRouter
from community_chat.services.chat_service import UoWChatService

_bearer_scheme = HTTPBearer()


async def get_uow() -> AsyncIterator[SqlAlchemyUoW]:
    async with sql_uow() as uow:
        yield uow


UoWDep = Annotated[SqlAlchemyUoW, Depends(get_uow)]


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)
    return _verifier


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
) -> Principal:
    verifier = get_verifier()
    try:
        return await verifier.verify(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def get_chat_service() -> ChatService:
    return UoWChatService(sql_uow)


ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]


def get_hub(request: Request) -> Hub:
    return request.app.state.hub


def get_ws_hub(websocket: WebSocket) -> Hub:
    return websocket.app.state.hub


def get_ws_router(websocket: WebSocket) -> MessageRouter:
    return websocket.app.state.router


HubDep = Annotated[Hub, Depends(get_hub)]
WsHubDep = Annotated[Hub, Depends(get_ws_hub)]
WsRouterDep = Annotated[MessageRouter, Depends(get_ws_router)]
