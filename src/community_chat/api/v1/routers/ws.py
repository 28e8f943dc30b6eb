from __future__ import annotations

import logging

from fastapi import APIRouter, Query, WebSocket

from community_chat.api.deps import ChatServiceDep, WsHubDep, WsRouterDep, get_verifier
from community_chat.application.dto.principal import Principal
from community_chat.config import settings
from community_chat.infrastructure.ws.connection import CLOSE_UNAUTHORIZED, WebSocketConnection
from community_chat.infrastructure.ws.session import ClientSession

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


def _extract_token(websocket: WebSocket, token: str | None) -> str | None:
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return None


async def _authenticate(token: str | None) -> Principal | None:
    if not token:
        return None
    try:
        return await get_verifier().verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/chat")
@router.websocket("/api/v1/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    hub: WsHubDep,
    message_router: WsRouterDep,
    chat: ChatServiceDep,
    token: str | None = Query(None),
) -> None:
    principal = await _authenticate(_extract_token(websocket, token))

    await websocket.accept()
    if principal is None:
        logger.info("Unauthorized WebSocket connection attempt")
        await websocket.close(code=CLOSE_UNAUTHORIZED, reason="Unauthorized")
        return

    session = ClientSession(
        user_id=principal.user_id,
        connection=WebSocketConnection(
            websocket, max_message_size=settings.WS_MAX_MESSAGE_SIZE,
        ),
        hub=hub,
        chat=chat,
        router=message_router,
        limits=websocket.app.state.session_limits,
    )
    logger.info("WebSocket connection established for user %d", principal.user_id)
    await session.serve()
