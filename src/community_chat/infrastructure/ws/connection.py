"""Duplex text channel to one client, and its Starlette WebSocket adapter."""
from __future__ import annotations

import logging
from typing import Protocol

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

logger = logging.getLogger(__name__)

CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_NO_STATUS = 1005
CLOSE_ABNORMAL = 1006
CLOSE_MESSAGE_TOO_BIG = 1009
CLOSE_UNAUTHORIZED = 4001


class ConnectionClosed(Exception):
    """The peer went away or the channel can no longer be used."""

    def __init__(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        self.code = code
        self.reason = reason
        super().__init__(f"connection closed ({code}) {reason}".strip())


class MessageTooLarge(ConnectionClosed):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(CLOSE_MESSAGE_TOO_BIG, f"frame of {size} bytes exceeds {limit}")


class Connection(Protocol):
    async def receive(self) -> str:
        """Next inbound text frame. Raises ConnectionClosed."""
        ...

    async def send(self, data: str) -> None:
        """Write one text frame. Raises ConnectionClosed."""
        ...

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        """Send a close frame. Safe to call more than once."""
        ...


class WebSocketConnection:
    """Implements Connection on top of an accepted Starlette WebSocket."""

    def __init__(self, websocket: WebSocket, *, max_message_size: int) -> None:
        self._ws = websocket
        self._max_message_size = max_message_size
        self._closed = False

    async def receive(self) -> str:
        if self._closed:
            raise ConnectionClosed(CLOSE_ABNORMAL, "receive on closed connection")
        try:
            message = await self._ws.receive()
        except (RuntimeError, OSError) as exc:
            self._closed = True
            raise ConnectionClosed(CLOSE_ABNORMAL, str(exc)) from exc

        if message["type"] == "websocket.disconnect":
            self._closed = True
            raise ConnectionClosed(
                message.get("code", CLOSE_NO_STATUS), message.get("reason") or "",
            )

        text = message.get("text")
        if text is not None:
            size = len(text.encode("utf-8"))
        else:
            raw = message.get("bytes") or b""
            size = len(raw)
            text = raw.decode("utf-8", errors="replace")
        if size > self._max_message_size:
            raise MessageTooLarge(size, self._max_message_size)
        return text

    async def send(self, data: str) -> None:
        if self._closed:
            raise ConnectionClosed(CLOSE_ABNORMAL, "send on closed connection")
        try:
            await self._ws.send_text(data)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            self._closed = True
            raise ConnectionClosed(CLOSE_ABNORMAL, str(exc)) from exc

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        if (
            self._ws.application_state == WebSocketState.DISCONNECTED
            or self._ws.client_state == WebSocketState.DISCONNECTED
        ):
            return
        try:
            await self._ws.close(code=code, reason=reason)
        except (RuntimeError, OSError):
            logger.debug("Close frame could not be sent", exc_info=True)
