"""One authenticated WebSocket connection and its read / write pumps."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from pydantic import ValidationError as PayloadError

from community_chat.application.dto.message import NewMessageDTO
from community_chat.application.ports.chat import ChatService
from community_chat.config import Settings
from community_chat.domain.value_objects.enums import EnvelopeType
from community_chat.domain.value_objects.ids import UserId
from community_chat.infrastructure.ws import protocol
from community_chat.infrastructure.ws.connection import (
    CLOSE_ABNORMAL,
    CLOSE_GOING_AWAY,
    CLOSE_NO_STATUS,
    CLOSE_NORMAL,
    Connection,
    ConnectionClosed,
    MessageTooLarge,
)
from community_chat.infrastructure.ws.hub import Hub, MessageRouter
from community_chat.infrastructure.ws.outbound import OutboundQueue
from community_chat.infrastructure.ws.protocol import Envelope, PrivateMessagePayload

logger = logging.getLogger(__name__)

_EXPECTED_CLOSE_CODES = frozenset({CLOSE_NORMAL, CLOSE_GOING_AWAY, CLOSE_NO_STATUS, CLOSE_ABNORMAL})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class SessionLimits:
    write_wait: float = 10.0
    read_timeout: float = 60.0
    ping_period: float = 54.0
    send_queue_size: int = 256
    report_errors: bool = False

    def __post_init__(self) -> None:
        if self.ping_period >= self.read_timeout:
            raise ValueError("ping_period must be less than read_timeout")

    @classmethod
    def from_settings(cls, settings: Settings) -> SessionLimits:
        return cls(
            write_wait=settings.WS_WRITE_WAIT_SECONDS,
            read_timeout=settings.WS_PONG_WAIT_SECONDS,
            ping_period=settings.ws_ping_period,
            send_queue_size=settings.WS_SEND_QUEUE_SIZE,
            report_errors=settings.WS_REPORT_ERRORS,
        )


class ClientSession:
    """Adapts one Connection into an inbound and an outbound pump.

    The two pumps only meet through ``outbound`` and the hub: the read pump
    persists and routes what the client sends, the write pump drains the
    queue and keeps the connection alive with periodic pings.
    """

    def __init__(
        self,
        *,
        user_id: UserId,
        connection: Connection,
        hub: Hub,
        chat: ChatService,
        router: MessageRouter | None = None,
        limits: SessionLimits | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.user_id = user_id
        self._conn = connection
        self._hub = hub
        self._chat = chat
        self._router: MessageRouter = router or hub
        self._limits = limits or SessionLimits()
        self._clock = clock
        self.outbound = OutboundQueue(self._limits.send_queue_size)
        self._alive_until = 0.0

    def __repr__(self) -> str:
        return f"<ClientSession user={self.user_id} id={id(self):#x}>"

    async def serve(self) -> None:
        """Run both pumps until the connection ends."""
        self._hub.register(self)
        writer = asyncio.create_task(self.write_pump(), name=f"ws-writer-{self.user_id}")
        try:
            await self.read_pump()
        finally:
            done, _ = await asyncio.wait({writer}, timeout=self._limits.write_wait)
            if not done:
                writer.cancel()
                try:
                    await writer
                except asyncio.CancelledError:
                    pass

    # -- inbound -----------------------------------------------------------

    async def read_pump(self) -> None:
        loop = asyncio.get_running_loop()
        close_code = CLOSE_NORMAL
        self._mark_alive()
        try:
            while True:
                remaining = self._alive_until - loop.time()
                if remaining <= 0:
                    raise TimeoutError
                try:
                    raw = await asyncio.wait_for(self._conn.receive(), timeout=remaining)
                except TimeoutError:
                    # A ping written meanwhile may have moved the deadline
                    continue
                self._mark_alive()
                await self._handle_frame(raw)
        except MessageTooLarge as exc:
            logger.warning("Closing session of user %d: %s", self.user_id, exc.reason)
            close_code = exc.code
        except ConnectionClosed as exc:
            if exc.code not in _EXPECTED_CLOSE_CODES:
                logger.warning("Unexpected close from user %d: %s", self.user_id, exc)
        except TimeoutError:
            logger.info("Read deadline exceeded for user %d", self.user_id)
        finally:
            self._hub.unregister(self)
            await self._conn.close(close_code)

    async def _handle_frame(self, raw: str) -> None:
        try:
            envelope = Envelope.model_validate_json(raw)
        except PayloadError as exc:
            logger.warning(
                "Malformed frame from user %d (%d errors)", self.user_id, exc.error_count(),
            )
            self._report_error("invalid_payload", "frame is not a valid envelope")
            return

        envelope = envelope.stamped(self._clock())

        if envelope.type == EnvelopeType.PRIVATE_MESSAGE:
            await self._handle_private_message(envelope)
        elif envelope.type == EnvelopeType.PING:
            self._enqueue_own(protocol.pong(self._clock()))
        # pong and unknown types only refresh the read deadline

    async def _handle_private_message(self, envelope: Envelope) -> None:
        try:
            payload = PrivateMessagePayload.model_validate(envelope.payload)
        except PayloadError as exc:
            logger.warning(
                "Invalid private_message payload from user %d (%d errors)",
                self.user_id, exc.error_count(),
            )
            self._report_error("invalid_payload", "expected recipientId and content")
            return

        recipient_id = payload.recipient_id
        try:
            conversation = await self._chat.get_or_create_conversation(self.user_id, recipient_id)
            message = await self._chat.create_message(
                NewMessageDTO(
                    conversation_id=conversation.id,
                    sender_id=self.user_id,
                    content=payload.content,
                )
            )
        except Exception:
            logger.exception(
                "Failed to store private message from user %d to %d", self.user_id, recipient_id,
            )
            self._report_error("send_failed", "message could not be stored")
            return

        outgoing = protocol.incoming_private_message(message, self._clock())
        try:
            await self._router.forward_private_message(outgoing, recipient_id)
        except Exception:
            logger.exception("Failed to forward message %d to user %d", message.id, recipient_id)

    def _mark_alive(self) -> None:
        """Push the read deadline one read_timeout past now."""
        self._alive_until = asyncio.get_running_loop().time() + self._limits.read_timeout

    def _report_error(self, code: str, detail: str) -> None:
        if self._limits.report_errors:
            self._enqueue_own(protocol.error(code, detail, self._clock()))

    def _enqueue_own(self, envelope: Envelope) -> None:
        if not self.outbound.offer(envelope):
            logger.debug("Dropped %s for user %d: queue unavailable", envelope.type, self.user_id)

    # -- outbound ----------------------------------------------------------

    async def write_pump(self) -> None:
        loop = asyncio.get_running_loop()
        next_ping = loop.time() + self._limits.ping_period
        try:
            while True:
                try:
                    envelope = await asyncio.wait_for(
                        self.outbound.get(), timeout=max(0.0, next_ping - loop.time()),
                    )
                except TimeoutError:
                    next_ping = loop.time() + self._limits.ping_period
                    await self._write(protocol.ping(self._clock()))
                    self._mark_alive()
                    continue

                if envelope is None:
                    # Unregistered by the hub
                    return
                await self._write(envelope)
        except (ConnectionClosed, TimeoutError) as exc:
            logger.debug("Write pump of user %d stopped: %r", self.user_id, exc)
        finally:
            await self._conn.close(CLOSE_NORMAL)

    async def _write(self, envelope: Envelope) -> None:
        await asyncio.wait_for(
            self._conn.send(envelope.encode()), timeout=self._limits.write_wait,
        )
