"""In-process registry of live chat sessions and router of private messages."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Literal, Protocol

from community_chat.infrastructure.ws.outbound import OutboundQueue
from community_chat.infrastructure.ws.protocol import Envelope

logger = logging.getLogger(__name__)


class SessionHandle(Protocol):
    """What the hub needs from a client session."""

    @property
    def user_id(self) -> int: ...

    @property
    def outbound(self) -> OutboundQueue: ...


class MessageRouter(Protocol):
    async def forward_private_message(self, envelope: Envelope, recipient_id: int) -> int:
        """Route an envelope towards every session of ``recipient_id``."""
        ...


@dataclass(frozen=True, slots=True)
class _Command:
    kind: Literal["register", "unregister", "broadcast"]
    session: SessionHandle | None = None
    envelope: Envelope | None = None


class Hub:
    """Single owner of the user → sessions map.

    Register, unregister and broadcast requests are queued and applied in
    issue order by one coordination task (``run``). Forwarding reads and
    prunes the map without suspending, so it never interleaves with a
    command half-way through.
    """

    def __init__(self) -> None:
        self._sessions: dict[int, set[SessionHandle]] = {}
        self._commands: asyncio.Queue[_Command] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        self._task = asyncio.create_task(self.run(), name="chat-hub")
        logger.info("Chat hub started")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        for sessions in self._sessions.values():
            for session in sessions:
                session.outbound.close()
        self._sessions.clear()
        logger.info("Chat hub stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self) -> None:
        while True:
            command = await self._commands.get()
            try:
                self._apply(command)
            except Exception:
                logger.exception("Hub failed to apply %s", command.kind)
            finally:
                self._commands.task_done()

    async def drain(self) -> None:
        """Wait until every queued command has been applied."""
        await self._commands.join()

    # -- requests ----------------------------------------------------------

    def register(self, session: SessionHandle) -> None:
        self._commands.put_nowait(_Command("register", session=session))

    def unregister(self, session: SessionHandle) -> None:
        self._commands.put_nowait(_Command("unregister", session=session))

    def broadcast(self, envelope: Envelope) -> None:
        self._commands.put_nowait(_Command("broadcast", envelope=envelope))

    async def forward_private_message(self, envelope: Envelope, recipient_id: int) -> int:
        """Queue ``envelope`` on every session of the recipient.

        A session whose queue is full is dropped from the registry instead of
        holding up the others. Returns the number of sessions reached.
        """
        sessions = self._sessions.get(recipient_id)
        if not sessions:
            logger.info("Recipient %d not connected, message not forwarded", recipient_id)
            return 0

        delivered = 0
        for session in list(sessions):
            if session.outbound.offer(envelope):
                delivered += 1
            else:
                logger.warning(
                    "Outbound queue of user %d is full, dropping the session", recipient_id,
                )
                self._remove(session)
        logger.debug("Forwarded %s to user %d (%d sessions)", envelope.type, recipient_id, delivered)
        return delivered

    # -- snapshots ---------------------------------------------------------

    def is_online(self, user_id: int) -> bool:
        return user_id in self._sessions

    def sessions_for(self, user_id: int) -> frozenset[SessionHandle]:
        return frozenset(self._sessions.get(user_id, ()))

    @property
    def online_users(self) -> frozenset[int]:
        return frozenset(self._sessions)

    @property
    def session_count(self) -> int:
        return sum(len(s) for s in self._sessions.values())

    # -- internals ---------------------------------------------------------

    def _apply(self, command: _Command) -> None:
        if command.kind == "register":
            assert command.session is not None
            self._add(command.session)
        elif command.kind == "unregister":
            assert command.session is not None
            self._remove(command.session)
        else:
            assert command.envelope is not None
            logger.debug("Hub received a broadcast of %s (no-op)", command.envelope.type)

    def _add(self, session: SessionHandle) -> None:
        sessions = self._sessions.setdefault(session.user_id, set())
        sessions.add(session)
        logger.info("Client connected: user=%d sessions=%d", session.user_id, len(sessions))

    def _remove(self, session: SessionHandle) -> bool:
        sessions = self._sessions.get(session.user_id)
        if not sessions or session not in sessions:
            return False
        sessions.discard(session)
        if not sessions:
            del self._sessions[session.user_id]
        session.outbound.close()
        logger.info("Client disconnected: user=%d sessions=%d", session.user_id, len(sessions))
        return True
