from __future__ import annotations

import asyncio

from community_chat.infrastructure.ws.protocol import Envelope


class OutboundQueue:
    """Bounded FIFO of envelopes waiting for a session's write pump.

    Any number of producers may ``offer``; exactly one consumer calls ``get``.
    ``offer`` never waits. After ``close`` the consumer still receives what
    was queued, then ``None`` on every further ``get``.
    """

    def __init__(self, maxsize: int) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be positive")
        self._maxsize = maxsize
        # Capacity is enforced in offer() so the close sentinel always fits.
        self._items: asyncio.Queue[Envelope | None] = asyncio.Queue()
        self._closed = False

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._items.qsize() - (1 if self._closed and self._items.qsize() else 0)

    def full(self) -> bool:
        return self._items.qsize() >= self._maxsize

    def offer(self, envelope: Envelope) -> bool:
        """Queue an envelope. False when the queue is full or closed."""
        if self._closed or self.full():
            return False
        self._items.put_nowait(envelope)
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._items.put_nowait(None)

    async def get(self) -> Envelope | None:
        if self._closed and self._items.empty():
            return None
        return await self._items.get()
