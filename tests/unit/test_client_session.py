from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from community_chat.infrastructure.ws import protocol
from community_chat.infrastructure.ws.connection import (
    CLOSE_MESSAGE_TOO_BIG,
    ConnectionClosed,
    MessageTooLarge,
    WebSocketConnection,
)
from community_chat.infrastructure.ws.hub import Hub
from community_chat.infrastructure.ws.session import ClientSession, SessionLimits
from tests.conftest import (
    FailingChatService,
    FakeConnection,
    FakeUoW,
    StalledConnection,
    make_chat_service,
    wait_until,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
LIMITS = SessionLimits(write_wait=1.0, read_timeout=5.0, ping_period=4.0)


def open_session(hub, chat, user_id, *, limits=LIMITS, conn=None):
    conn = conn or FakeConnection()
    session = ClientSession(
        user_id=user_id, connection=conn, hub=hub, chat=chat,
        limits=limits, clock=lambda: NOW,
    )
    task = asyncio.create_task(session.serve())
    return session, conn, task


async def hang_up(*pairs):
    for conn, task in pairs:
        conn.hang_up()
        await asyncio.wait_for(task, 3)


def private_message(recipient_id, content):
    return {"type": "private_message", "payload": {"recipientId": recipient_id, "content": content}}


async def ping_roundtrip(conn: FakeConnection) -> None:
    before = len(conn.envelopes("pong"))
    conn.feed_json({"type": "ping"})
    await wait_until(lambda: len(conn.envelopes("pong")) > before)


@pytest.mark.asyncio
async def test_private_message_is_stored_and_delivered(hub: Hub):
    uow = FakeUoW()
    chat = make_chat_service(uow)
    _, conn_a, task_a = open_session(hub, chat, 1)
    _, conn_b, task_b = open_session(hub, chat, 2)
    await wait_until(lambda: hub.is_online(1) and hub.is_online(2))

    conn_a.feed_json({**private_message(2, "hi"), "timestamp": "1999-01-01T00:00:00Z"})
    await wait_until(lambda: conn_b.envelopes("incoming_private_message"))

    [env] = conn_b.envelopes("incoming_private_message")
    assert env["payload"]["senderId"] == 1
    assert env["payload"]["content"] == "hi"
    assert env["payload"]["isRead"] is False
    assert datetime.fromisoformat(env["timestamp"]) == NOW
    conv = uow.conversations.find_direct(1, 2)
    assert env["payload"]["conversationId"] == conv.id
    assert conv.last_message_id == env["payload"]["id"]
    assert conn_a.envelopes("incoming_private_message") == []

    await hang_up((conn_a, task_a), (conn_b, task_b))
    assert hub.online_users == frozenset()


@pytest.mark.asyncio
async def test_message_to_offline_user_is_still_stored(hub: Hub):
    uow = FakeUoW()
    chat = make_chat_service(uow)
    _, conn, task = open_session(hub, chat, 1)

    conn.feed_json(private_message(5, "are you there?"))
    await wait_until(lambda: len(uow.messages._messages) == 1)

    conv = uow.conversations.find_direct(1, 5)
    [stored] = await chat.get_messages(conv.id)
    assert stored.sender_id == 1
    assert stored.content == "are you there?"
    await ping_roundtrip(conn)
    await hang_up((conn, task))


@pytest.mark.asyncio
async def test_malformed_frames_do_not_end_the_session(hub: Hub):
    chat = make_chat_service()
    _, conn_a, task_a = open_session(hub, chat, 1)
    _, conn_b, task_b = open_session(hub, chat, 2)
    await wait_until(lambda: hub.is_online(2))

    conn_a.feed("{not json")
    conn_a.feed_json({"type": "private_message", "payload": {"content": "no recipient"}})
    conn_a.feed_json(private_message(2, ""))
    conn_a.feed_json(private_message(2, "still here"))
    await wait_until(lambda: conn_b.envelopes("incoming_private_message"))

    contents = [e["payload"]["content"] for e in conn_b.envelopes("incoming_private_message")]
    assert contents == ["still here"]
    assert conn_a.envelopes("error") == []
    await hang_up((conn_a, task_a), (conn_b, task_b))


@pytest.mark.asyncio
async def test_unknown_type_is_ignored(hub: Hub):
    _, conn, task = open_session(hub, make_chat_service(), 1)

    conn.feed_json({"type": "typing", "payload": {"recipientId": 2}})
    await ping_roundtrip(conn)

    assert [e["type"] for e in conn.envelopes()] == ["pong"]
    await hang_up((conn, task))


@pytest.mark.asyncio
async def test_storage_failure_is_dropped_silently(hub: Hub):
    chat = FailingChatService()
    _, conn_a, task_a = open_session(hub, chat, 1)
    _, conn_b, task_b = open_session(hub, chat, 2)
    await wait_until(lambda: hub.is_online(2))

    conn_a.feed_json(private_message(2, "lost"))
    await ping_roundtrip(conn_a)

    assert chat.calls == 1
    assert conn_a.envelopes("error") == []
    assert conn_b.envelopes() == []
    await hang_up((conn_a, task_a), (conn_b, task_b))


@pytest.mark.asyncio
async def test_storage_failure_reported_to_sender_when_enabled(hub: Hub):
    chat = FailingChatService()
    limits = SessionLimits(write_wait=1.0, read_timeout=5.0, ping_period=4.0, report_errors=True)
    _, conn_a, task_a = open_session(hub, chat, 1, limits=limits)
    _, conn_b, task_b = open_session(hub, chat, 2, limits=limits)
    await wait_until(lambda: hub.is_online(2))

    conn_a.feed_json(private_message(2, "lost"))
    await wait_until(lambda: conn_a.envelopes("error"))

    [err] = conn_a.envelopes("error")
    assert err["payload"]["code"] == "send_failed"
    assert conn_b.envelopes() == []
    await hang_up((conn_a, task_a), (conn_b, task_b))


@pytest.mark.asyncio
async def test_malformed_frame_reported_when_enabled(hub: Hub):
    limits = SessionLimits(write_wait=1.0, read_timeout=5.0, ping_period=4.0, report_errors=True)
    _, conn, task = open_session(hub, make_chat_service(), 1, limits=limits)

    conn.feed("[]")
    await wait_until(lambda: conn.envelopes("error"))

    assert conn.envelopes("error")[0]["payload"]["code"] == "invalid_payload"
    await hang_up((conn, task))


@pytest.mark.asyncio
async def test_write_pump_sends_periodic_pings(hub: Hub):
    limits = SessionLimits(write_wait=0.5, read_timeout=2.0, ping_period=0.05)
    _, conn, task = open_session(hub, make_chat_service(), 1, limits=limits)

    await wait_until(lambda: len(conn.envelopes("ping")) >= 2)

    await hang_up((conn, task))


@pytest.mark.asyncio
async def test_listen_only_client_kept_alive_by_pings(hub: Hub):
    limits = SessionLimits(write_wait=0.5, read_timeout=0.3, ping_period=0.1)
    _, conn, task = open_session(hub, make_chat_service(), 1, limits=limits)

    await asyncio.sleep(1.0)

    assert not task.done()
    assert hub.is_online(1)
    assert conn.closed is False
    assert len(conn.envelopes("ping")) >= 3
    await hang_up((conn, task))


@pytest.mark.asyncio
async def test_read_deadline_ends_session_when_pings_cannot_be_written(hub: Hub):
    limits = SessionLimits(write_wait=1.0, read_timeout=0.2, ping_period=0.1)
    _, conn, task = open_session(
        hub, make_chat_service(), 1, limits=limits, conn=StalledConnection(),
    )

    await asyncio.wait_for(task, 3)
    await hub.drain()

    assert conn.closed is True
    assert not hub.is_online(1)


@pytest.mark.asyncio
async def test_inbound_traffic_extends_read_deadline(hub: Hub):
    # Pings never complete here, so only inbound frames can keep it alive
    limits = SessionLimits(write_wait=1.0, read_timeout=0.3, ping_period=0.2)
    _, conn, task = open_session(
        hub, make_chat_service(), 1, limits=limits, conn=StalledConnection(),
    )

    for _ in range(5):
        await asyncio.sleep(0.1)
        conn.feed_json({"type": "pong"})

    assert not task.done()
    await hang_up((conn, task))


@pytest.mark.asyncio
async def test_removal_from_hub_closes_connection(hub: Hub):
    session, conn, task = open_session(hub, make_chat_service(), 1)
    await wait_until(lambda: hub.is_online(1))

    session.outbound.close()
    await asyncio.wait_for(task, 3)
    await hub.drain()

    assert conn.closed is True
    assert not hub.is_online(1)
    assert conn.close_calls >= 1


@pytest.mark.asyncio
async def test_stalled_peer_hits_write_deadline(hub: Hub):
    limits = SessionLimits(write_wait=0.1, read_timeout=5.0, ping_period=4.0)
    session, conn, task = open_session(
        hub, make_chat_service(), 1, limits=limits, conn=StalledConnection(),
    )
    await wait_until(lambda: hub.is_online(1))

    await hub.forward_private_message(protocol.ping(NOW), 1)
    await asyncio.wait_for(task, 3)

    assert conn.closed is True


class _OversizedConnection(FakeConnection):
    async def receive(self) -> str:
        raise MessageTooLarge(2048, 1024)


@pytest.mark.asyncio
async def test_oversized_frame_closes_with_1009(hub: Hub):
    _, conn, task = open_session(hub, make_chat_service(), 1, conn=_OversizedConnection())

    await asyncio.wait_for(task, 3)

    assert conn.close_code == CLOSE_MESSAGE_TOO_BIG


class _StubWebSocket:
    def __init__(self, message):
        self._message = message

    async def receive(self):
        return self._message


@pytest.mark.asyncio
async def test_websocket_connection_enforces_frame_limit():
    conn = WebSocketConnection(
        _StubWebSocket({"type": "websocket.receive", "text": "x" * 2000}),
        max_message_size=1024,
    )

    with pytest.raises(MessageTooLarge):
        await conn.receive()


@pytest.mark.asyncio
async def test_websocket_connection_maps_disconnect():
    conn = WebSocketConnection(
        _StubWebSocket({"type": "websocket.disconnect", "code": 1001}),
        max_message_size=1024,
    )

    with pytest.raises(ConnectionClosed) as exc_info:
        await conn.receive()
    assert exc_info.value.code == 1001


def test_session_limits_reject_ping_after_deadline():
    with pytest.raises(ValueError):
        SessionLimits(read_timeout=10.0, ping_period=10.0)
