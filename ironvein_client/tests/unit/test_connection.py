"""
Unit tests for ConnectionManager.

Covers:
- Auto and lobby join modes
- State transitions on open, server close, transport errors and disconnect
- Send semantics for critical and low-priority messages
"""

import asyncio

import pytest

from ironvein_client.config import JoinMode
from ironvein_client.core.event_bus import EventBus, EventType
from ironvein_client.core.state_machine import ConnectionState
from ironvein_client.errors import InvalidState, NotConnected, TransportError
from ironvein_client.game.world_state import RoomIdentity
from ironvein_client.network.connection import ConnectionManager
from ironvein_common.codec import MessageCodec
from ironvein_common.protocol import SendMessageCommand

ENDPOINT = "ws://localhost:8080/ws"


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def states(event_bus):
    seen = []
    event_bus.subscribe(EventType.CONNECTION_STATE_CHANGED, lambda e: seen.append(e.data["to"]))
    return seen


@pytest.fixture
def manager(event_bus, connector):
    return ConnectionManager(MessageCodec(), event_bus, connector=connector)


@pytest.fixture
def lobby_manager(event_bus, connector):
    return ConnectionManager(MessageCodec(), event_bus, join_mode=JoinMode.LOBBY, connector=connector)


def chat(text="hi"):
    return SendMessageCommand(username="alice", text=text, room="r1")


class TestConnect:

    @pytest.mark.asyncio
    async def test_auto_join_on_open(self, manager, identity, websocket, connector, states):
        await manager.connect(identity, ENDPOINT)

        assert manager.state == ConnectionState.OPEN
        assert connector.endpoints == [ENDPOINT]
        assert websocket.sent_json() == [{"type": "join", "username": "alice", "room": "r1"}]
        assert states == [ConnectionState.CONNECTING, ConnectionState.OPEN]

        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_join_sent_event(self, manager, identity, event_bus):
        joins = []
        event_bus.subscribe(EventType.JOIN_SENT, lambda e: joins.append(e.data))

        await manager.connect(identity, ENDPOINT)

        assert joins == [{"username": "alice", "room": "r1"}]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_lobby_mode_waits_for_join(self, lobby_manager, identity, websocket):
        await lobby_manager.connect(identity, ENDPOINT)

        assert lobby_manager.is_open
        assert websocket.sent == []

        assert await lobby_manager.join_battle() is True
        assert websocket.sent_json() == [{"type": "join", "username": "alice", "room": "r1"}]

        await lobby_manager.disconnect()

    @pytest.mark.asyncio
    async def test_join_battle_before_open(self, lobby_manager, websocket):
        with pytest.raises(NotConnected):
            await lobby_manager.join_battle()

        assert websocket.sent == []

    @pytest.mark.asyncio
    async def test_connect_twice(self, manager, identity):
        await manager.connect(identity, ENDPOINT)

        with pytest.raises(InvalidState):
            await manager.connect(identity, ENDPOINT)

        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_connect_after_close(self, manager, identity):
        await manager.disconnect()

        with pytest.raises(InvalidState):
            await manager.connect(identity, ENDPOINT)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username,room", [("", "r1"), ("alice", "  ")])
    async def test_incomplete_identity(self, manager, connector, username, room):
        with pytest.raises(InvalidState):
            await manager.connect(RoomIdentity(username=username, room=room), ENDPOINT)

        assert manager.state == ConnectionState.IDLE
        assert connector.endpoints == []

    @pytest.mark.asyncio
    async def test_connect_failure(self, manager, identity, connector, event_bus):
        errors = []
        event_bus.subscribe(EventType.CONNECTION_ERROR, lambda e: errors.append(e.data))
        connector.error = OSError("connection refused")

        with pytest.raises(TransportError):
            await manager.connect(identity, ENDPOINT)

        assert manager.state == ConnectionState.ERRORED
        assert isinstance(manager.last_error, OSError)
        assert errors == [{"error": "connection refused"}]

        await manager.disconnect()
        assert manager.state == ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_disconnect_while_connecting(self, manager, identity, connector, websocket):
        connector.gate = asyncio.Event()
        attempt = asyncio.create_task(manager.connect(identity, ENDPOINT))
        await asyncio.sleep(0)
        assert manager.state == ConnectionState.CONNECTING

        await manager.disconnect()
        await attempt

        assert manager.state == ConnectionState.CLOSED
        assert websocket.sent == []


class TestServerSignals:

    @pytest.mark.asyncio
    async def test_frames_reach_handler_in_order(self, manager, identity, websocket, settle):
        frames = []
        manager.set_frame_handler(frames.append)
        await manager.connect(identity, ENDPOINT)

        for i in range(3):
            websocket.push(f'{{"n": {i}}}')
        await settle()

        assert frames == ['{"n": 0}', '{"n": 1}', '{"n": 2}']
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_handler_failure_keeps_receiving(self, manager, identity, websocket, settle):
        frames = []

        def handler(frame):
            frames.append(frame)
            if frame == "bad":
                raise RuntimeError("boom")

        manager.set_frame_handler(handler)
        await manager.connect(identity, ENDPOINT)

        websocket.push("bad")
        websocket.push("good")
        await settle()

        assert frames == ["bad", "good"]
        assert manager.is_open
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_server_close(self, manager, identity, websocket, event_bus, settle):
        closes = []
        event_bus.subscribe(EventType.CONNECTION_CLOSED, lambda e: closes.append(e.data))
        await manager.connect(identity, ENDPOINT)

        websocket.server_close(4001, "kicked")
        await settle()

        assert manager.state == ConnectionState.CLOSED
        assert manager.close_code == 4001
        assert manager.close_reason == "kicked"
        assert closes == [{"code": 4001, "reason": "kicked"}]

        await asyncio.wait_for(manager.wait_finished(), timeout=1)

    @pytest.mark.asyncio
    async def test_transport_error_while_open(self, manager, identity, websocket, settle):
        await manager.connect(identity, ENDPOINT)

        websocket.fail(OSError("reset by peer"))
        await settle()

        assert manager.state == ConnectionState.ERRORED
        await asyncio.wait_for(manager.wait_finished(), timeout=1)
        with pytest.raises(NotConnected):
            await manager.send(chat())

        await manager.disconnect()
        assert manager.state == ConnectionState.CLOSED
        assert websocket.close_calls == 1


class TestSend:

    @pytest.mark.asyncio
    async def test_critical_send_when_not_open(self, manager, websocket):
        with pytest.raises(NotConnected):
            await manager.send(chat())

        assert websocket.sent == []

    @pytest.mark.asyncio
    async def test_non_critical_send_when_not_open(self, manager, websocket):
        assert await manager.send(chat("p"), critical=False) is False
        assert websocket.sent == []

    @pytest.mark.asyncio
    async def test_send_failure_returns_false(self, manager, identity, websocket):
        await manager.connect(identity, ENDPOINT)
        websocket.fail_sends = True

        assert await manager.send(chat()) is False
        assert manager.is_open

        await manager.disconnect()


class TestDisconnect:

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, manager, identity, websocket, states):
        await manager.connect(identity, ENDPOINT)

        await manager.disconnect()
        await manager.disconnect()

        assert manager.state == ConnectionState.CLOSED
        assert manager.close_code == 1000
        assert websocket.close_calls == 1
        assert states.count(ConnectionState.CLOSED) == 1
        assert states[-2:] == [ConnectionState.CLOSING, ConnectionState.CLOSED]

    @pytest.mark.asyncio
    async def test_disconnect_from_idle(self, manager, states):
        await manager.disconnect()

        assert manager.state == ConnectionState.CLOSED
        assert states == [ConnectionState.CLOSED]

    @pytest.mark.asyncio
    async def test_concurrent_disconnects(self, manager, identity, websocket):
        await manager.connect(identity, ENDPOINT)

        await asyncio.gather(manager.disconnect(), manager.disconnect())

        assert manager.state == ConnectionState.CLOSED
        assert websocket.close_calls == 1

    @pytest.mark.asyncio
    async def test_disconnect_after_server_close(self, manager, identity, websocket, settle):
        await manager.connect(identity, ENDPOINT)
        websocket.server_close(1001, "going away")
        await settle()

        await manager.disconnect()

        assert manager.close_code == 1001
        assert websocket.close_calls == 0
