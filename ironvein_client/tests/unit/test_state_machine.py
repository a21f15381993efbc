"""
Unit tests for the connection state machine and the event bus.
"""

import asyncio

import pytest

from ironvein_client.core.event_bus import EventBus, EventType
from ironvein_client.core.state_machine import ConnectionState, ConnectionStateMachine


class TestConnectionStateMachine:

    def test_starts_idle(self):
        machine = ConnectionStateMachine()

        assert machine.current_state == ConnectionState.IDLE
        assert machine.previous_state is None
        assert not machine.is_open

    def test_happy_path(self):
        machine = ConnectionStateMachine()

        for state in (ConnectionState.CONNECTING, ConnectionState.OPEN, ConnectionState.CLOSING, ConnectionState.CLOSED):
            assert machine.transition_to(state)

        assert machine.is_terminal

    @pytest.mark.parametrize("start,target", [
        (ConnectionState.IDLE, ConnectionState.OPEN),
        (ConnectionState.IDLE, ConnectionState.ERRORED),
        (ConnectionState.CLOSED, ConnectionState.CONNECTING),
        (ConnectionState.CLOSED, ConnectionState.IDLE),
        (ConnectionState.ERRORED, ConnectionState.OPEN),
        (ConnectionState.CLOSING, ConnectionState.OPEN),
    ])
    def test_invalid_transitions_rejected(self, start, target):
        machine = ConnectionStateMachine()
        machine._current_state = start

        assert machine.transition_to(target) is False
        assert machine.current_state == start

    def test_no_state_leads_back_to_idle(self):
        for targets in ConnectionStateMachine.VALID_TRANSITIONS.values():
            assert ConnectionState.IDLE not in targets

    def test_transition_emits_event(self):
        bus = EventBus()
        seen = []
        bus.subscribe(EventType.CONNECTION_STATE_CHANGED, seen.append)
        machine = ConnectionStateMachine(bus)

        machine.transition_to(ConnectionState.CONNECTING, {"endpoint": "ws://x/ws"})

        assert seen[0].data == {
            "from": ConnectionState.IDLE,
            "to": ConnectionState.CONNECTING,
            "data": {"endpoint": "ws://x/ws"},
        }
        assert seen[0].source == "connection"

    def test_rejected_transition_emits_nothing(self):
        bus = EventBus()
        seen = []
        bus.subscribe(EventType.CONNECTION_STATE_CHANGED, seen.append)

        ConnectionStateMachine(bus).transition_to(ConnectionState.OPEN)

        assert seen == []


class TestEventBus:

    def test_handlers_run_in_order(self):
        bus = EventBus()
        calls = []
        bus.subscribe(EventType.CHAT_LINE, lambda e: calls.append("first"))
        bus.subscribe(EventType.CHAT_LINE, lambda e: calls.append("second"))

        bus.emit(EventType.CHAT_LINE, {"text": "hi"})

        assert calls == ["first", "second"]

    def test_handler_subscribed_during_emit_sees_later_events(self):
        bus = EventBus()
        late = []

        def first(event):
            bus.subscribe(EventType.CHAT_LINE, late.append)

        bus.subscribe(EventType.CHAT_LINE, first)

        bus.emit(EventType.CHAT_LINE)
        assert late == []

        bus.emit(EventType.CHAT_LINE)
        assert len(late) == 1

    def test_failing_handler_does_not_stop_others(self):
        bus = EventBus()
        calls = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(EventType.PLAYER_CHANGED, broken)
        bus.subscribe(EventType.PLAYER_CHANGED, calls.append)

        bus.emit(EventType.PLAYER_CHANGED, {"change": "joined"})

        assert calls[0].data == {"change": "joined"}

    @pytest.mark.asyncio
    async def test_async_handler_is_scheduled(self):
        bus = EventBus()
        calls = []

        async def handler(event):
            calls.append(event.type)

        bus.subscribe(EventType.LATENCY_MEASURED, handler)
        bus.emit(EventType.LATENCY_MEASURED, {"rtt_ms": 1.0})
        await asyncio.sleep(0)

        assert calls == [EventType.LATENCY_MEASURED]

    @pytest.mark.asyncio
    async def test_async_handler_task_is_held_until_done(self, caplog):
        bus = EventBus()
        release = asyncio.Event()

        async def handler(event):
            await release.wait()
            raise RuntimeError("boom")

        bus.subscribe(EventType.LATENCY_MEASURED, handler)
        bus.emit(EventType.LATENCY_MEASURED)
        assert len(bus._tasks) == 1

        release.set()
        for _ in range(5):
            await asyncio.sleep(0)

        assert bus._tasks == set()
        assert "Error in async event handler" in caplog.text
