"""
Game session.

Composition root of the client core: wires the connection, codec, world
state, chat reconciliation and heartbeat together around injected
presentation collaborators, and exposes the player's intents.
"""

import time
from typing import Callable, Optional, Tuple

from ironvein_common.codec import MessageCodec
from ironvein_common.constants import GRID_SIZE
from ironvein_common.protocol import ChatMessageEvent

from .chat.pending import PendingOutboundIndex
from .config import ClientConfig, get_config
from .core.event_bus import Event, EventBus, EventType
from .core.state_machine import ConnectionState
from .errors import NotConnected
from .game.world_state import RoomIdentity, WorldSnapshot, WorldState, in_grid
from .interfaces import ChatPanel, Renderer
from .logging_config import get_logger
from .network.connection import ConnectionManager, Connector
from .network.endpoint import EndpointResolver
from .network.handlers import MessageDispatcher
from .network.heartbeat import HeartbeatMonitor
from .network.message_sender import MessageSender

logger = get_logger(__name__)

EventHandler = Callable[[Event], None]


class GameSession:
    """
    One connection attempt to one room.

    A session is not reusable: after it closes or errors, build a new one
    to reconnect.
    """

    def __init__(
        self,
        identity: RoomIdentity,
        renderer: Optional[Renderer] = None,
        chat_panel: Optional[ChatPanel] = None,
        config: Optional[ClientConfig] = None,
        endpoint: Optional[EndpointResolver] = None,
        connector: Optional[Connector] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or get_config()
        self.identity = identity
        self.renderer = renderer
        self.chat_panel = chat_panel
        self.endpoint = endpoint or EndpointResolver.from_config(self.config.server)

        self.event_bus = EventBus()
        self.codec = MessageCodec(self.config.protocol.wire_format)
        self.world = WorldState(identity)
        self.pending = PendingOutboundIndex(
            placeholder_factory=chat_panel.add_pending_placeholder if chat_panel else None,
            timeout=self.config.chat.pending_timeout,
            clock=clock,
        )
        self.connection = ConnectionManager(
            self.codec,
            self.event_bus,
            join_mode=self.config.session.join_mode,
            connector=connector,
        )
        self.sender = MessageSender(self.connection)
        self.heartbeat = HeartbeatMonitor(
            self.sender,
            self.event_bus,
            interval=self.config.heartbeat.interval,
            probe_timeout=self.config.heartbeat.probe_timeout,
            clock=clock,
            on_tick=self._expire_pending,
        )
        self.dispatcher = MessageDispatcher(
            self.codec,
            self.world,
            self.pending,
            self.event_bus,
            heartbeat=self.heartbeat,
            chat_panel=chat_panel,
            history_limit=self.config.chat.history_limit,
        )
        self.connection.set_frame_handler(self.dispatcher.dispatch_frame)

        self.event_bus.subscribe(EventType.CONNECTION_STATE_CHANGED, self._on_state_changed)
        self.event_bus.subscribe(EventType.JOIN_SENT, self._on_join_sent)
        self.event_bus.subscribe(EventType.PLAYER_CHANGED, self._redraw)
        self.event_bus.subscribe(EventType.CONNECTION_ERROR, self._on_connection_error)
        self.event_bus.subscribe(EventType.CONNECTION_CLOSED, self._on_connection_closed)

    async def __aenter__(self) -> "GameSession":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    # =========================================================================
    # READ ACCESS
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    @property
    def latency_ms(self) -> Optional[float]:
        return self.heartbeat.last_rtt_ms

    @property
    def chat_history(self) -> Tuple[ChatMessageEvent, ...]:
        return tuple(self.dispatcher.chat_history)

    def snapshot(self) -> WorldSnapshot:
        return self.world.snapshot()

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    def on_player_changed(self, handler: EventHandler) -> None:
        self.event_bus.subscribe(EventType.PLAYER_CHANGED, handler)

    def on_chat_line(self, handler: EventHandler) -> None:
        self.event_bus.subscribe(EventType.CHAT_LINE, handler)

    def on_connection_state_changed(self, handler: EventHandler) -> None:
        self.event_bus.subscribe(EventType.CONNECTION_STATE_CHANGED, handler)

    def on_latency_measured(self, handler: EventHandler) -> None:
        self.event_bus.subscribe(EventType.LATENCY_MEASURED, handler)

    def on_error(self, handler: EventHandler) -> None:
        """Server errors, connection errors and dropped frames."""
        for event_type in (EventType.ERROR_RECEIVED, EventType.CONNECTION_ERROR, EventType.PROTOCOL_ERROR):
            self.event_bus.subscribe(event_type, handler)

    # =========================================================================
    # INTENTS
    # =========================================================================

    async def connect(self) -> None:
        """Open the channel to the configured server (joins immediately in auto mode)."""
        await self.connection.connect(self.identity, self.endpoint.websocket_url)

    async def join_battle(self) -> bool:
        """Join the room explicitly (lobby mode)."""
        return await self.sender.join()

    async def move(self, x: int, y: int) -> bool:
        """
        Move the local player, showing the new position before the server confirms.

        Raises:
            ValueError: if the target is outside the grid.
            NotConnected: if the channel is not open; nothing changes locally.
        """
        if not in_grid(x, y):
            raise ValueError(f"Position ({x}, {y}) is outside the {GRID_SIZE}x{GRID_SIZE} grid")
        if not self.connection.is_open:
            raise NotConnected(f"Cannot move: connection is {self.state.name}")

        player = self.world.apply_optimistic_move(x, y)
        if player is not None:
            self.event_bus.emit(
                EventType.PLAYER_CHANGED,
                {"change": "moved", "username": player.username, "position": player.position, "is_self": True},
                "session"
            )
        return await self.sender.move(x, y)

    async def send_chat(self, text: str) -> bool:
        """
        Send a chat line and show it as pending until the server echoes it.

        Blank lines are ignored.

        Raises:
            NotConnected: if the channel is not open; nothing is sent or shown.
        """
        if not text.strip():
            return False
        if not self.connection.is_open:
            raise NotConnected(f"Cannot send chat: connection is {self.state.name}")

        self.pending.register(text)
        sent = await self.sender.chat(text)
        if not sent:
            logger.warning("Chat message could not be written; its placeholder stays until it expires")
        self.event_bus.emit(EventType.CHAT_SENT, {"text": text, "sent": sent}, "session")
        return sent

    async def disconnect(self) -> None:
        """Close the session. Idempotent."""
        self.heartbeat.stop()
        await self.connection.disconnect()

    # =========================================================================
    # INTERNAL SUBSCRIBERS
    # =========================================================================

    def _on_state_changed(self, event: Event) -> None:
        state = event.data.get("to")
        if state == ConnectionState.OPEN:
            if self.config.heartbeat.enabled:
                self.heartbeat.start()
        elif state in (ConnectionState.CLOSED, ConnectionState.ERRORED):
            self.heartbeat.stop()
            for placeholder in self.pending.clear():
                self.dispatcher.retire_placeholder(placeholder)

    def _on_join_sent(self, event: Event) -> None:
        player = self.world.apply_local_join()
        if player is not None:
            self.event_bus.emit(
                EventType.PLAYER_CHANGED,
                {"change": "joined", "username": player.username, "position": player.position, "is_self": True},
                "session"
            )

    def _redraw(self, event: Event) -> None:
        if self.renderer is not None:
            self.renderer.draw_frame(self.world.snapshot())

    def _on_connection_error(self, event: Event) -> None:
        self._notify_user(f"Connection error: {event.data.get('error')}. Please reconnect.")

    def _on_connection_closed(self, event: Event) -> None:
        code = event.data.get("code")
        reason = event.data.get("reason") or "no reason given"
        self._notify_user(f"Disconnected from server (code {code}: {reason}). Please reconnect.")

    def _notify_user(self, line: str) -> None:
        self.dispatcher.show_line(line)

    def _expire_pending(self) -> None:
        self.dispatcher.expire_pending()
