"""
Message handlers for server-to-client events.

Each handler processes a specific message type and updates world or chat state.
"""

from collections import deque
from typing import Any, Callable, Deque, Dict, Optional

from ironvein_common.codec import Frame, MessageCodec
from ironvein_common.constants import CHAT_HISTORY_LIMIT
from ironvein_common.errors import ProtocolError
from ironvein_common.protocol import (
    COMMAND_TYPES,
    ChatMessageEvent,
    ErrorEvent,
    GameStateEvent,
    MessageType,
    PlayerJoinedEvent,
    PlayerLeftEvent,
    PlayerUpdateEvent,
    ProtocolModel,
    is_probe_text,
    message_type_of,
)

from .heartbeat import HeartbeatMonitor
from ..chat.pending import PendingOutboundIndex
from ..core.event_bus import EventBus, EventType
from ..game.world_state import Player, WorldState
from ..interfaces import ChatPanel, format_chat_line
from ..logging_config import get_logger

logger = get_logger(__name__)


class MessageDispatcher:
    """Decodes inbound frames and routes each message to its handler."""

    def __init__(
        self,
        codec: MessageCodec,
        world: WorldState,
        pending: PendingOutboundIndex,
        event_bus: EventBus,
        heartbeat: Optional[HeartbeatMonitor] = None,
        chat_panel: Optional[ChatPanel] = None,
        history_limit: int = CHAT_HISTORY_LIMIT,
    ):
        self.codec = codec
        self.world = world
        self.pending = pending
        self.event_bus = event_bus
        self.heartbeat = heartbeat
        self.chat_panel = chat_panel
        self.chat_history: Deque[ChatMessageEvent] = deque(maxlen=history_limit)

        self._handlers: Dict[MessageType, Callable[[Any], None]] = {
            MessageType.CHAT_MESSAGE: self.handle_chat_message,
            MessageType.PLAYER_JOINED: self.handle_player_joined,
            MessageType.PLAYER_UPDATE: self.handle_player_update,
            MessageType.PLAYER_LEFT: self.handle_player_left,
            MessageType.GAME_STATE: self.handle_game_state,
            MessageType.ERROR: self.handle_error,
        }

    def dispatch_frame(self, frame: Frame) -> Optional[ProtocolModel]:
        """Decode and dispatch one frame. Malformed frames are logged and dropped."""
        try:
            message = self.codec.decode(frame)
        except ProtocolError as e:
            logger.warning(f"Dropping frame: {e}")
            self.event_bus.emit(EventType.PROTOCOL_ERROR, {"error": str(e)}, "dispatcher")
            return None

        self.dispatch(message)
        return message

    def dispatch(self, message: ProtocolModel) -> None:
        msg_type = message_type_of(message)
        if msg_type in COMMAND_TYPES:
            logger.warning(f"Ignoring client-to-server message received from server: {msg_type.value}")
            return
        handler = self._handlers.get(msg_type)
        if handler is None:
            logger.warning(f"No handler for message type: {msg_type.value}")
            return
        handler(message)

    # =================================================================
    # PLAYER EVENTS
    # =================================================================

    def handle_player_joined(self, message: PlayerJoinedEvent) -> None:
        logger.info(f"Player joined: {message.username} at ({message.x}, {message.y})")
        player = self.world.apply_player_joined(message.username, message.x, message.y)
        self._player_changed("joined", player)

    def handle_player_update(self, message: PlayerUpdateEvent) -> None:
        player = self.world.apply_player_update(
            message.username, message.x, message.y, message.health, message.resources
        )
        self._player_changed("updated", player)

    def handle_player_left(self, message: PlayerLeftEvent) -> None:
        logger.info(f"Player left: {message.username}")
        player = self.world.apply_player_left(message.username)
        if player is None:
            logger.debug(f"Player {message.username} was not in the room")
            return
        self._player_changed("left", player)

    def handle_game_state(self, message: GameStateEvent) -> None:
        self.world.apply_game_state(message.players)
        logger.info(f"Game state received: {len(self.world)} player(s)")
        self.event_bus.emit(
            EventType.PLAYER_CHANGED,
            {"change": "snapshot", "usernames": sorted(p.username for p in self.world.players())},
            "dispatcher"
        )

    def _player_changed(self, change: str, player: Player) -> None:
        self.event_bus.emit(
            EventType.PLAYER_CHANGED,
            {
                "change": change,
                "username": player.username,
                "position": player.position,
                "is_self": player.username == self.world.self_username,
            },
            "dispatcher"
        )

    # =================================================================
    # CHAT AND ERRORS
    # =================================================================

    def handle_chat_message(self, message: ChatMessageEvent) -> None:
        """
        Route a chat echo.

        The local user's probe echo goes to the heartbeat. Any other line
        retires the matching pending placeholder first, then is shown as
        the authoritative line.
        """
        if message.username == self.world.self_username and is_probe_text(message.text):
            if self.heartbeat is not None:
                self.heartbeat.record_echo()
            return

        placeholder = self.pending.retire(message.text)
        replaced = placeholder is not None
        if replaced:
            self.retire_placeholder(placeholder)

        self.chat_history.append(message)
        self.show_line(format_chat_line(message))

        self.event_bus.emit(
            EventType.CHAT_LINE,
            {
                "id": message.id,
                "username": message.username,
                "text": message.text,
                "timestamp": message.timestamp,
                "room": message.room,
                "replaced_placeholder": replaced,
            },
            "dispatcher"
        )

    def handle_error(self, message: ErrorEvent) -> None:
        logger.error(f"Server error: {message.text}")
        self.show_line(f"Error: {message.text}")
        self.event_bus.emit(EventType.ERROR_RECEIVED, {"error": message.text}, "dispatcher")

    def expire_pending(self) -> int:
        """Retire placeholders whose echo never arrived. Returns how many were dropped."""
        expired = self.pending.evict_expired()
        for placeholder in expired:
            self.retire_placeholder(placeholder)
        if expired:
            self.event_bus.emit(EventType.CHAT_EXPIRED, {"count": len(expired)}, "dispatcher")
        return len(expired)

    def show_line(self, line: str) -> None:
        if self.chat_panel is None:
            return
        try:
            self.chat_panel.append_line(line)
        except Exception:
            logger.exception("Chat panel failed to append a line")

    def retire_placeholder(self, placeholder: Any) -> None:
        if self.chat_panel is None:
            return
        try:
            self.chat_panel.retire_placeholder(placeholder)
        except Exception:
            logger.exception("Chat panel failed to retire a placeholder")
