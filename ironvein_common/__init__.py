"""Protocol definitions shared by the IronVein client and its tests."""

from .codec import MessageCodec, WireFormat
from .errors import IronVeinError, ProtocolError
from .protocol import (
    # Core message structure
    MessageType,
    ProtocolModel,
    MESSAGE_MODELS,
    COMMAND_TYPES,
    # Commands
    JoinCommand,
    MoveCommand,
    SendMessageCommand,
    # Events
    ChatMessageEvent,
    PlayerJoinedEvent,
    PlayerUpdateEvent,
    PlayerLeftEvent,
    GameStateEvent,
    ErrorEvent,
    PlayerRecord,
    # Helpers
    normalize_text,
    is_probe_text,
    message_type_of,
)

from .constants import (
    GRID_SIZE,
    DEFAULT_HEALTH,
    DEFAULT_RESOURCES,
    PROBE_BODY,
    HEARTBEAT_INTERVAL,
    PROBE_TIMEOUT,
    PENDING_CHAT_TIMEOUT,
    CHAT_HISTORY_LIMIT,
    DEFAULT_SERVER_URL,
)

__version__ = "1.0.0"
