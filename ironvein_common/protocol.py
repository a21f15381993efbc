"""
Shared protocol definitions.
Using Pydantic models for structure and validation.

Every frame is one self-contained object tagged by its ``type`` field:

- join:          { type, username, room }                              client -> server
- move:          { type, username, x, y, room }                        client -> server
- message:       { type, username, message, room }                     client -> server
- chat_message:  { type, id, username, message, timestamp, room }      server -> client
- player_joined: { type, username, x, y }                              server -> client
- player_update: { type, username, x, y, health, resources }           server -> client
- player_left:   { type, username }                                    server -> client
- game_state:    { type, players: [{username, x, y, room, health, resources}, ...] }
- error:         { type, message }                                     server -> client

The ``message`` tag doubles as the latency probe when its body is PROBE_BODY.
"""

from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_HEALTH, DEFAULT_RESOURCES, GRID_SIZE, PROBE_BODY


class MessageType(str, Enum):
    # Client to Server
    JOIN = "join"
    MOVE = "move"
    MESSAGE = "message"

    # Server to Client
    CHAT_MESSAGE = "chat_message"
    PLAYER_JOINED = "player_joined"
    PLAYER_UPDATE = "player_update"
    PLAYER_LEFT = "player_left"
    GAME_STATE = "game_state"
    ERROR = "error"


Coordinate = Annotated[int, Field(ge=0, lt=GRID_SIZE)]
NonNegative = Annotated[int, Field(ge=0)]


class ProtocolModel(BaseModel):
    """Base for every frame: strict types, immutable, wire names via aliases."""
    model_config = ConfigDict(strict=True, frozen=True, populate_by_name=True)


# --- Client to Server ---


class JoinCommand(ProtocolModel):
    type: Literal["join"] = "join"
    username: str
    room: str


class MoveCommand(ProtocolModel):
    type: Literal["move"] = "move"
    username: str
    x: Coordinate
    y: Coordinate
    room: str


class SendMessageCommand(ProtocolModel):
    """Chat line or latency probe; the body travels under the ``message`` key."""
    type: Literal["message"] = "message"
    username: str
    text: str = Field(alias="message")
    room: str


# --- Server to Client ---


class PlayerRecord(ProtocolModel):
    """One entry of a game_state snapshot."""
    username: str
    x: Coordinate
    y: Coordinate
    room: Optional[str] = None
    health: NonNegative = DEFAULT_HEALTH
    resources: NonNegative = DEFAULT_RESOURCES


class ChatMessageEvent(ProtocolModel):
    type: Literal["chat_message"] = "chat_message"
    id: Union[str, int]
    username: str
    text: str = Field(alias="message")
    timestamp: Optional[Union[int, float, str]] = None
    room: Optional[str] = None


class PlayerJoinedEvent(ProtocolModel):
    type: Literal["player_joined"] = "player_joined"
    username: str
    x: Coordinate
    y: Coordinate


class PlayerUpdateEvent(ProtocolModel):
    type: Literal["player_update"] = "player_update"
    username: str
    x: Coordinate
    y: Coordinate
    health: NonNegative
    resources: NonNegative


class PlayerLeftEvent(ProtocolModel):
    type: Literal["player_left"] = "player_left"
    username: str


class GameStateEvent(ProtocolModel):
    type: Literal["game_state"] = "game_state"
    players: List[PlayerRecord]


class ErrorEvent(ProtocolModel):
    type: Literal["error"] = "error"
    text: str = Field(alias="message")


# Tag -> model, the closed set the codec accepts
MESSAGE_MODELS: Dict[str, Type[ProtocolModel]] = {
    MessageType.JOIN.value: JoinCommand,
    MessageType.MOVE.value: MoveCommand,
    MessageType.MESSAGE.value: SendMessageCommand,
    MessageType.CHAT_MESSAGE.value: ChatMessageEvent,
    MessageType.PLAYER_JOINED.value: PlayerJoinedEvent,
    MessageType.PLAYER_UPDATE.value: PlayerUpdateEvent,
    MessageType.PLAYER_LEFT.value: PlayerLeftEvent,
    MessageType.GAME_STATE.value: GameStateEvent,
    MessageType.ERROR.value: ErrorEvent,
}

COMMAND_TYPES = {MessageType.JOIN, MessageType.MOVE, MessageType.MESSAGE}


def normalize_text(text: str) -> str:
    """Fingerprint used to match a chat echo with what was sent."""
    return text.strip().lower()


def is_probe_text(text: str) -> bool:
    return normalize_text(text) == PROBE_BODY


def message_type_of(message: ProtocolModel) -> MessageType:
    return MessageType(message.type)
