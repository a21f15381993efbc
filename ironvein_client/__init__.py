"""IronVein client: session core of the multiplayer grid game and chat."""

from .config import ClientConfig, JoinMode, get_config
from .core import ConnectionState, EventBus, EventType, Event
from .errors import (
    ClientError,
    InvalidState,
    IronVeinError,
    NotConnected,
    ProtocolError,
    TransportError,
)
from .game import Player, RoomIdentity, WorldSnapshot, WorldState
from .interfaces import ChatPanel, Renderer
from .session import GameSession

__all__ = [
    "ClientConfig",
    "JoinMode",
    "get_config",
    "ConnectionState",
    "EventBus",
    "EventType",
    "Event",
    "ClientError",
    "InvalidState",
    "IronVeinError",
    "NotConnected",
    "ProtocolError",
    "TransportError",
    "Player",
    "RoomIdentity",
    "WorldSnapshot",
    "WorldState",
    "ChatPanel",
    "Renderer",
    "GameSession",
]

__version__ = "1.0.0"
