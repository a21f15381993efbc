"""Game state held by the client."""

from .world_state import Player, RoomIdentity, WorldSnapshot, WorldState

__all__ = [
    "Player",
    "RoomIdentity",
    "WorldSnapshot",
    "WorldState",
]
