"""
Client-side world state.

Holds the players of the current room as reported by the server, merged
with optimistic edits made by the local player.
"""

from dataclasses import dataclass, replace
from typing import Dict, Iterable, Optional, Tuple

from ironvein_common.constants import (
    DEFAULT_HEALTH,
    DEFAULT_RESOURCES,
    DEFAULT_SPAWN_X,
    DEFAULT_SPAWN_Y,
    GRID_SIZE,
)
from ironvein_common.protocol import PlayerRecord


@dataclass(frozen=True)
class RoomIdentity:
    """Who the local player is and which room they play in."""
    username: str
    room: str

    @property
    def is_complete(self) -> bool:
        return bool(self.username.strip()) and bool(self.room.strip())


@dataclass
class Player:
    """A player in the current room."""
    username: str
    x: int
    y: int
    health: int = DEFAULT_HEALTH
    resources: int = DEFAULT_RESOURCES
    room: str = ""

    @property
    def position(self) -> Tuple[int, int]:
        return (self.x, self.y)


@dataclass(frozen=True)
class WorldSnapshot:
    """Read-only copy of the table handed to the presentation layer."""
    players: Tuple[Player, ...]
    self_username: Optional[str]

    def get(self, username: str) -> Optional[Player]:
        for player in self.players:
            if player.username == username:
                return player
        return None

    @property
    def self_player(self) -> Optional[Player]:
        if self.self_username is None:
            return None
        return self.get(self.self_username)

    def __len__(self) -> int:
        return len(self.players)


def in_grid(x: int, y: int) -> bool:
    return 0 <= x < GRID_SIZE and 0 <= y < GRID_SIZE


class WorldState:
    """
    Authoritative-plus-optimistic table of players, keyed by username.

    The local player's entry is also reachable through ``self_player``; it is
    the same object as the table entry, never a copy. Ordering is
    last-write-wins by arrival: the protocol carries no version token.
    """

    def __init__(self, identity: Optional[RoomIdentity] = None):
        self.identity = identity
        self._players: Dict[str, Player] = {}
        self._self_player: Optional[Player] = None

    # =========================================================================
    # QUERIES
    # =========================================================================

    @property
    def self_username(self) -> Optional[str]:
        return self.identity.username if self.identity else None

    @property
    def self_player(self) -> Optional[Player]:
        return self._self_player

    @property
    def room(self) -> str:
        return self.identity.room if self.identity else ""

    def get(self, username: str) -> Optional[Player]:
        return self._players.get(username)

    def players(self) -> Iterable[Player]:
        return self._players.values()

    def snapshot(self) -> WorldSnapshot:
        """Copy of every player, sorted by username."""
        players = tuple(
            replace(self._players[name]) for name in sorted(self._players)
        )
        return WorldSnapshot(players=players, self_username=self.self_username)

    def __len__(self) -> int:
        return len(self._players)

    def __contains__(self, username: object) -> bool:
        return username in self._players

    # =========================================================================
    # SERVER UPDATES
    # =========================================================================

    def apply_player_joined(self, username: str, x: int, y: int) -> Player:
        """Insert a player with default stats, or move an existing one."""
        player = self._players.get(username)
        if player is None:
            player = Player(username=username, x=x, y=y, room=self.room)
            self._insert(player)
        else:
            player.x = x
            player.y = y
        return player

    def apply_player_update(self, username: str, x: int, y: int, health: int, resources: int) -> Player:
        """Overwrite the full record for a player, creating it if needed."""
        player = self._players.get(username)
        if player is None:
            player = Player(username=username, x=x, y=y, health=health, resources=resources, room=self.room)
            self._insert(player)
        else:
            player.x = x
            player.y = y
            player.health = health
            player.resources = resources
        return player

    def apply_player_left(self, username: str) -> Optional[Player]:
        """Remove a player; returns the removed entry, or None if it was unknown."""
        player = self._players.pop(username, None)
        if player is not None and player is self._self_player:
            self._self_player = None
        return player

    def apply_game_state(self, players: Iterable[PlayerRecord]) -> None:
        """Replace the whole table with a server snapshot."""
        self._players.clear()
        self._self_player = None
        for record in players:
            self._insert(Player(
                username=record.username,
                x=record.x,
                y=record.y,
                health=record.health,
                resources=record.resources,
                room=record.room or self.room,
            ))

    # =========================================================================
    # LOCAL (OPTIMISTIC) UPDATES
    # =========================================================================

    def apply_local_join(self) -> Optional[Player]:
        """Create the local player at the spawn point if the server has not placed it yet."""
        if self.identity is None:
            return None
        existing = self._players.get(self.identity.username)
        if existing is not None:
            return existing
        player = Player(
            username=self.identity.username,
            x=DEFAULT_SPAWN_X,
            y=DEFAULT_SPAWN_Y,
            room=self.identity.room,
        )
        self._insert(player)
        return player

    def apply_optimistic_move(self, x: int, y: int) -> Optional[Player]:
        """
        Move the local player before the server confirms.

        A later player_update for the same username overwrites this value;
        there is no rollback. Returns None when the local player is not in
        the table yet.
        """
        if not in_grid(x, y):
            raise ValueError(f"Position ({x}, {y}) is outside the {GRID_SIZE}x{GRID_SIZE} grid")
        player = self._self_player
        if player is None:
            return None
        player.x = x
        player.y = y
        return player

    def _insert(self, player: Player) -> None:
        self._players[player.username] = player
        if player.username == self.self_username:
            self._self_player = player
