"""
Message sender for client-to-server communication.

Provides type-safe methods for every outbound command.
"""

from ironvein_common.constants import PROBE_BODY
from ironvein_common.protocol import JoinCommand, MoveCommand, SendMessageCommand

from .connection import ConnectionManager
from ..errors import NotConnected
from ..logging_config import get_logger

logger = get_logger(__name__)


class MessageSender:
    """Builds outbound messages for the connection's identity and sends them."""

    def __init__(self, connection: ConnectionManager):
        self.connection = connection

    def _require_identity(self):
        identity = self.connection.identity
        if identity is None:
            raise NotConnected("No identity: connect() has not been called")
        return identity

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def join(self) -> bool:
        """Send Join for the connected identity."""
        return await self.connection.join_battle()

    async def move(self, x: int, y: int) -> bool:
        """Send move command."""
        identity = self._require_identity()
        return await self.connection.send(
            MoveCommand(username=identity.username, x=x, y=y, room=identity.room)
        )

    async def chat(self, text: str) -> bool:
        """Send chat message."""
        identity = self._require_identity()
        return await self.connection.send(
            SendMessageCommand(username=identity.username, text=text, room=identity.room)
        )

    async def probe(self) -> bool:
        """Send a latency probe. Never raises; returns False when it could not be sent."""
        identity = self.connection.identity
        if identity is None:
            return False
        return await self.connection.send(
            SendMessageCommand(username=identity.username, text=PROBE_BODY, room=identity.room),
            critical=False
        )
