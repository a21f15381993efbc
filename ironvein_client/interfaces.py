"""
Collaborators the session core talks to.

The presentation layer implements these and passes them to GameSession;
the core never looks them up on its own.
"""

from typing import Any, Protocol

from ironvein_common.protocol import ChatMessageEvent

from .game.world_state import WorldSnapshot


class Renderer(Protocol):
    """Draws the grid and its players."""

    def draw_frame(self, snapshot: WorldSnapshot) -> None:
        ...


class ChatPanel(Protocol):
    """Displays chat lines, including provisional lines for messages still in flight."""

    def append_line(self, text: str) -> None:
        ...

    def add_pending_placeholder(self, text: str) -> Any:
        ...

    def retire_placeholder(self, handle: Any) -> None:
        ...


def format_chat_line(message: ChatMessageEvent) -> str:
    return f"{message.username}: {message.text}"
