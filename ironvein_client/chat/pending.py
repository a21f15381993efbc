"""
Outbound chat reconciliation.

Chat lines are shown as provisional placeholders until the server echoes
them back. The protocol has no correlation id for chat, so an echo is paired
with what was sent by its normalized text.
"""

import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

from ironvein_common.constants import PENDING_CHAT_TIMEOUT
from ironvein_common.protocol import normalize_text

from ..logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class PendingEntry:
    """A chat message sent but not yet echoed."""
    normalized_key: str
    placeholder: Any
    sent_at: float

    def is_expired(self, now: float, max_age: float) -> bool:
        return now - self.sent_at > max_age


class PendingOutboundIndex:
    """
    Pending chat messages keyed by normalized text.

    Several sends with the same normalized text queue under one key and are
    retired oldest first.
    """

    def __init__(
        self,
        placeholder_factory: Optional[Callable[[str], Any]] = None,
        timeout: float = PENDING_CHAT_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._placeholder_factory = placeholder_factory
        self.timeout = timeout
        self._clock = clock
        self._entries: Dict[str, Deque[PendingEntry]] = {}

    def register(self, text: str) -> Any:
        """
        Record a sent message and return its placeholder handle.

        The placeholder comes from the factory (normally the chat panel); the
        entry itself serves as the handle when no factory is configured.
        """
        key = normalize_text(text)
        entry = PendingEntry(normalized_key=key, placeholder=None, sent_at=self._clock())
        entry.placeholder = self._placeholder_factory(text) if self._placeholder_factory else entry

        queue = self._entries.setdefault(key, deque())
        if queue:
            logger.debug(f"Pending chat key already in use, queueing: {key!r} ({len(queue) + 1} pending)")
        queue.append(entry)
        return entry.placeholder

    def retire(self, text: str) -> Optional[Any]:
        """Remove and return the oldest placeholder for the text, or None if nothing is pending."""
        key = normalize_text(text)
        queue = self._entries.get(key)
        if not queue:
            return None

        entry = queue.popleft()
        if not queue:
            del self._entries[key]
        return entry.placeholder

    def evict_expired(self, now: Optional[float] = None) -> List[Any]:
        """Drop entries older than the timeout and return their placeholders."""
        now = self._clock() if now is None else now
        evicted: List[Any] = []

        for key in list(self._entries):
            queue = self._entries[key]
            while queue and queue[0].is_expired(now, self.timeout):
                evicted.append(queue.popleft().placeholder)
            if not queue:
                del self._entries[key]

        if evicted:
            logger.info(f"Evicted {len(evicted)} unechoed chat message(s)")
        return evicted

    def clear(self) -> List[Any]:
        """Drop every entry and return the placeholders."""
        placeholders = [entry.placeholder for queue in self._entries.values() for entry in queue]
        self._entries.clear()
        return placeholders

    def __len__(self) -> int:
        return sum(len(queue) for queue in self._entries.values())

    def __contains__(self, text: object) -> bool:
        return isinstance(text, str) and normalize_text(text) in self._entries
