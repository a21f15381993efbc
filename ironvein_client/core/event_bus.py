"""
Core event bus for internal client communication.

Provides a pub/sub system for decoupled component communication. Each
session owns its own bus; presentation code subscribes to it instead of
being looked up by the core.
"""

from typing import Callable, Dict, List, Any, Optional, Set
from enum import Enum, auto
import asyncio
from dataclasses import dataclass, field

from ..logging_config import get_logger

logger = get_logger(__name__)


class EventType(Enum):
    """Internal client event types."""
    # Connection events
    CONNECTION_STATE_CHANGED = auto()
    CONNECTION_ERROR = auto()
    CONNECTION_CLOSED = auto()
    JOIN_SENT = auto()

    # World events
    PLAYER_CHANGED = auto()

    # Chat events
    CHAT_LINE = auto()
    CHAT_SENT = auto()
    CHAT_EXPIRED = auto()

    # Heartbeat events
    LATENCY_MEASURED = auto()

    # Error events
    ERROR_RECEIVED = auto()
    PROTOCOL_ERROR = auto()


@dataclass
class Event:
    """Event data structure."""
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    source: Optional[str] = None


class EventBus:
    """
    Pub/sub hub owned by one session.

    Handlers run in the order they subscribed.
    """

    def __init__(self):
        self._handlers: Dict[EventType, List[Callable[[Event], Any]]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, event_type: EventType, handler: Callable[[Event], Any]) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def emit(self, event_type: EventType, data: Optional[Dict[str, Any]] = None, source: Optional[str] = None) -> None:
        """
        Deliver an event to every subscriber.

        Async handlers are scheduled as tasks on the running loop. A failing
        handler is logged and does not stop the others. Handlers subscribed
        while the event is being delivered only see later events.
        """
        handlers = self._handlers.get(event_type)
        if not handlers:
            return

        event = Event(type=event_type, data=data or {}, source=source)
        for handler in list(handlers):
            self._invoke(handler, event)

    def _invoke(self, handler: Callable, event: Event) -> None:
        try:
            if asyncio.iscoroutinefunction(handler):
                try:
                    loop = asyncio.get_running_loop()
                except RuntimeError:
                    logger.warning(f"Async handler {handler} registered but no event loop running")
                    return
                task = loop.create_task(handler(event))
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)
            else:
                handler(event)
        except Exception:
            logger.exception(f"Error in event handler for {event.type.name}")

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Error in async event handler", exc_info=task.exception())
