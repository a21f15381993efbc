"""Core systems for the IronVein client."""

from .event_bus import EventBus, EventType, Event
from .state_machine import ConnectionStateMachine, ConnectionState

__all__ = [
    "EventBus",
    "EventType",
    "Event",
    "ConnectionStateMachine",
    "ConnectionState",
]
