"""Network layer for WebSocket communication."""

from .connection import ConnectionManager
from .endpoint import EndpointResolver
from .handlers import MessageDispatcher
from .heartbeat import HeartbeatMonitor
from .message_sender import MessageSender

__all__ = [
    "ConnectionManager",
    "EndpointResolver",
    "MessageDispatcher",
    "HeartbeatMonitor",
    "MessageSender",
]
