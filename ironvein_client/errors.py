"""
Client exception taxonomy.

ProtocolError lives with the codec in ironvein_common and is re-exported here
so callers can catch every client failure from one module.
"""

from ironvein_common.errors import IronVeinError, ProtocolError


class ClientError(IronVeinError):
    """Base exception for session-level failures"""
    pass


class NotConnected(ClientError):
    """Raised when a user intent is attempted while the channel is not open"""
    pass


class TransportError(ClientError):
    """Raised when the underlying channel or HTTP request fails"""
    pass


class InvalidState(ClientError):
    """Raised on API misuse, such as connecting twice or reusing a closed session"""
    pass


__all__ = [
    "IronVeinError",
    "ProtocolError",
    "ClientError",
    "NotConnected",
    "TransportError",
    "InvalidState",
]
