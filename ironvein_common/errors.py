"""Exception types shared by the protocol layer and the client."""


class IronVeinError(Exception):
    """Base exception for all client and protocol failures"""
    pass


class ProtocolError(IronVeinError):
    """Raised when a frame cannot be decoded into a known protocol message"""

    def __init__(self, message: str, frame=None):
        self.frame = frame
        super().__init__(message)
