"""
Chat support for the IronVein client.

Tracks chat lines that were sent but not yet echoed by the server.
"""

from .pending import PendingEntry, PendingOutboundIndex

__all__ = ["PendingEntry", "PendingOutboundIndex"]
