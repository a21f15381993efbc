"""
Connection state machine.

Tracks the lifecycle of the channel and rejects transitions the session
does not allow.
"""

from enum import Enum, auto
from typing import Dict, List, Optional

from .event_bus import EventBus, EventType


class ConnectionState(Enum):
    """Channel lifecycle states."""
    IDLE = auto()        # Constructed, connect() not called yet
    CONNECTING = auto()  # Waiting for the transport to open
    OPEN = auto()        # Frames flow both ways
    CLOSING = auto()     # disconnect() in progress
    CLOSED = auto()      # Terminal: closed by either side
    ERRORED = auto()     # Transport failed; only disconnect() remains


class ConnectionStateMachine:
    """Manages connection state transitions."""

    # Valid state transitions; nothing leads back to IDLE
    VALID_TRANSITIONS: Dict[ConnectionState, List[ConnectionState]] = {
        ConnectionState.IDLE: [ConnectionState.CONNECTING, ConnectionState.CLOSED],
        ConnectionState.CONNECTING: [
            ConnectionState.OPEN,
            ConnectionState.CLOSING,
            ConnectionState.CLOSED,
            ConnectionState.ERRORED,
        ],
        ConnectionState.OPEN: [ConnectionState.CLOSING, ConnectionState.CLOSED, ConnectionState.ERRORED],
        ConnectionState.CLOSING: [ConnectionState.CLOSED],
        ConnectionState.CLOSED: [],
        ConnectionState.ERRORED: [ConnectionState.CLOSING, ConnectionState.CLOSED],
    }

    def __init__(self, event_bus: Optional[EventBus] = None):
        self._current_state: ConnectionState = ConnectionState.IDLE
        self._previous_state: Optional[ConnectionState] = None
        self._event_bus = event_bus

    @property
    def current_state(self) -> ConnectionState:
        """Get the current state."""
        return self._current_state

    @property
    def previous_state(self) -> Optional[ConnectionState]:
        """Get the previous state."""
        return self._previous_state

    @property
    def is_open(self) -> bool:
        return self._current_state == ConnectionState.OPEN

    @property
    def is_terminal(self) -> bool:
        """True once the session can no longer be used for a connection."""
        return self._current_state in {ConnectionState.CLOSED, ConnectionState.ERRORED}

    def can_transition_to(self, state: ConnectionState) -> bool:
        """Check if transition to given state is valid."""
        return state in self.VALID_TRANSITIONS.get(self._current_state, [])

    def transition_to(self, state: ConnectionState, data: Optional[dict] = None) -> bool:
        """
        Transition to a new state.

        Args:
            state: The state to transition to
            data: Optional details forwarded to listeners (close code, error)

        Returns:
            True if transition was successful, False otherwise
        """
        if not self.can_transition_to(state):
            return False

        self._previous_state = self._current_state
        self._current_state = state

        if self._event_bus is not None:
            self._event_bus.emit(
                EventType.CONNECTION_STATE_CHANGED,
                {
                    "from": self._previous_state,
                    "to": state,
                    "data": data or {},
                },
                "connection"
            )

        return True
