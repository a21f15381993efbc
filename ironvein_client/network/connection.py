"""
WebSocket connection management.

Handles the channel lifecycle, join-on-open, and frame send/receive.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ironvein_common.codec import Frame, MessageCodec
from ironvein_common.constants import ABNORMAL_CLOSE_CODE
from ironvein_common.protocol import JoinCommand, ProtocolModel

from ..config import JoinMode
from ..core.event_bus import EventBus, EventType
from ..core.state_machine import ConnectionState, ConnectionStateMachine
from ..errors import InvalidState, NotConnected, TransportError
from ..game.world_state import RoomIdentity
from ..logging_config import get_logger, log_with_context

logger = get_logger(__name__)

Connector = Callable[[str], Awaitable[Any]]
FrameHandler = Callable[[Frame], None]

NORMAL_CLOSE_CODE = 1000
CLIENT_CLOSE_REASON = "client disconnect"

# Failures raised by the transport while opening, reading or writing
TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


def close_details(exc: ConnectionClosed) -> Tuple[int, str]:
    """Close code and reason of a closed channel, preferring what the server sent."""
    frame = exc.rcvd or exc.sent
    if frame is None:
        return ABNORMAL_CLOSE_CODE, ""
    return frame.code, frame.reason


class ConnectionManager:
    """
    Owns the channel to the game server.

    State changes are published on the event bus as
    CONNECTION_STATE_CHANGED. Inbound frames go to the frame handler set
    with ``set_frame_handler``; the handler runs on the receive task, one
    frame at a time, in arrival order.
    """

    def __init__(
        self,
        codec: MessageCodec,
        event_bus: EventBus,
        join_mode: Union[JoinMode, str] = JoinMode.AUTO,
        connector: Optional[Connector] = None,
    ):
        self._codec = codec
        self._event_bus = event_bus
        self._state = ConnectionStateMachine(event_bus)
        self._join_mode = JoinMode(join_mode)
        self._connector: Connector = connector or websockets.connect
        self._websocket: Optional[Any] = None
        self._identity: Optional[RoomIdentity] = None
        self._endpoint: Optional[str] = None
        self._frame_handler: Optional[FrameHandler] = None
        self._open_task: Optional[asyncio.Future] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._closed = asyncio.Event()
        self._finished = asyncio.Event()
        self._close_code: Optional[int] = None
        self._close_reason: str = ""
        self._last_error: Optional[BaseException] = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state.current_state

    @property
    def is_open(self) -> bool:
        return self._state.is_open and self._websocket is not None

    @property
    def identity(self) -> Optional[RoomIdentity]:
        return self._identity

    @property
    def join_mode(self) -> JoinMode:
        return self._join_mode

    @property
    def close_code(self) -> Optional[int]:
        return self._close_code

    @property
    def close_reason(self) -> str:
        return self._close_reason

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    def set_frame_handler(self, handler: Optional[FrameHandler]) -> None:
        """Route inbound frames to a handler (replaces any previous one)."""
        self._frame_handler = handler

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def connect(self, identity: RoomIdentity, endpoint: str) -> None:
        """
        Open the channel and, in auto join mode, send Join.

        Raises:
            InvalidState: if this manager was already used, or the identity or
                endpoint is missing.
            TransportError: if the channel could not be opened; the state is
                ERRORED by then.
        """
        if self._state.is_terminal:
            raise InvalidState(f"Connection is {self.state.name}; create a new session to reconnect")
        if self.state != ConnectionState.IDLE:
            raise InvalidState(f"Cannot connect while {self.state.name}")
        if identity is None or not identity.is_complete:
            raise InvalidState("A username and room are required to connect")
        if not endpoint:
            raise InvalidState("No server endpoint resolved")

        self._identity = identity
        self._endpoint = endpoint
        self._state.transition_to(ConnectionState.CONNECTING, {"endpoint": endpoint})
        logger.info(f"Connecting to {endpoint} as {identity.username} (room {identity.room})")

        self._open_task = asyncio.ensure_future(self._connector(endpoint))
        try:
            websocket = await self._open_task
        except asyncio.CancelledError:
            if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                logger.info("Connection attempt cancelled by disconnect")
                return
            # The caller itself was cancelled
            self._state.transition_to(ConnectionState.CLOSED, {"code": ABNORMAL_CLOSE_CODE, "reason": "cancelled"})
            self._closed.set()
            self._finished.set()
            raise
        except TRANSPORT_ERRORS as e:
            self._on_error(e)
            raise TransportError(f"Could not connect to {endpoint}: {e}") from e
        finally:
            self._open_task = None

        if self.state != ConnectionState.CONNECTING:
            # disconnect() won the race against the open
            await self._close_websocket(websocket)
            return

        await self._on_open(websocket)

    async def join_battle(self) -> bool:
        """
        Send Join for the current identity.

        Raises:
            NotConnected: unless the channel is open.
        """
        if not self.is_open or self._identity is None:
            raise NotConnected(f"Cannot join: connection is {self.state.name}")

        sent = await self.send(JoinCommand(username=self._identity.username, room=self._identity.room))
        if sent:
            logger.info(f"Joined room {self._identity.room} as {self._identity.username}")
            self._event_bus.emit(
                EventType.JOIN_SENT,
                {"username": self._identity.username, "room": self._identity.room},
                "connection"
            )
        return sent

    async def disconnect(self) -> None:
        """
        Close the channel. Safe to call from any state and more than once;
        always ends in CLOSED.
        """
        state = self.state
        if state == ConnectionState.CLOSED:
            logger.debug("Disconnect requested but already closed")
            return
        if state == ConnectionState.CLOSING:
            await self._closed.wait()
            return

        if state != ConnectionState.IDLE:
            self._state.transition_to(ConnectionState.CLOSING)

        if self._open_task is not None and not self._open_task.done():
            self._open_task.cancel()

        await self._stop_receiver()

        websocket, self._websocket = self._websocket, None
        if websocket is not None:
            await self._close_websocket(websocket)

        self._close_code = NORMAL_CLOSE_CODE
        self._close_reason = CLIENT_CLOSE_REASON
        self._state.transition_to(
            ConnectionState.CLOSED,
            {"code": NORMAL_CLOSE_CODE, "reason": CLIENT_CLOSE_REASON}
        )
        self._closed.set()
        self._finished.set()
        logger.info("Disconnected from server")

    async def wait_finished(self) -> None:
        """Wait until the channel is closed by either side or fails; both end the session."""
        await self._finished.wait()

    # =========================================================================
    # SENDING
    # =========================================================================

    async def send(self, message: ProtocolModel, critical: bool = True) -> bool:
        """
        Encode and send one message.

        Args:
            message: Outbound protocol message
            critical: User intents are critical and raise when the channel is
                not open; low-priority traffic (probes) is dropped silently.

        Returns:
            True if the frame was written, False if it was dropped or the
            transport failed.

        Raises:
            NotConnected: for critical messages while the channel is not open.
        """
        if not self.is_open:
            if critical:
                raise NotConnected(f"Cannot send {message.type}: connection is {self.state.name}")
            logger.debug(f"Dropping {message.type}: connection is {self.state.name}")
            return False

        frame = self._codec.encode(message)
        try:
            await self._websocket.send(frame)
            return True
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Failed to send {message.type}: {e}")
            return False

    # =========================================================================
    # CHANNEL SIGNALS
    # =========================================================================

    async def _on_open(self, websocket: Any) -> None:
        self._websocket = websocket
        self._state.transition_to(ConnectionState.OPEN, {"endpoint": self._endpoint})
        logger.info(f"Connection open ({self._join_mode.value} join mode)")

        # Start the receiver before joining so no reply is missed
        self._receive_task = asyncio.create_task(self._receive_messages())

        if self._join_mode == JoinMode.AUTO:
            await self.join_battle()

    def _on_frame(self, frame: Frame) -> None:
        if self._frame_handler is None:
            logger.debug("No frame handler registered, dropping frame")
            return
        try:
            self._frame_handler(frame)
        except Exception:
            logger.exception("Error in frame handler")

    def _on_close(self, code: int, reason: str) -> None:
        if self.state not in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            return

        self._close_code = code
        self._close_reason = reason
        self._websocket = None
        log_with_context(logger, logging.WARNING, "Connection closed by server", code=code, reason=reason or "-")

        self._state.transition_to(ConnectionState.CLOSED, {"code": code, "reason": reason})
        self._closed.set()
        self._finished.set()
        self._event_bus.emit(EventType.CONNECTION_CLOSED, {"code": code, "reason": reason}, "connection")

    def _on_error(self, error: BaseException) -> None:
        if self.state not in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            return

        self._last_error = error
        logger.error(f"Connection error: {error}")

        self._state.transition_to(ConnectionState.ERRORED, {"error": str(error)})
        self._finished.set()
        self._event_bus.emit(EventType.CONNECTION_ERROR, {"error": str(error)}, "connection")

    async def _receive_messages(self) -> None:
        """Background task to receive frames and hand them over in order."""
        websocket = self._websocket
        logger.debug("Message receiver started")

        try:
            while True:
                frame = await websocket.recv()
                self._on_frame(frame)
        except ConnectionClosed as e:
            self._on_close(*close_details(e))
        except asyncio.CancelledError:
            logger.debug("Message receiver cancelled")
            raise
        except TRANSPORT_ERRORS as e:
            self._on_error(e)

    async def _stop_receiver(self) -> None:
        task, self._receive_task = self._receive_task, None
        if task is None or task.done():
            return

        task.cancel()
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _close_websocket(self, websocket: Any) -> None:
        try:
            await websocket.close()
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Error closing websocket: {e}")
