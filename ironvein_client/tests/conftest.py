"""
Shared fixtures for client tests.

Provides an in-memory WebSocket, recording collaborators and a manual clock
so no test needs a running server.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest
from websockets.exceptions import ConnectionClosed
from websockets.frames import Close

from ironvein_client.config import ClientConfig, JoinMode
from ironvein_client.game.world_state import RoomIdentity


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self):
        self.sent: List[Any] = []
        self.close_calls = 0
        self.fail_sends = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, frame: Any) -> None:
        if self.fail_sends:
            raise OSError("broken pipe")
        self.sent.append(frame)

    async def recv(self) -> Any:
        item = await self._incoming.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.close_calls += 1

    # Test helpers

    def push(self, frame: Any) -> None:
        """Queue a frame as if the server had sent it."""
        self._incoming.put_nowait(frame)

    def push_json(self, data: Dict[str, Any]) -> None:
        self.push(json.dumps(data))

    def server_close(self, code: int = 1000, reason: str = "") -> None:
        self._incoming.put_nowait(ConnectionClosed(Close(code, reason), None))

    def fail(self, error: BaseException) -> None:
        self._incoming.put_nowait(error)

    def sent_json(self) -> List[Dict[str, Any]]:
        return [json.loads(frame) for frame in self.sent]


class FakeConnector:
    """Connector returning a FakeWebSocket; records the endpoint it was asked for."""

    def __init__(self, websocket: FakeWebSocket):
        self.websocket = websocket
        self.endpoints: List[str] = []
        self.error: Optional[BaseException] = None
        self.gate: Optional[asyncio.Event] = None

    async def __call__(self, endpoint: str) -> FakeWebSocket:
        self.endpoints.append(endpoint)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.websocket


class RecordingChatPanel:
    """Chat panel that remembers every call."""

    def __init__(self):
        self.lines: List[str] = []
        self.placeholders: List[str] = []
        self.retired: List[str] = []

    def append_line(self, text: str) -> None:
        self.lines.append(text)

    def add_pending_placeholder(self, text: str) -> str:
        handle = f"pending-{len(self.placeholders) + 1}"
        self.placeholders.append(handle)
        return handle

    def retire_placeholder(self, handle: str) -> None:
        self.retired.append(handle)


class RecordingRenderer:
    def __init__(self):
        self.frames = []

    def draw_frame(self, snapshot) -> None:
        self.frames.append(snapshot)


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def _settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Awaitable that lets background tasks (the receiver) process queued frames."""
    return _settle


@pytest.fixture
def websocket() -> FakeWebSocket:
    return FakeWebSocket()


@pytest.fixture
def connector(websocket: FakeWebSocket) -> FakeConnector:
    return FakeConnector(websocket)


@pytest.fixture
def chat_panel() -> RecordingChatPanel:
    return RecordingChatPanel()


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def identity() -> RoomIdentity:
    return RoomIdentity(username="alice", room="r1")


@pytest.fixture
def config() -> ClientConfig:
    """Auto-join config with the background heartbeat loop switched off."""
    config = ClientConfig()
    config.heartbeat.enabled = False
    return config


@pytest.fixture
def lobby_config(config: ClientConfig) -> ClientConfig:
    config.session.join_mode = JoinMode.LOBBY
    return config
