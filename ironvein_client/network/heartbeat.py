"""
Latency probes.

A probe is an ordinary chat message with the reserved body PROBE_BODY. The
server echoes it like any other chat line; the dispatcher recognizes the echo
and hands it back here. Probes carry no sequence number, so only one may be
in flight at a time.
"""

import asyncio
import time
from collections import deque
from typing import Callable, Deque, Optional

from ironvein_common.constants import HEARTBEAT_INTERVAL, PROBE_TIMEOUT, RTT_SAMPLE_WINDOW

from .message_sender import MessageSender
from ..core.event_bus import EventBus, EventType
from ..logging_config import get_logger

logger = get_logger(__name__)


class HeartbeatMonitor:
    """Sends probes on an interval while the channel is open and measures round trips."""

    def __init__(
        self,
        sender: MessageSender,
        event_bus: EventBus,
        interval: float = HEARTBEAT_INTERVAL,
        probe_timeout: float = PROBE_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        on_tick: Optional[Callable[[], None]] = None,
    ):
        self._sender = sender
        self._event_bus = event_bus
        self.interval = interval
        self.probe_timeout = probe_timeout
        self._clock = clock
        self._on_tick = on_tick
        self._probe_sent_at: Optional[float] = None
        self._samples: Deque[float] = deque(maxlen=RTT_SAMPLE_WINDOW)
        self._task: Optional[asyncio.Task] = None

    @property
    def probe_outstanding(self) -> bool:
        return self._probe_sent_at is not None

    @property
    def last_rtt_ms(self) -> Optional[float]:
        return self._samples[-1] if self._samples else None

    @property
    def average_rtt_ms(self) -> Optional[float]:
        if not self._samples:
            return None
        return sum(self._samples) / len(self._samples)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the probe loop on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())
        logger.debug(f"Heartbeat started (every {self.interval}s)")

    def stop(self) -> None:
        """Stop the probe loop and forget any outstanding probe."""
        task, self._task = self._task, None
        self._probe_sent_at = None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("Heartbeat stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.tick()

    async def tick(self) -> bool:
        """
        One heartbeat interval: send a probe unless one is still in flight.

        Returns:
            True if a probe was sent.
        """
        if self._on_tick is not None:
            try:
                self._on_tick()
            except Exception:
                logger.exception("Error in heartbeat tick callback")

        now = self._clock()
        if self._probe_sent_at is not None:
            if now - self._probe_sent_at < self.probe_timeout:
                return False
            logger.debug("Probe unanswered, abandoning it")
            self._probe_sent_at = None

        # The echo can arrive while the send is still suspended
        self._probe_sent_at = now
        if not await self._sender.probe():
            self._probe_sent_at = None
            return False

        logger.debug("Probe sent")
        return True

    def record_echo(self) -> Optional[float]:
        """
        Resolve the outstanding probe with its echo.

        Returns:
            The round-trip time in milliseconds, or None if no probe was in flight.
        """
        if self._probe_sent_at is None:
            logger.debug("Probe echo without a probe in flight, ignoring")
            return None

        rtt_ms = (self._clock() - self._probe_sent_at) * 1000.0
        self._probe_sent_at = None
        self._samples.append(rtt_ms)

        logger.debug(f"Latency {rtt_ms:.1f}ms")
        self._event_bus.emit(
            EventType.LATENCY_MEASURED,
            {"rtt_ms": rtt_ms, "average_rtt_ms": self.average_rtt_ms},
            "heartbeat"
        )
        return rtt_ms
