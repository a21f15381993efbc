#!/usr/bin/env python3
"""
Headless console client.

Prints chat lines and room changes to the terminal and sends each line typed
on stdin as chat. Lines starting with '/' are handled locally:
/move X Y, /join, /players, /ping, /status, /quit.
"""

import argparse
import asyncio
import itertools
import sys
import threading
from typing import Optional, TextIO

from .config import JoinMode, get_config
from .core.event_bus import Event
from .errors import IronVeinError, NotConnected, TransportError
from .game.world_state import RoomIdentity, WorldSnapshot
from .logging_config import get_logger, setup_logging
from .network.connection import Connector
from .network.endpoint import EndpointResolver
from .session import GameSession

logger = get_logger(__name__)


class ConsoleChatPanel:
    """Chat panel that writes to stdout. Placeholders are just numbered markers."""

    def __init__(self, stream=None):
        self._stream = stream or sys.stdout
        self._ids = itertools.count(1)

    def append_line(self, text: str) -> None:
        print(text, file=self._stream, flush=True)

    def add_pending_placeholder(self, text: str) -> int:
        handle = next(self._ids)
        print(f"(sending #{handle}) {text}", file=self._stream, flush=True)
        return handle

    def retire_placeholder(self, handle: int) -> None:
        logger.debug(f"Placeholder #{handle} retired")


class ConsoleRenderer:
    """Renderer that logs a one-line summary of the room."""

    def draw_frame(self, snapshot: WorldSnapshot) -> None:
        summary = ", ".join(f"{p.username}@({p.x},{p.y}) hp={p.health}" for p in snapshot.players)
        logger.info(f"Room: {summary or 'empty'}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="IronVein - headless grid game and chat client")
    parser.add_argument("--username", type=str, required=True, help="Player name")
    parser.add_argument("--room", type=str, default=None, help="Room to join (defaults to the configured room)")
    parser.add_argument("--server", type=str, default=None, help="Server base URL, e.g. http://localhost:8080")
    parser.add_argument("--lobby", action="store_true", help="Do not join on connect; use /join")
    parser.add_argument("--log-level", type=str, default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-file", type=str, default=None, help="Also write logs to this file")
    return parser


async def handle_command(session: GameSession, line: str) -> bool:
    """Run one console line. Returns False when the user asked to quit."""
    if not line.startswith("/"):
        await session.send_chat(line)
        return True

    parts = line[1:].split()
    command = parts[0].lower() if parts else ""

    if command == "quit":
        return False
    if command == "join":
        await session.join_battle()
    elif command == "move" and len(parts) == 3:
        await session.move(int(parts[1]), int(parts[2]))
    elif command == "players":
        ConsoleRenderer().draw_frame(session.snapshot())
    elif command == "ping":
        latency = session.latency_ms
        print(f"Latency: {latency:.0f}ms" if latency is not None else "Latency: not measured yet", flush=True)
    elif command == "status":
        print(await session.endpoint.fetch_server_data(), flush=True)
    else:
        print(f"Unknown command: {line}", flush=True)
    return True


def stdin_lines(stream: TextIO) -> "asyncio.Queue[str]":
    """
    Feed lines from a blocking stream into a queue on the running loop.

    The reader is a daemon thread, so a read still blocked when the session
    ends does not keep the process alive. An empty string marks end of input.
    """
    loop = asyncio.get_running_loop()
    lines: "asyncio.Queue[str]" = asyncio.Queue()

    def pump() -> None:
        try:
            for line in iter(stream.readline, ""):
                loop.call_soon_threadsafe(lines.put_nowait, line)
            loop.call_soon_threadsafe(lines.put_nowait, "")
        except (RuntimeError, ValueError, OSError):
            # Loop already closed, or the stream was closed under us
            return

    threading.Thread(target=pump, name="stdin-reader", daemon=True).start()
    return lines


async def read_lines(session: GameSession, lines: "asyncio.Queue[str]") -> None:
    while True:
        line = await lines.get()
        if not line:
            return
        line = line.strip()
        if not line:
            continue
        try:
            if not await handle_command(session, line):
                return
        except NotConnected as e:
            print(f"Not connected: {e}", flush=True)
        except TransportError as e:
            print(f"Request failed: {e}", flush=True)
        except ValueError as e:
            print(f"Invalid command: {e}", flush=True)


async def run(
    args: argparse.Namespace,
    stdin: Optional[TextIO] = None,
    connector: Optional[Connector] = None,
) -> int:
    config = get_config()
    if args.lobby:
        config.session.join_mode = JoinMode.LOBBY

    endpoint = EndpointResolver.from_config(config.server)
    if args.server:
        try:
            endpoint.server_url = args.server
        except ValueError as e:
            logger.error(str(e))
            return 2

    identity = RoomIdentity(username=args.username, room=args.room or config.session.default_room)
    session = GameSession(
        identity,
        renderer=ConsoleRenderer(),
        chat_panel=ConsoleChatPanel(),
        config=config,
        endpoint=endpoint,
        connector=connector,
    )

    def on_latency(event: Event) -> None:
        logger.debug(f"Latency {event.data['rtt_ms']:.0f}ms")

    session.on_latency_measured(on_latency)

    try:
        await session.connect()
    except IronVeinError as e:
        logger.error(f"Could not connect: {e}")
        return 1

    reader = asyncio.create_task(read_lines(session, stdin_lines(stdin or sys.stdin)))
    finished = asyncio.create_task(session.connection.wait_finished())
    try:
        await asyncio.wait({reader, finished}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        reader.cancel()
        finished.cancel()
        await session.disconnect()
    return 0


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
