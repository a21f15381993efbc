"""
Server endpoint resolution.

Keeps the configurable server URL, derives the WebSocket endpoint from it,
and fetches the server's data document over HTTP.
"""

import asyncio
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import aiohttp

from ironvein_common.constants import DEFAULT_API_PATH, DEFAULT_SERVER_URL, DEFAULT_WEBSOCKET_PATH

from ..config import ServerConfig
from ..errors import TransportError
from ..logging_config import get_logger

logger = get_logger(__name__)

WEBSOCKET_SCHEMES = {"http": "ws", "https": "wss", "ws": "ws", "wss": "wss"}


class EndpointResolver:
    """Resolves the HTTP and WebSocket URLs of the game server."""

    def __init__(
        self,
        server_url: str = DEFAULT_SERVER_URL,
        websocket_path: str = DEFAULT_WEBSOCKET_PATH,
        api_path: str = DEFAULT_API_PATH,
        http_timeout: float = 10.0,
    ):
        self.websocket_path = websocket_path
        self.api_path = api_path
        self.http_timeout = http_timeout
        self._server_url = ""
        self.server_url = server_url

    @classmethod
    def from_config(cls, config: ServerConfig) -> "EndpointResolver":
        return cls(
            server_url=config.url,
            websocket_path=config.websocket_path,
            api_path=config.api_path,
            http_timeout=config.http_timeout,
        )

    @property
    def server_url(self) -> str:
        return self._server_url

    @server_url.setter
    def server_url(self, url: str) -> None:
        parts = urlsplit(url.strip())
        if parts.scheme not in WEBSOCKET_SCHEMES or not parts.netloc:
            raise ValueError(f"Unsupported server URL: {url!r}")
        self._server_url = urlunsplit((parts.scheme, parts.netloc, parts.path.rstrip("/"), "", ""))
        logger.info(f"Server URL set to: {self._server_url}")

    @property
    def websocket_url(self) -> str:
        """WebSocket endpoint on the same host, e.g. http://host:8080 -> ws://host:8080/ws."""
        parts = urlsplit(self._server_url)
        scheme = WEBSOCKET_SCHEMES[parts.scheme]
        return urlunsplit((scheme, parts.netloc, parts.path + self.websocket_path, "", ""))

    @property
    def api_url(self) -> str:
        return f"{self._server_url}{self.api_path}"

    async def fetch_server_data(self, session: Optional[aiohttp.ClientSession] = None) -> str:
        """
        GET the server's data document and return its body.

        Raises:
            TransportError: on connection failures or a non-2xx status.
        """
        owns_session = session is None
        if owns_session:
            session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.http_timeout))

        url = self.api_url
        logger.info(f"Fetching server data from {url}")
        try:
            async with session.get(url, headers={"Content-Type": "application/json"}) as response:
                if response.status >= 400:
                    raise TransportError(f"Server returned HTTP {response.status} for {url}")
                return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Failed to fetch {url}: {e}") from e
        finally:
            if owns_session:
                await session.close()
