"""
Unit tests for EndpointResolver.

URL derivation is pure; the data fetch runs against a local aiohttp server.
"""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from ironvein_client.config import ServerConfig
from ironvein_client.errors import TransportError
from ironvein_client.network.endpoint import EndpointResolver


class TestUrls:

    def test_default(self):
        resolver = EndpointResolver()

        assert resolver.server_url == "http://localhost:8080"
        assert resolver.websocket_url == "ws://localhost:8080/ws"
        assert resolver.api_url == "http://localhost:8080/api/data"

    def test_https_maps_to_wss(self):
        resolver = EndpointResolver("https://game.example.com/")

        assert resolver.server_url == "https://game.example.com"
        assert resolver.websocket_url == "wss://game.example.com/ws"

    def test_path_prefix_is_kept(self):
        resolver = EndpointResolver("http://host:9000/ironvein/")

        assert resolver.websocket_url == "ws://host:9000/ironvein/ws"
        assert resolver.api_url == "http://host:9000/ironvein/api/data"

    def test_set_server_url(self):
        resolver = EndpointResolver()

        resolver.server_url = "http://10.0.0.5:8080"

        assert resolver.websocket_url == "ws://10.0.0.5:8080/ws"

    @pytest.mark.parametrize("url", ["", "localhost:8080", "ftp://host", "http://"])
    def test_invalid_url_rejected(self, url):
        resolver = EndpointResolver()

        with pytest.raises(ValueError):
            resolver.server_url = url

        assert resolver.server_url == "http://localhost:8080"

    def test_from_config(self):
        resolver = EndpointResolver.from_config(
            ServerConfig(url="http://example.org", websocket_path="/socket", api_path="/status")
        )

        assert resolver.websocket_url == "ws://example.org/socket"
        assert resolver.api_url == "http://example.org/status"


class TestFetchServerData:

    @pytest.mark.asyncio
    async def test_fetch(self):
        async def handler(request):
            return web.Response(text='{"players": 3}', content_type="application/json")

        app = web.Application()
        app.router.add_get("/api/data", handler)

        async with TestServer(app) as server:
            resolver = EndpointResolver(f"http://{server.host}:{server.port}")
            body = await resolver.fetch_server_data()

        assert body == '{"players": 3}'

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        app = web.Application()

        async with TestServer(app) as server:
            resolver = EndpointResolver(f"http://{server.host}:{server.port}")
            with pytest.raises(TransportError):
                await resolver.fetch_server_data()

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        resolver = EndpointResolver("http://127.0.0.1:1", http_timeout=2.0)

        with pytest.raises(TransportError):
            await resolver.fetch_server_data()
