"""Tests for the Volumio REST transport against a local fake Volumio."""

import asyncio

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from volumio_bridge.lib import volumio_api
from volumio_bridge.lib.errors import TransportError
from volumio_bridge.lib.volumio_api import VolumioClient, normalize_host


def _fake_volumio(seen: list) -> web.Application:
    async def get_state(request):
        return web.json_response({"status": "play", "volume": 30})

    async def commands(request):
        seen.append(request.rel_url.raw_query_string)
        return web.json_response({"time": 1, "response": "play Success"})

    async def not_json(request):
        return web.Response(text="<html>oops</html>")

    async def broken(request):
        return web.Response(status=500, text="internal error")

    async def slow(request):
        await asyncio.sleep(2)
        return web.json_response({})

    async def add_to_queue(request):
        seen.append(await request.json())
        return web.json_response({"success": True})

    async def push_urls(request):
        seen.append(await request.json())
        return web.Response(text="")

    app = web.Application()
    app.router.add_get("/api/v1/getState", get_state)
    app.router.add_get("/api/v1/commands/", commands)
    app.router.add_get("/api/v1/notjson", not_json)
    app.router.add_get("/api/v1/broken", broken)
    app.router.add_get("/api/v1/slow", slow)
    app.router.add_post("/api/v1/addToQueue", add_to_queue)
    app.router.add_post("/api/v1/pushNotificationUrls", push_urls)
    return app


@pytest.mark.parametrize("raw,host", [
    ("volumio.local", "volumio.local"),
    ("http://volumio.local", "volumio.local"),
    ("https://192.168.1.20/", "192.168.1.20"),
    ("  http://10.0.0.5:3000 ", "10.0.0.5:3000"),
])
def test_normalize_host(raw, host):
    assert normalize_host(raw) == host


@pytest.mark.asyncio
async def test_api_get_returns_json():
    async with TestServer(_fake_volumio([])) as server:
        async with aiohttp.ClientSession() as session:
            client = VolumioClient(f"http://{server.host}:{server.port}", session)
            assert await client.api_get("getState") == {"status": "play", "volume": 30}


@pytest.mark.asyncio
async def test_command_grammar_sent_verbatim():
    seen = []
    async with TestServer(_fake_volumio(seen)) as server:
        async with aiohttp.ClientSession() as session:
            client = VolumioClient(f"{server.host}:{server.port}", session)
            await client.command("playplaylist&name=Jazz+Night")
            await client.command("volume&volume=37")

    assert seen == ["cmd=playplaylist&name=Jazz+Night", "cmd=volume&volume=37"]


@pytest.mark.asyncio
async def test_non_json_response_carries_raw_text():
    async with TestServer(_fake_volumio([])) as server:
        async with aiohttp.ClientSession() as session:
            client = VolumioClient(f"{server.host}:{server.port}", session)
            with pytest.raises(TransportError) as exc_info:
                await client.api_get("notjson")

    assert exc_info.value.raw == "<html>oops</html>"


@pytest.mark.asyncio
async def test_http_error_status_is_transport_error():
    async with TestServer(_fake_volumio([])) as server:
        async with aiohttp.ClientSession() as session:
            client = VolumioClient(f"{server.host}:{server.port}", session)
            with pytest.raises(TransportError) as exc_info:
                await client.api_get("broken")

    assert exc_info.value.raw == "internal error"


@pytest.mark.asyncio
async def test_timeout_is_transport_error(monkeypatch):
    monkeypatch.setattr(volumio_api, "REQUEST_TIMEOUT", 0.2)
    async with TestServer(_fake_volumio([])) as server:
        async with aiohttp.ClientSession() as session:
            client = VolumioClient(f"{server.host}:{server.port}", session)
            with pytest.raises(TransportError, match="Timeout"):
                await client.api_get("slow")


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error():
    async with TestServer(_fake_volumio([])) as server:
        address = f"{server.host}:{server.port}"
    # Server is gone now
    async with aiohttp.ClientSession() as session:
        client = VolumioClient(address, session)
        with pytest.raises(TransportError):
            await client.api_get("getState")


@pytest.mark.asyncio
async def test_post_sends_json_body():
    seen = []
    async with TestServer(_fake_volumio(seen)) as server:
        async with aiohttp.ClientSession() as session:
            client = VolumioClient(f"{server.host}:{server.port}", session)
            reply = await client.post("/api/v1/addToQueue",
                                      {"service": "spop", "uri": "spotify:track:1"})

    assert reply == {"success": True}
    assert seen == [{"service": "spop", "uri": "spotify:track:1"}]


@pytest.mark.asyncio
async def test_post_with_empty_reply_returns_none():
    seen = []
    async with TestServer(_fake_volumio(seen)) as server:
        async with aiohttp.ClientSession() as session:
            client = VolumioClient(f"{server.host}:{server.port}", session)
            reply = await client.post("/api/v1/pushNotificationUrls",
                                      {"url": "http://10.0.0.2:39501"})

    assert reply is None
    assert seen == [{"url": "http://10.0.0.2:39501"}]
