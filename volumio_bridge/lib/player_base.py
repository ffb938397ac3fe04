# Volumio Bridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
PlayerBase — HTTP + WebSocket plumbing for a bridged network player.

A bridged player keeps an attribute model of a remote playback device,
receives its push notifications over HTTP, and exposes commands plus an
attribute feed to local clients.

Subclass contract:

    class MyPlayer(PlayerBase):
        id   = "volumio"
        name = "Volumio"
        port = 39501

        async def handle_push(self, raw: bytes) -> None: ...
        async def refresh(self) -> None: ...
        async def initialize(self) -> None: ...
        async def run_command(self, name, args) -> dict: ...  # {"status": "ok"|"invalid"|"error"}
        def get_attributes(self) -> dict: ...

Routes:
    POST /                        — push notification target
    GET  /ws                      — attribute feed (snapshot, then changes)
    GET  /player/attributes       — current attribute values
    GET  /player/status           — lifecycle / identity summary
    POST /player/refresh          — poll the device now
    POST /player/initialize       — identify + enroll again
    POST /player/command/{name}   — run a command, JSON object of args

Optional overrides:
    on_start()      — called after HTTP server is up (session + watchdog running)
    on_stop()       — called during shutdown
    add_routes(app) — extra aiohttp routes
"""

import asyncio
import json
import logging
import signal

import aiohttp
from aiohttp import web

from .watchdog import sd_notify, watchdog_loop

log = logging.getLogger(__name__)


class PlayerBase:
    # ── Subclass must set these ──
    id: str = ""
    name: str = ""
    port: int = 39501

    def __init__(self):
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._runner: web.AppRunner | None = None
        self.running: bool = False
        self._http_session: aiohttp.ClientSession | None = None
        self._monitor_task: asyncio.Task | None = None
        self._watchdog_task: asyncio.Task | None = None

    # ── Abstract methods (subclass must implement) ──

    async def handle_push(self, raw: bytes) -> None:
        raise NotImplementedError

    async def refresh(self) -> None:
        raise NotImplementedError

    async def initialize(self) -> None:
        raise NotImplementedError

    async def run_command(self, name: str, args: dict) -> dict:
        raise NotImplementedError

    def get_attributes(self) -> dict:
        raise NotImplementedError

    # ── WebSocket broadcasting ──

    async def broadcast_attribute(self, attribute: str, value: str):
        """Push one attribute change to all connected WebSocket clients."""
        if not self._ws_clients:
            return

        message = json.dumps({
            "type": "attribute",
            "name": attribute,
            "value": value,
        })

        disconnected = set()
        for ws in self._ws_clients:
            try:
                await ws.send_str(message)
            except ConnectionError:
                disconnected.add(ws)

        self._ws_clients -= disconnected

    # ── HTTP + WebSocket server ──

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/", self._handle_push)
        app.router.add_get("/ws", self._handle_ws)
        app.router.add_get("/player/attributes", self._handle_attributes)
        app.router.add_get("/player/status", self._handle_status)
        app.router.add_post("/player/refresh", self._handle_refresh)
        app.router.add_post("/player/initialize", self._handle_initialize)
        app.router.add_post("/player/command/{name}", self._handle_command)

        # Let subclass add extra routes
        self.add_routes(app)
        return app

    async def start(self):
        """Start the HTTP session and server, then the subclass."""
        self.running = True
        self._http_session = aiohttp.ClientSession()

        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        log.info("Player %s: HTTP + WebSocket on port %d", self.name, self.port)

        await self.on_start()

        # Heartbeat only once the subclass is ready
        self._watchdog_task = asyncio.create_task(watchdog_loop())

    async def run(self):
        """Convenience entry-point: start + wait for signal + stop."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await stop_event.wait()
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Clean up resources."""
        sd_notify("STOPPING=1")
        self.running = False
        await self.on_stop()

        for task in (self._monitor_task, self._watchdog_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._monitor_task = None
        self._watchdog_task = None

        if self._http_session:
            await self._http_session.close()
            self._http_session = None

        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    # ── WebSocket handler ──

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self._ws_clients.add(ws)
        log.info("WebSocket client connected (%d total)", len(self._ws_clients))

        try:
            await ws.send_json({
                "type": "snapshot",
                "attributes": self.get_attributes(),
            })
            # Push-only feed; client messages are ignored
            async for msg in ws:
                pass
        finally:
            self._ws_clients.discard(ws)
            log.info("WebSocket client disconnected (%d remaining)",
                     len(self._ws_clients))

        return ws

    # ── HTTP route handlers ──

    def _cors_headers(self):
        return {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        }

    async def _handle_push(self, request: web.Request) -> web.Response:
        raw = await request.read()
        await self.handle_push(raw)
        return web.json_response({"status": "ok"}, headers=self._cors_headers())

    async def _handle_attributes(self, request: web.Request) -> web.Response:
        return web.json_response(self.get_attributes(), headers=self._cors_headers())

    async def _handle_status(self, request: web.Request) -> web.Response:
        status = await self.get_status()
        return web.json_response(status, headers=self._cors_headers())

    async def _handle_refresh(self, request: web.Request) -> web.Response:
        await self.refresh()
        return web.json_response(self.get_attributes(), headers=self._cors_headers())

    async def _handle_initialize(self, request: web.Request) -> web.Response:
        await self.initialize()
        status = await self.get_status()
        return web.json_response(status, headers=self._cors_headers())

    async def _handle_command(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        try:
            args = await request.json() if request.can_read_body else {}
        except json.JSONDecodeError:
            args = None
        if args is not None and not isinstance(args, dict):
            args = None
        if args is None:
            return web.json_response(
                {"status": "error", "error": "arguments must be a JSON object"},
                status=400, headers=self._cors_headers())
        result = await self.run_command(name, args)
        status = 400 if result.get("status") == "invalid" else 200
        return web.json_response(result, status=status, headers=self._cors_headers())

    async def get_status(self) -> dict:
        """Return player status. Override in subclass for richer data."""
        return {
            "player": self.id,
            "name": self.name,
            "ws_clients": len(self._ws_clients),
        }

    # ── Subclass hooks ──

    async def on_start(self):
        """Called after HTTP server is up."""

    async def on_stop(self):
        """Called during shutdown."""

    def add_routes(self, app: web.Application):
        """Add extra aiohttp routes to the app."""
