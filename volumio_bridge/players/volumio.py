#!/usr/bin/env python3
# Volumio Bridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Volumio player bridge (volumio-bridge)

Keeps a de-duplicated attribute model of a Volumio player and forwards
player commands to it.  State arrives as push notifications (primary
mode) or from polling getState every second (``volumio.mode = "poll"``).

Volumio REST API (port 80, JSON responses):
  GET  /api/v1/getState, getZones, listplaylists, getSystemInfo
  GET  /api/v1/commands/?cmd=...     — transport / volume / playlist commands
  POST /api/v1/pushNotificationUrls  — enroll for push notifications
  POST /api/v1/addToQueue, replaceAndPlay

Lifecycle: uninitialized → identifying → enrolling → idle ⇄ reconciling.
Every handler (push, refresh, poll tick, scheduled enrollment, command)
runs under one lock, so attribute updates never interleave.
"""

import asyncio
import logging

from ..lib.commands import CommandDispatcher
from ..lib.config import cfg
from ..lib.enrollment import EnrollmentManager
from ..lib.errors import DecodeError, TransportError, ValidationError, VolumioError
from ..lib.log import API_LOGGER, configure_logging
from ..lib.notifications import decode
from ..lib.player_base import PlayerBase
from ..lib.reconcile import (
    AttributeSet,
    StatePayload,
    reconcile_state,
    reconcile_zones,
    zones_from_json,
)
from ..lib.transport import Transport
from ..lib.volumio_api import VolumioClient, normalize_host
from ..lib.watchdog import notify_status

logger = logging.getLogger(__name__)
api_log = logging.getLogger(API_LOGGER)

PUSH_PORT = 39501
DEFAULT_POLL_INTERVAL = 1.0  # seconds

UNINITIALIZED = "uninitialized"
IDENTIFYING = "identifying"
ENROLLING = "enrolling"
IDLE = "idle"
RECONCILING = "reconciling"

# Emitted without an info log line; they are long and change rarely
QUIET_ATTRIBUTES = ("playlists", "otherzones")


class VolumioPlayer(PlayerBase):
    """Attribute model and command surface for one Volumio host."""

    id = "volumio"
    name = "Volumio"
    port = PUSH_PORT

    def __init__(self):
        super().__init__()
        self.name = cfg("device", default="Volumio")
        self.host = normalize_host(cfg("volumio", "host", default="volumio.local"))
        self.port = int(cfg("push", "port", default=PUSH_PORT))
        self.callback_host = cfg("push", "callback_host")
        self.mode = cfg("volumio", "mode", default="push")
        self.poll_interval = float(cfg("volumio", "poll_interval", default=DEFAULT_POLL_INTERVAL))
        self.schedule_push = str(cfg("volumio", "schedule_push", default="No"))
        self.preselect = cfg("preselect", default={})

        self.attributes = AttributeSet()
        self.state = UNINITIALIZED
        self.transport = Transport(self.name)
        self._lock = asyncio.Lock()

        self.client: VolumioClient | None = None
        self.enrollment: EnrollmentManager | None = None
        self.dispatcher: CommandDispatcher | None = None

    def bind(self, session):
        """Build the REST collaborators on an aiohttp session."""
        self.client = VolumioClient(self.host, session)
        self.enrollment = EnrollmentManager(
            self.client, self.port, self.callback_host, on_trigger=self.enroll)
        self.dispatcher = CommandDispatcher(self.client, self.enrollment.list_playlists)

    @property
    def identity(self) -> str | None:
        return self.enrollment.identity if self.enrollment else None

    def _set_state(self, state: str):
        self.state = state
        notify_status(state)

    # ── PlayerBase hooks ──

    async def on_start(self):
        logger.info("Starting Volumio bridge for %s (%s mode)", self.host, self.mode)
        self.bind(self._http_session)
        self.transport.set_command_handler(self.run_command)
        await self.transport.start()
        await self.initialize()
        await self.refresh()
        if self.mode == "poll":
            self._monitor_task = asyncio.create_task(self._poll_loop())

    async def on_stop(self):
        if self.enrollment:
            self.enrollment.cancel_schedule()
        await self.transport.stop()

    async def get_status(self) -> dict:
        base = await super().get_status()
        base.update({
            "host": self.host,
            "state": self.state,
            "mode": self.mode,
            "identity": self.identity,
            "scheduled_hour": self.enrollment.scheduled_hour if self.enrollment else None,
            "commands": self.dispatcher.commands if self.dispatcher else [],
        })
        return base

    def get_attributes(self) -> dict:
        return self.attributes.snapshot()

    # ── Initialization and enrollment ──

    async def initialize(self):
        """Identify, schedule, enroll and apply preselection.  Safe to repeat."""
        logger.info("Initializing")
        async with self._lock:
            self._set_state(IDENTIFYING)
            try:
                await self.enrollment.set_identity()
            except VolumioError as e:
                logger.error("Could not set device identity: %s", e)

            if self.mode == "push":
                self._set_state(ENROLLING)
                try:
                    self.enrollment.schedule(self.schedule_push)
                except ValidationError as e:
                    logger.warning("Re-enrollment schedule not installed: %s", e)
                await self.enrollment.enroll()

            await self._apply_preselection()
            self._set_state(IDLE)

    async def enroll(self) -> bool:
        """Re-enroll for push notifications (also the scheduled trigger)."""
        async with self._lock:
            self._set_state(ENROLLING)
            try:
                return await self.enrollment.enroll()
            finally:
                self._set_state(IDLE)

    async def _apply_preselection(self):
        # config key, command, argument name
        for key, command, arg in (("random", "random", "value"),
                                  ("repeat", "repeat", "value"),
                                  ("playlist", "setPlaylist", "playlist")):
            value = (self.preselect or {}).get(key)
            if value is None or value == "":
                continue
            await self._dispatch(command, {arg: value})

    # ── State intake ──

    async def refresh(self):
        """Poll state, zones and playlists.  Each step fails independently."""
        async with self._lock:
            self._set_state(RECONCILING)
            try:
                await self._refresh_state()
                try:
                    zones = await self.client.api_get("getZones")
                    await self._apply_zones(zones)
                except (TransportError, DecodeError) as e:
                    logger.error("Zone refresh failed: %s", e)
                try:
                    names = await self.enrollment.list_playlists()
                    await self._apply_playlists(names)
                except TransportError as e:
                    logger.error("Playlist refresh failed: %s", e)
            finally:
                self._set_state(IDLE)

    async def _refresh_state(self):
        try:
            state = await self.client.api_get("getState")
            await self._apply_state(state)
        except (TransportError, DecodeError) as e:
            logger.error("State refresh failed: %s", e)

    async def _poll_loop(self):
        """Historical operating mode: getState every poll_interval seconds."""
        logger.info("Polling %s every %.1fs", self.host, self.poll_interval)
        while self.running:
            async with self._lock:
                await self._refresh_state()
            await asyncio.sleep(self.poll_interval)

    async def handle_push(self, raw: bytes):
        """Decode one pushed notification and reconcile it."""
        try:
            envelope = decode(raw)
        except DecodeError as e:
            logger.warning("Dropped push notification: %s", e)
            return
        api_log.debug("Push Notification: %s", envelope)

        if envelope.is_lifecycle:
            logger.info("Push Notification: %s", envelope.data)
            return

        async with self._lock:
            self._set_state(RECONCILING)
            try:
                if envelope.item == "state":
                    await self._apply_state(envelope.data)
                elif envelope.item == "zones":
                    await self._apply_zones(envelope.data)
                else:
                    logger.debug("Ignoring push notification item %s", envelope.item)
            except DecodeError as e:
                logger.warning("Dropped %s notification: %s", envelope.item, e)
            finally:
                self._set_state(IDLE)

    async def _apply_state(self, data):
        payload = StatePayload.from_json(data)
        prev = self.attributes.snapshot()
        changes, _ = reconcile_state(prev, payload)
        for name, value in changes.items():
            logger.debug("%s oldValue: %s newValue: %s", name, prev.get(name), value)
        await self._emit(self.attributes.apply(changes))

    async def _apply_zones(self, data):
        zones = zones_from_json(data)
        zones_json, changed = reconcile_zones(self.attributes.get("otherzones"), zones)
        if changed:
            await self._emit(self.attributes.apply({"otherzones": zones_json}))

    async def _apply_playlists(self, names: list[str]):
        value = ", ".join(names)
        if value != self.attributes.get("playlists"):
            await self._emit(self.attributes.apply({"playlists": value}))

    async def _emit(self, events: list[tuple[str, str]]):
        for name, value in events:
            if name in QUIET_ATTRIBUTES:
                logger.debug("%s: %s", name, value)
            else:
                logger.info("%s: %s", name, value)
            await self.broadcast_attribute(name, value)
            await self.transport.send_event({
                "device": self.name,
                "id": self.identity,
                "attribute": name,
                "value": value,
            })

    # ── Commands ──

    async def run_command(self, name: str, args: dict) -> dict:
        """Run a command by name; errors are logged and reported, never raised."""
        async with self._lock:
            return await self._dispatch(name, args)

    async def _dispatch(self, name: str, args: dict) -> dict:
        try:
            await self.dispatcher.dispatch(name, args)
        except ValidationError as e:
            logger.warning("Command %s not issued: %s", name, e)
            return {"status": "invalid", "error": str(e)}
        except TransportError as e:
            logger.error("Command %s failed: %s", name, e)
            if e.raw:
                logger.error("Invalid REST API Response: %s", e.raw)
            return {"status": "error", "error": str(e)}
        return {"status": "ok"}


async def main():
    configure_logging(
        debug=bool(cfg("logging", "debug", default=False)),
        api_debug=bool(cfg("logging", "api_debug", default=False)),
    )
    player = VolumioPlayer()
    await player.run()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
