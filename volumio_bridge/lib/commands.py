# Volumio Bridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Player command dispatch.

Maps the abstract music-player / volume / playlist commands onto Volumio's
REST command grammar:

    play, pause, stop               → cmd=play|pause|stop
    nextTrack, previousTrack        → cmd=next|prev
    mute, unmute, volumeUp/Down     → cmd=volume&volume=mute|unmute|plus|minus
    setVolume(n), setLevel(n)       → cmd=volume&volume=n
    repeat(v), random(v)            → cmd=repeat[&value=true|false]
    setPlaylist(name)               → cmd=playplaylist&name=...
    setTrack / playTrack            → POST addToQueue / replaceAndPlay

playText, restoreTrack and resumeTrack belong to the music-player contract
but are not enabled: they are accepted and only logged.
"""

import logging
from typing import Awaitable, Callable
from urllib.parse import quote, quote_plus

from .errors import UnsupportedCommand, ValidationError
from .volumio_api import VolumioClient

logger = logging.getLogger(__name__)

ADD_TO_QUEUE_PATH = "/api/v1/addToQueue"
REPLACE_AND_PLAY_PATH = "/api/v1/replaceAndPlay"

# Services whose URIs are stations, resolved through browse instead of played
STATION_SERVICES = ("pandora",)

_TOGGLE = (None, "", "toggle")


def _switch_value(name: str, value) -> str | None:
    """None for a toggle, otherwise 'true' / 'false'."""
    if value in _TOGGLE:
        return None
    if value is True or str(value).lower() == "true":
        return "true"
    if value is False or str(value).lower() == "false":
        return "false"
    raise ValidationError(f"{name}: expected toggle, true or false, got {value!r}")


def _volume_level(level) -> int:
    try:
        level = int(level)
    except (TypeError, ValueError):
        raise ValidationError(f"setVolume: level must be an integer, got {level!r}") from None
    if not 0 <= level <= 100:
        raise ValidationError(f"setVolume: level {level} outside 0-100")
    return level


def _track_body(uri, service, title=None) -> dict:
    if not uri or not service:
        raise ValidationError("Track URI and music service are required")
    if not isinstance(uri, str) or not isinstance(service, str):
        raise ValidationError(f"Track URI and music service must be text: {uri!r}, {service!r}")
    if title is not None and not isinstance(title, str):
        raise ValidationError(f"Track title must be text: {title!r}")
    body = {"service": service, "uri": uri}
    if title:
        body["title"] = title
    return body


class CommandDispatcher:
    """Issues player commands against one Volumio host."""

    def __init__(self, client: VolumioClient,
                 list_playlists: Callable[[], Awaitable[list[str]]]):
        self._client = client
        self._list_playlists = list_playlists
        # camelCase command name → (handler, required args, optional args)
        self._commands = {
            "play": (self.play, (), ()),
            "pause": (self.pause, (), ()),
            "stop": (self.stop, (), ()),
            "nextTrack": (self.next_track, (), ()),
            "previousTrack": (self.previous_track, (), ()),
            "clearQueue": (self.clear_queue, (), ()),
            "mute": (self.mute, (), ()),
            "unmute": (self.unmute, (), ()),
            "volumeUp": (self.volume_up, (), ()),
            "volumeDown": (self.volume_down, (), ()),
            "setVolume": (self.set_volume, ("level",), ()),
            "setLevel": (self.set_level, ("level",), ()),
            "repeat": (self.repeat, (), ("value",)),
            "random": (self.random, (), ("value",)),
            "setPlaylist": (self.set_playlist, ("playlist",), ()),
            "setTrack": (self.set_track, ("uri", "service"), ("title",)),
            "playTrack": (self.play_track, ("uri", "service"), ("title",)),
            "playText": (self.play_text, (), ("text",)),
            "restoreTrack": (self.restore_track, (), ("uri",)),
            "resumeTrack": (self.resume_track, (), ("uri",)),
        }

    @property
    def commands(self) -> list[str]:
        return list(self._commands)

    async def dispatch(self, name: str, args: dict | None = None):
        """Run a command by name.  Arguments come from ``args`` by name.

        Raises ValidationError for unknown commands or unusable arguments
        (before any I/O) and TransportError from the remote call.
        Unsupported legacy commands only log a warning.
        """
        try:
            handler, required, optional = self._commands[name]
        except KeyError:
            raise ValidationError(f"Unknown command: {name}") from None
        if args is None:
            args = {}
        if not isinstance(args, dict):
            raise ValidationError(f"{name}: arguments must be an object, got {args!r}")
        unknown = set(args) - set(required) - set(optional)
        if unknown:
            raise ValidationError(f"{name}: unexpected arguments {sorted(unknown)}")
        missing = [a for a in required if a not in args]
        if missing:
            raise ValidationError(f"{name}: missing required arguments {missing}")
        try:
            return await handler(**args)
        except UnsupportedCommand as e:
            logger.warning("%s - This Function is Not Enabled", e)
            return None

    # ── Transport ──

    async def play(self):
        return await self._client.command("play")

    async def pause(self):
        return await self._client.command("pause")

    async def stop(self):
        return await self._client.command("stop")

    async def next_track(self):
        return await self._client.command("next")

    async def previous_track(self):
        return await self._client.command("prev")

    async def clear_queue(self):
        return await self._client.command("clearQueue")

    async def repeat(self, value=None):
        switch = _switch_value("repeat", value)
        cmd = "repeat" if switch is None else f"repeat&value={switch}"
        return await self._client.command(cmd)

    async def random(self, value=None):
        switch = _switch_value("random", value)
        cmd = "random" if switch is None else f"random&value={switch}"
        return await self._client.command(cmd)

    # ── Volume ──

    async def mute(self):
        return await self._client.command("volume&volume=mute")

    async def unmute(self):
        return await self._client.command("volume&volume=unmute")

    async def volume_up(self):
        return await self._client.command("volume&volume=plus")

    async def volume_down(self):
        return await self._client.command("volume&volume=minus")

    async def set_volume(self, level):
        return await self._client.command(f"volume&volume={_volume_level(level)}")

    async def set_level(self, level):
        return await self.set_volume(level)

    # ── Playlists and tracks ──

    async def set_playlist(self, playlist):
        """Play a Volumio playlist by exact (case-sensitive) name."""
        if not playlist:
            raise ValidationError("setPlaylist: playlist name is required")
        names = await self._list_playlists()
        if playlist not in names:
            logger.warning("Invalid Playlist name: %s", playlist)
            return None
        return await self._client.command(f"playplaylist&name={quote_plus(playlist)}")

    async def set_track(self, uri, service, title=None):
        """Add a track to the end of the queue."""
        body = _track_body(uri, service, title)
        logger.info("Add to queue: %s", body)
        return await self._client.post(ADD_TO_QUEUE_PATH, body)

    async def play_track(self, uri, service, title=None):
        """Replace the queue with a track and play it."""
        body = _track_body(uri, service, title)
        if any(s in service.lower() for s in STATION_SERVICES):
            logger.info("Browse station: %s", uri)
            return await self._client.api_get(f"browse?uri={quote(uri, safe='/:=')}")
        logger.info("Replace queue and play: %s", body)
        return await self._client.post(REPLACE_AND_PLAY_PATH, body)

    # ── Not enabled ──

    async def play_text(self, text=None):
        raise UnsupportedCommand("Play Text")

    async def restore_track(self, uri=None):
        raise UnsupportedCommand("Restore Track")

    async def resume_track(self, uri=None):
        raise UnsupportedCommand("Resume Track")
