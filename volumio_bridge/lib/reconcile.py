"""
State and zone reconciliation.

Both reconcilers are pure: they take the last-known attribute values and a
decoded payload, and return only what changed.  Values are compared in
their string form, so a boolean ``mute: false`` from Volumio and a stored
``"false"`` are equal and produce no event.  That coercion is the
de-duplication contract for rapid or repeated pushes.
"""

import json
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from .errors import DecodeError

NONE = "none"

ATTRIBUTES = (
    "status", "artist", "title", "album", "musicservice", "volume", "level",
    "mute", "uri", "trackDescription", "trackData", "playlists", "otherzones",
)

TRACK_FIELDS = ("artist", "title", "album")


def as_attribute(value: Any) -> str:
    """String form used for storage and comparison; missing values become 'none'."""
    if value is None or value == "":
        return NONE
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return _compact(value)
    return str(value)


def _compact(value) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class StatePayload:
    """Typed view of a Volumio ``getState`` / push ``state`` document."""

    status: str | None = None
    artist: str | None = None
    title: str | None = None
    album: str | None = None
    service: str | None = None
    volume: int | None = None
    mute: bool | None = None
    uri: str | None = None
    albumart: str | None = None

    @classmethod
    def from_json(cls, data) -> "StatePayload":
        if not isinstance(data, dict):
            raise DecodeError(f"State payload is not an object: {data!r}")
        return cls(
            status=data.get("status"),
            artist=data.get("artist"),
            title=data.get("title"),
            album=data.get("album"),
            service=data.get("service"),
            volume=data.get("volume"),
            mute=data.get("mute"),
            uri=data.get("uri"),
            albumart=data.get("albumart"),
        )


# attribute name, payload field, coercion
STATE_FIELDS: tuple[tuple[str, str, Callable[[Any], str]], ...] = (
    ("status", "status", as_attribute),
    ("artist", "artist", as_attribute),
    ("title", "title", as_attribute),
    ("album", "album", as_attribute),
    ("musicservice", "service", as_attribute),
    ("volume", "volume", as_attribute),
    ("level", "volume", as_attribute),
    ("mute", "mute", as_attribute),
    ("uri", "uri", as_attribute),
)


def track_description(payload: StatePayload) -> str:
    if not payload.artist:
        return NONE
    return (f"{payload.artist} - {as_attribute(payload.title)} "
            f"on {as_attribute(payload.album)}")


def track_data(payload: StatePayload) -> str:
    return _compact({
        "artist": payload.artist,
        "title": payload.title,
        "album": payload.album,
        "image": payload.albumart,
        "source": payload.service,
    })


def reconcile_state(prev: Mapping[str, str],
                    payload: StatePayload) -> tuple[dict[str, str], set[str]]:
    """Diff a state payload against ``prev``.

    Returns ``(changes, changed_keys)`` where ``changes`` holds the new value
    of every changed attribute.  trackDescription and trackData are written
    as a pair or not at all.
    """
    changes: dict[str, str] = {}
    track_touched = False

    for attr, field, coerce in STATE_FIELDS:
        value = coerce(getattr(payload, field))
        if attr in TRACK_FIELDS and (value == NONE or value != prev.get(attr)):
            track_touched = True
        if value != prev.get(attr):
            changes[attr] = value

    if track_touched:
        description = track_description(payload)
        data = track_data(payload)
        if (description != prev.get("trackDescription")
                or data != prev.get("trackData")):
            changes["trackDescription"] = description
            changes["trackData"] = data

    return changes, set(changes)


@dataclass(frozen=True)
class ZoneEntry:
    name: str
    status: str | None
    is_self: bool = False

    @classmethod
    def from_json(cls, entry: dict) -> "ZoneEntry":
        state = entry.get("state") or {}
        return cls(
            name=str(entry.get("name")),
            status=state.get("status") if isinstance(state, dict) else None,
            is_self=bool(entry.get("isSelf")),
        )


def zones_from_json(data) -> list[ZoneEntry]:
    """Accept the push form ``{"list": [...]}``, the poll form ``{"zones": [...]}``
    or a bare list."""
    if isinstance(data, dict):
        data = data.get("list", data.get("zones"))
    if not isinstance(data, list):
        raise DecodeError(f"Zone payload is not a list: {data!r}")
    # Entries without a name cannot be keyed in otherzones
    return [ZoneEntry.from_json(e) for e in data
            if isinstance(e, dict) and e.get("name") not in (None, "")]


def other_zones(zones: list[ZoneEntry]) -> dict[str, str | None]:
    return {z.name: z.status for z in zones if not z.is_self}


def reconcile_zones(prev_json: str | None,
                    zones: list[ZoneEntry]) -> tuple[str, bool]:
    """Serialize the non-self zones; changed only if the whole set differs."""
    next_json = _compact(other_zones(zones))
    return next_json, next_json != prev_json


class AttributeSet:
    """Last-known attribute values for one device."""

    def __init__(self):
        self._values: dict[str, str] = {}

    def get(self, name: str, default=None):
        return self._values.get(name, default)

    def apply(self, changes: Mapping[str, str]) -> list[tuple[str, str]]:
        """Store reconciler output as-is and return it as (name, value) events.

        No filtering happens here: the reconcilers already decided what
        changed, including writing the track pair together.
        """
        for name in changes:
            if name not in ATTRIBUTES:
                raise KeyError(f"Unknown attribute: {name}")
        self._values.update(changes)
        return list(changes.items())

    def snapshot(self) -> dict[str, str]:
        return dict(self._values)

    def __getitem__(self, name: str) -> str:
        return self._values[name]

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __len__(self):
        return len(self._values)
