"""
Push notification decoding.

Volumio POSTs ``{"item": ..., "data": ...}`` to every enrolled URL.  The
body arrives either directly as JSON, or wrapped by a forwarding hub as a
raw message whose payload follows a ``body:`` marker, base64 encoded:

    ... headers ..., body:eyJpdGVtIjoic3RhdGUiLCJkYXRhIjp7fX0=

No semantic validation of ``data`` happens here.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any

from .errors import DecodeError

BODY_MARKER = "body:"


@dataclass(frozen=True)
class NotificationEnvelope:
    item: str | None
    data: Any = None

    @property
    def is_lifecycle(self) -> bool:
        """Connection-lifecycle notices carry no item."""
        return not self.item


def _envelope(document) -> NotificationEnvelope:
    if not isinstance(document, dict):
        raise DecodeError(f"Notification is not a JSON object: {document!r}")
    return NotificationEnvelope(item=document.get("item"), data=document.get("data"))


def decode_body(body: bytes | str) -> NotificationEnvelope:
    """Decode a JSON document POSTed directly by Volumio."""
    try:
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        return _envelope(json.loads(body))
    except (UnicodeDecodeError, ValueError) as e:
        raise DecodeError(f"Invalid notification body: {e}") from e


def decode_message(raw: str) -> NotificationEnvelope:
    """Decode a hub-forwarded raw message carrying base64 JSON after ``body:``."""
    if BODY_MARKER not in raw:
        raise DecodeError("Notification has no body marker")
    encoded = raw.split(BODY_MARKER, 1)[1].strip()
    # The forwarded body may be followed by further comma separated fields
    encoded = encoded.split(",", 1)[0].strip()
    try:
        decoded = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Malformed base64 body: {e}") from e
    return decode_body(decoded)


def decode(raw: bytes | str) -> NotificationEnvelope:
    """Decode either form: a JSON object as-is, anything else as a raw message."""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Notification is not UTF-8: {e}") from e
    if raw.lstrip().startswith("{"):
        return decode_body(raw)
    return decode_message(raw)
