"""Pytest configuration and common fixtures for volumio_bridge tests."""

import base64
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from volumio_bridge.lib import config


@pytest.fixture(autouse=True)
def empty_config():
    """Every test starts from an empty in-memory config."""
    config.use_config({})
    yield
    config._config = None


@pytest.fixture
def client():
    """A VolumioClient stand-in with awaitable request methods."""
    mock = MagicMock()
    mock.host = "volumio.local"
    mock.get = AsyncMock()
    mock.api_get = AsyncMock()
    mock.command = AsyncMock(return_value={"response": "ok"})
    mock.post = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def state_payload():
    return {
        "status": "play",
        "artist": "A",
        "title": "T",
        "album": "B",
        "service": "spop",
        "volume": 50,
        "mute": False,
        "uri": "spotify:track:1",
    }


@pytest.fixture
def zones_payload():
    return {
        "list": [
            {"name": "Living Room", "isSelf": True, "state": {"status": "play"}},
            {"name": "Kitchen", "isSelf": False, "state": {"status": "pause"}},
            {"name": "Patio", "state": {"status": "stop"}},
        ]
    }


@pytest.fixture
def hub_message():
    """Wrap a JSON document the way a forwarding hub delivers it."""
    def wrap(document) -> str:
        body = base64.b64encode(json.dumps(document).encode("utf-8")).decode("ascii")
        return ("index:00, mac:B827EB123456, ip:c0a80114, port:d4c8, "
                f"headers:SFRUUC8xLjE=, body:{body}")
    return wrap
