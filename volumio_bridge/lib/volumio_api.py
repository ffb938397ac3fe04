"""
Volumio REST transport.

Thin wrapper over an aiohttp session that knows the Volumio host and the
two URL shapes the bridge uses:

  GET  /api/v1/{endpoint}            — getState, getZones, listplaylists, ...
  GET  /api/v1/commands/?cmd={cmd}   — player commands
  POST /api/v1/{path}                — JSON body (addToQueue, replaceAndPlay, ...)

Every failure surfaces as TransportError.  Nothing here touches attribute
state; responses are returned to the caller.
"""

import asyncio
import json
import logging

import aiohttp
from yarl import URL

from .errors import TransportError
from .log import API_LOGGER

logger = logging.getLogger(__name__)
api_log = logging.getLogger(API_LOGGER)

API_PREFIX = "/api/v1/"
COMMAND_PREFIX = "/api/v1/commands/?cmd="
REQUEST_TIMEOUT = 5  # seconds


def normalize_host(host: str) -> str:
    """Strip any scheme prefix and trailing slash: 'http://volumio/' -> 'volumio'."""
    host = host.strip()
    if "//" in host:
        host = host[host.index("//") + 2:]
    return host.rstrip("/")


class VolumioClient:
    """REST client for a single Volumio host."""

    def __init__(self, host: str, session: aiohttp.ClientSession):
        self.host = normalize_host(host)
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)

    def url(self, path: str) -> URL:
        # Already encoded; the command grammar goes out byte-for-byte
        return URL(f"http://{self.host}{path}", encoded=True)

    async def get(self, path_prefix: str, command: str):
        """GET {path_prefix}{command} and return the decoded JSON."""
        url = self.url(f"{path_prefix}{command}")
        text = None
        try:
            async with self._session.get(url, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    raise TransportError(f"HTTP {resp.status} for {command}", raw=text)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Timeout after {REQUEST_TIMEOUT}s for {command}") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"Request failed for {command}: {e}", raw=text) from e

        try:
            data = json.loads(text)
        except ValueError as e:
            raise TransportError(f"Invalid JSON response for {command}", raw=text) from e
        api_log.debug("REST API response for %s: %s", command, data)
        return data

    async def api_get(self, endpoint: str):
        return await self.get(API_PREFIX, endpoint)

    async def command(self, cmd: str):
        logger.info("Sent command: %s", cmd)
        return await self.get(COMMAND_PREFIX, cmd)

    async def post(self, path: str, body: dict):
        """POST a JSON body.  Returns the decoded JSON reply, or None if it has none."""
        url = self.url(path)
        text = None
        try:
            async with self._session.post(url, json=body, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    raise TransportError(f"HTTP {resp.status} for POST {path}", raw=text)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Timeout after {REQUEST_TIMEOUT}s for POST {path}") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"POST {path} failed: {e}", raw=text) from e

        api_log.debug("REST API response for POST %s: %s", path, text)
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            # Volumio acknowledges some POSTs with plain text
            return None
