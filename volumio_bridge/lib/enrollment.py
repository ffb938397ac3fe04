"""
Device identity, push-notification enrollment and the nightly re-enrollment
schedule.

Volumio forgets enrolled push URLs when it restarts, so enrollment can be
repeated once a day at a configured hour ("3 AM", "11 PM", ... or "No").
"""

import asyncio
import ipaddress
import logging
import socket
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from getmac import get_mac_address

from .errors import TransportError, ValidationError
from .volumio_api import VolumioClient

logger = logging.getLogger(__name__)

PUSH_URLS_PATH = "/api/v1/pushNotificationUrls"
SCHEDULE_OFF = "No"


def parse_schedule(value: str) -> int | None:
    """'No' → None; '12 AM' → 0, '1 PM' → 13, '12 PM' → 12."""
    if value == SCHEDULE_OFF:
        return None
    try:
        hour_str, meridiem = value.split()
        hour = int(hour_str)
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid schedule time: {value!r}") from None
    if not 1 <= hour <= 12 or meridiem not in ("AM", "PM"):
        raise ValidationError(f"Invalid schedule time: {value!r}")
    if hour == 12:
        hour = 0
    if meridiem == "PM":
        hour += 12
    return hour


def seconds_until(hour: int, now: datetime) -> float:
    """Seconds from ``now`` to the next HH:00."""
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


def host_from_system_info(info) -> str:
    """Pull the bare address out of getSystemInfo's ``host`` ('http://10.0.0.5')."""
    host = info.get("host") if isinstance(info, dict) else None
    if not host:
        raise TransportError("getSystemInfo response has no host", raw=str(info))
    if "//" in host:
        host = host[host.index("//") + 2:]
    return host.split("/")[0].split(":")[0]


def resolve_mac(address: str) -> str | None:
    """Blocking ARP lookup of a host's hardware address."""
    try:
        ipaddress.ip_address(address)
    except ValueError:
        return get_mac_address(hostname=address)
    return get_mac_address(ip=address)


def local_address_towards(host: str) -> str:
    """Local IP the OS would use to reach ``host`` (no packet is sent)."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect((host, 80))
        return sock.getsockname()[0]
    finally:
        sock.close()


class EnrollmentManager:
    """Identity, enrollment and scheduling for one Volumio host."""

    def __init__(self, client: VolumioClient, push_port: int,
                 callback_host: str | None = None,
                 on_trigger: Callable[[], Awaitable[object]] | None = None):
        self._client = client
        self.push_port = push_port
        self.callback_host = callback_host
        self._on_trigger = on_trigger or self.enroll
        self.identity: str | None = None
        self.scheduled_hour: int | None = None
        self._schedule_task: asyncio.Task | None = None

    # ── Identity ──

    async def set_identity(self) -> bool:
        """Resolve the Volumio MAC and adopt it.  Returns True if it changed."""
        info = await self._client.api_get("getSystemInfo")
        address = host_from_system_info(info)
        loop = asyncio.get_running_loop()
        mac = await loop.run_in_executor(None, resolve_mac, address)
        if not mac:
            raise TransportError(f"Could not resolve MAC address for {address}")
        mac = mac.lower()
        if mac == self.identity:
            logger.info("Device Network ID already set to Volumio MAC address %s", mac)
            return False
        self.identity = mac
        logger.info("Device Network ID set to Volumio MAC address %s", mac)
        return True

    # ── Enrollment ──

    async def callback_url(self) -> str:
        if not self.callback_host:
            loop = asyncio.get_running_loop()
            self.callback_host = await loop.run_in_executor(
                None, local_address_towards, self._client.host)
        return f"http://{self.callback_host}:{self.push_port}"

    async def enroll(self) -> bool:
        """Register our push URL with Volumio.  Failures are logged, not retried."""
        try:
            url = await self.callback_url()
            await self._client.post(PUSH_URLS_PATH, {"url": url})
        except (TransportError, OSError) as e:
            logger.error("Push notification enrollment failed: %s", e)
            return False
        logger.info("Push Notifications Enabled (%s)", url)
        return True

    # ── Schedule ──

    @property
    def schedule_active(self) -> bool:
        return self._schedule_task is not None and not self._schedule_task.done()

    def schedule(self, value: str):
        """Install (or with 'No', cancel) the daily re-enrollment trigger."""
        hour = parse_schedule(value)
        self.cancel_schedule()
        if hour is None:
            logger.info("Push notification re-enrollment schedule cleared")
            return
        self.scheduled_hour = hour
        self._schedule_task = asyncio.create_task(self._daily(hour))
        logger.info("Scheduled push notification enrollment every day at %s (%02d:00)",
                    value, hour)

    def cancel_schedule(self):
        if self._schedule_task is not None:
            self._schedule_task.cancel()
        self._schedule_task = None
        self.scheduled_hour = None

    async def _daily(self, hour: int):
        while True:
            await asyncio.sleep(seconds_until(hour, datetime.now()))
            try:
                await self._on_trigger()
            except Exception as e:
                logger.error("Scheduled enrollment failed: %s", e)

    # ── Playlists ──

    async def list_playlists(self) -> list[str]:
        data = await self._client.api_get("listplaylists")
        if not isinstance(data, list):
            raise TransportError("listplaylists did not return a list", raw=str(data))
        return [str(name) for name in data]
