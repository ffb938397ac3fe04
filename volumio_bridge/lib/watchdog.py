"""systemd notify integration for the bridge service.

READY/WATCHDOG heartbeats plus a STATUS line mirroring the device
lifecycle (identifying, enrolling, idle, ...).  Silently no-ops when
NOTIFY_SOCKET is unset (dev mode, tests).

Usage:
    from volumio_bridge.lib.watchdog import watchdog_loop, notify_status
    asyncio.create_task(watchdog_loop())
    notify_status("enrolling")
"""

import asyncio
import logging
import os
import socket

logger = logging.getLogger(__name__)


def sd_notify(msg: str):
    """Send a notification message to the systemd notify socket."""
    addr = os.environ.get("NOTIFY_SOCKET")
    if not addr:
        return
    if addr[0] == "@":
        addr = "\0" + addr[1:]
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
    try:
        sock.sendto(msg.encode(), addr)
    except OSError as e:
        logger.debug("sd_notify failed: %s", e)
    finally:
        sock.close()


def notify_status(state: str):
    sd_notify(f"STATUS=Volumio bridge {state}")


async def watchdog_loop(interval: int = 20):
    """Send READY=1 once, then WATCHDOG=1 every *interval* seconds."""
    sd_notify("READY=1")
    logger.info("Watchdog started (interval=%ds)", interval)
    while True:
        sd_notify("WATCHDOG=1")
        await asyncio.sleep(interval)
