"""
Attribute event publishing to Home Assistant.

Every attribute change of the Volumio device is sent as

    {"device": "<name>", "id": "<mac>", "attribute": "volume", "value": "50"}

over a webhook (HTTP POST), MQTT, both, or not at all, selected by
``transport.mode`` in config.json.  Over MQTT the bridge also accepts
commands on its ``in`` topic:

    {"command": "setVolume", "args": {"level": 30}}

Topics:
    volumio/{slug}/out      attribute events
    volumio/{slug}/in       commands
    volumio/{slug}/status   retained availability ("online" / "offline" via Will)
"""

import asyncio
import json
import os
import re
import logging

import aiohttp
import aiomqtt

from .config import cfg

logger = logging.getLogger(__name__)

TOPIC_PREFIX = "volumio"
MODES = ("none", "webhook", "mqtt", "both")

WEBHOOK_TIMEOUT = 2.0  # seconds
RECONNECT_MIN = 1
RECONNECT_MAX = 30


def device_slug(name: str) -> str:
    """MQTT-safe topic segment: 'Living Room' -> 'living_room'."""
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_") or "default"


def parse_command(payload: bytes) -> tuple[str, dict] | None:
    """Decode an ``in`` topic message into (command, args), or None if unusable."""
    try:
        data = json.loads(payload.decode())
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("MQTT invalid JSON: %s", payload)
        return None
    if not isinstance(data, dict) or not data.get("command"):
        logger.warning("MQTT message without command: %s", data)
        return None
    args = data.get("args") or {}
    if not isinstance(args, dict):
        logger.warning("MQTT command %s dropped, args is not an object: %r",
                       data["command"], args)
        return None
    return str(data["command"]), args


class Transport:
    """Sends attribute events to HA and receives commands."""

    def __init__(self, device_name: str):
        self.mode = str(cfg("transport", "mode", default="none")).lower()
        if self.mode not in MODES:
            logger.warning("Unknown transport mode %s, publishing disabled", self.mode)
            self.mode = "none"
        self.webhook_url = cfg("home_assistant", "webhook_url", default="")
        self.device_name = device_name

        self.mqtt_broker = cfg("transport", "mqtt_broker", default="homeassistant.local")
        self.mqtt_port = int(cfg("transport", "mqtt_port", default=1883))

        slug = device_slug(device_name)
        self.topic_out = f"{TOPIC_PREFIX}/{slug}/out"
        self.topic_in = f"{TOPIC_PREFIX}/{slug}/in"
        self.topic_status = f"{TOPIC_PREFIX}/{slug}/status"

        self._session: aiohttp.ClientSession | None = None
        self._mqtt: aiomqtt.Client | None = None
        self._mqtt_task: asyncio.Task | None = None
        self._command_handler = None

    @property
    def _use_webhook(self) -> bool:
        return self.mode in ("webhook", "both") and bool(self.webhook_url)

    @property
    def _use_mqtt(self) -> bool:
        return self.mode in ("mqtt", "both")

    def set_command_handler(self, callback):
        """Callback signature: async def handler(command: str, args: dict)"""
        self._command_handler = callback

    async def start(self):
        if self._use_webhook:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=WEBHOOK_TIMEOUT))
            logger.info("Webhook transport ready -> %s", self.webhook_url)
        if self._use_mqtt:
            self._mqtt_task = asyncio.create_task(self._mqtt_loop())

    async def stop(self):
        if self._mqtt_task:
            self._mqtt_task.cancel()
            try:
                await self._mqtt_task
            except asyncio.CancelledError:
                pass
            self._mqtt_task = None
        if self._session:
            await self._session.close()
            self._session = None

    async def send_event(self, payload: dict):
        """Publish one attribute event; failures are logged per channel."""
        if self._use_webhook:
            await self._post_webhook(payload)
        if self._use_mqtt:
            await self._publish_event(payload)

    # ── Webhook ──

    async def _post_webhook(self, payload: dict) -> bool:
        if not self._session:
            return False
        try:
            async with self._session.post(self.webhook_url, json=payload,
                                          raise_for_status=True):
                return True
        except asyncio.TimeoutError:
            logger.warning("Webhook timeout for %s", payload.get("attribute"))
        except aiohttp.ClientError as e:
            logger.warning("Webhook error: %s", e)
        return False

    # ── MQTT ──

    def _client(self) -> aiomqtt.Client:
        will = aiomqtt.Will(self.topic_status, json.dumps({"status": "offline"}),
                            qos=1, retain=True)
        return aiomqtt.Client(
            hostname=self.mqtt_broker,
            port=self.mqtt_port,
            username=os.getenv("MQTT_USER") or None,
            password=os.getenv("MQTT_PASSWORD") or None,
            will=will,
        )

    async def _mqtt_loop(self):
        delay = RECONNECT_MIN
        while True:
            try:
                async with self._client() as client:
                    self._mqtt = client
                    delay = RECONNECT_MIN
                    await client.publish(self.topic_status,
                                         json.dumps({"status": "online"}),
                                         qos=1, retain=True)
                    await client.subscribe(self.topic_in)
                    logger.info("MQTT connected to %s:%d, listening on %s",
                                self.mqtt_broker, self.mqtt_port, self.topic_in)
                    async for message in client.messages:
                        if message.topic.matches(self.topic_in):
                            await self._on_command(message.payload)
            except aiomqtt.MqttError as e:
                logger.warning("MQTT connection lost (%s), reconnecting in %ds", e, delay)
            finally:
                self._mqtt = None
            await asyncio.sleep(delay)
            delay = min(delay * 2, RECONNECT_MAX)

    async def _on_command(self, payload: bytes):
        parsed = parse_command(payload)
        if parsed is None or not self._command_handler:
            return
        command, args = parsed
        logger.info("MQTT command received: %s %s", command, args)
        await self._command_handler(command, args)

    async def _publish_event(self, payload: dict) -> bool:
        if not self._mqtt:
            logger.debug("MQTT not connected, dropping %s", payload.get("attribute"))
            return False
        try:
            await self._mqtt.publish(self.topic_out, json.dumps(payload))
        except aiomqtt.MqttError as e:
            logger.warning("MQTT publish error: %s", e)
            return False
        return True
