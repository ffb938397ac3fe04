"""
Shared configuration loader for the Volumio bridge.

Loads a single JSON config file.  Search order:
  1. $VOLUMIO_BRIDGE_CONFIG            (explicit override)
  2. /etc/volumio-bridge/config.json   (system install)
  3. config.json                       (CWD — handy for local dev)

Secrets (MQTT_USER, MQTT_PASSWORD) stay in environment variables.

Usage:
    from volumio_bridge.lib.config import cfg

    host     = cfg("volumio", "host", default="volumio.local")
    schedule = cfg("volumio", "schedule_push", default="No")
    port     = cfg("push", "port", default=39501)
"""

import json
import logging
import os
import re

logger = logging.getLogger(__name__)

_config: dict | None = None

_SCHEDULE_RE = re.compile(r"^(1[0-2]|[1-9]) (AM|PM)$")


def _search_paths() -> list[str]:
    paths = ["/etc/volumio-bridge/config.json", "config.json"]
    override = os.environ.get("VOLUMIO_BRIDGE_CONFIG")
    if override:
        paths.insert(0, override)
    return paths


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    volumio = config.get("volumio") or {}
    if not volumio.get("host"):
        logger.warning("Config %s: missing volumio.host — defaulting to volumio.local", path)
    schedule = str(volumio.get("schedule_push", "No"))
    if schedule != "No" and not _SCHEDULE_RE.match(schedule):
        logger.warning("Config %s: volumio.schedule_push '%s' is not 'No' or 'H AM|PM'",
                       path, schedule)
    mode = volumio.get("mode", "push")
    if mode not in ("push", "poll"):
        logger.warning("Config %s: unknown volumio.mode '%s'", path, mode)
    transport = config.get("transport") or {}
    transport_mode = transport.get("mode", "none")
    if transport_mode not in ("none", "webhook", "mqtt", "both"):
        logger.warning("Config %s: unknown transport.mode '%s'", path, transport_mode)
    ha = config.get("home_assistant") or {}
    if transport_mode in ("webhook", "both") and not ha.get("webhook_url"):
        logger.warning("Config %s: webhook transport without home_assistant.webhook_url", path)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.warning("No config.json found — using empty config")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("device")                         → config["device"]
    cfg("volumio", "host")                → config["volumio"]["host"]
    cfg("push", "port", default=39501)    → config["push"]["port"] or 39501
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()


def use_config(config: dict) -> None:
    """Install an in-memory config, bypassing the search path."""
    global _config
    _config = config
