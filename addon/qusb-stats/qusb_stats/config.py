#!/usr/bin/env python3
"""
qusb-stats configuration - all constants and environment variables.
"""

import os

# ============================================================================
# MQTT Availability Check
# ============================================================================
try:
    import paho.mqtt.client  # noqa: F401
    MQTT_AVAILABLE = True
except ImportError:
    MQTT_AVAILABLE = False

# ============================================================================
# Helpers
# ============================================================================


def _get_int_env(name: str, default: int) -> int:
    """Returns an int from an env variable with a safe fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = str(raw).strip()
    if raw == "" or raw.lower() == "null":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """Returns a float from an env variable with a safe fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = str(raw).strip()
    if raw == "" or raw.lower() == "null":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_list_env(name: str) -> list[str]:
    """Comma separated list, blanks dropped."""
    raw = os.getenv(name) or ""
    return [item.strip() for item in raw.split(",") if item.strip()]


# ============================================================================
# usb2snes Server
# ============================================================================
QUSB_HOST = os.getenv("QUSB_HOST", "localhost")
QUSB_PORT = _get_int_env("QUSB_PORT", 23074)
CONNECT_TIMEOUT_S = _get_float_env("CONNECT_TIMEOUT_S", 5.0)

# ============================================================================
# Polling
# ============================================================================
TRACKED_STATS = _get_list_env("TRACKED_STATS")
POLL_INTERVAL_MS = _get_int_env("POLL_INTERVAL_MS", 500)
WATCHDOG_TIMEOUT_MS = _get_int_env("WATCHDOG_TIMEOUT_MS", 5000)

# Fixed protocol timing, not configurable from the environment
STAGGER_MS = 10
SETTLE_MS = 500
RECONNECT_BACKOFF_MS = 2000

# ============================================================================
# Logging / heartbeat
# ============================================================================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
# 0 disables
STATUS_INTERVAL = _get_int_env("STATUS_INTERVAL", 60)

# ============================================================================
# MQTT Configuration
# ============================================================================
MQTT_HOST = os.getenv("MQTT_HOST", "core-mosquitto")
MQTT_PORT = _get_int_env("MQTT_PORT", 1883)
MQTT_USERNAME = os.getenv("MQTT_USERNAME", "")
MQTT_PASSWORD = os.getenv("MQTT_PASSWORD", "")
MQTT_NAMESPACE = os.getenv("MQTT_NAMESPACE", "qusb_stats")
MQTT_PUBLISH_QOS = 1  # QoS level (0=fire&forget, 1=at least once)
MQTT_STATE_RETAIN = os.getenv("MQTT_STATE_RETAIN", "true").lower() == "true"
MQTT_CONNECT_TIMEOUT = _get_int_env("MQTT_CONNECT_TIMEOUT", 10)
MQTT_HEALTH_CHECK_INTERVAL = _get_int_env("MQTT_HEALTH_CHECK_INTERVAL", 30)

TRACKER_ID = os.getenv("TRACKER_ID", "alttp")

# Friendly names for MQTT discovery
STAT_NAMES = {
    "bonks": "Bonks",
    "checks": "Checks",
    "saveandquit": "Save & Quit",
    "heartpieces": "Heart Pieces",
    "deaths": "Deaths",
    "flutes": "Flute Uses",
    "revivals": "Fairy Revivals",
    "dungeonmirrors": "Dungeon Mirrors",
    "overworldmirrors": "Overworld Mirrors",
    "timer": "Timer",
    "gamemode": "Game Mode",
    "triforce": "Triforce",
}
