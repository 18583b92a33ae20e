#!/usr/bin/env python3
"""
MQTT publisher for tracked stat values and session status.
"""

import asyncio
import json
import logging
import time
from typing import Any

from qusb_stats.config import (
    MQTT_AVAILABLE,
    MQTT_CONNECT_TIMEOUT,
    MQTT_HEALTH_CHECK_INTERVAL,
    MQTT_HOST,
    MQTT_NAMESPACE,
    MQTT_PASSWORD,
    MQTT_PORT,
    MQTT_PUBLISH_QOS,
    MQTT_STATE_RETAIN,
    MQTT_USERNAME,
    STAT_NAMES,
)
from qusb_stats.models import SessionStatus

if MQTT_AVAILABLE:
    import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)


class MQTTPublisher:
    """Publishes stat values, status and HA discovery to MQTT."""

    # MQTT return codes
    RC_CODES = {
        0: "Connection successful",
        1: "Incorrect protocol version",
        2: "Invalid client identifier",
        3: "Server unavailable",
        4: "Bad username or password",
        5: "Not authorized",
    }

    def __init__(self, tracker_id: str):
        self.tracker_id = tracker_id
        self.client: Any = None
        self.connected = False
        self.discovery_sent: set[str] = set()
        self._last_payload_by_topic: dict[str, str] = {}

        # Stats
        self.publish_count = 0
        self.publish_failed = 0
        self.last_error_msg: str = ""
        self.reconnect_attempts = 0

        self._health_check_task: asyncio.Task[Any] | None = None

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    @property
    def availability_topic(self) -> str:
        return f"{MQTT_NAMESPACE}/{self.tracker_id}/availability"

    @property
    def status_topic(self) -> str:
        return f"{MQTT_NAMESPACE}/{self.tracker_id}/status"

    def state_topic(self, key: str) -> str:
        return f"{MQTT_NAMESPACE}/{self.tracker_id}/{key}/state"

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def connect(self, timeout: float | None = None) -> bool:
        """Connects to the broker, waiting up to timeout for the CONNACK."""
        if not MQTT_AVAILABLE:
            logger.error("MQTT library paho-mqtt is not installed")
            return False

        timeout = timeout or MQTT_CONNECT_TIMEOUT
        self._cleanup_client()

        try:
            self.client = mqtt.Client(
                callback_api_version=mqtt.CallbackAPIVersion.VERSION1,
                client_id=f"{MQTT_NAMESPACE}_{self.tracker_id}",
                protocol=mqtt.MQTTv311
            )
            if MQTT_USERNAME:
                self.client.username_pw_set(MQTT_USERNAME, MQTT_PASSWORD)
            self.client.will_set(self.availability_topic, "offline", retain=True)

            self.client.on_connect = self._on_connect
            self.client.on_disconnect = self._on_disconnect

            logger.info(
                f"MQTT: Connecting to {MQTT_HOST}:{MQTT_PORT} "
                f"(timeout {timeout}s)"
            )
            self.client.connect(MQTT_HOST, MQTT_PORT, 60)
            self.client.loop_start()

            start = time.time()
            while not self.connected and (time.time() - start) < timeout:
                time.sleep(0.1)

            if self.connected:
                logger.info(f"MQTT: ✅ Connected to {MQTT_HOST}:{MQTT_PORT}")
                self.reconnect_attempts = 0
                return True
            logger.error(f"MQTT: ❌ Connect timeout after {timeout}s")
            self._cleanup_client()
            return False

        except (OSError, ValueError) as e:
            logger.error(f"MQTT: ❌ Connect failed: {e}")
            self._cleanup_client()
            return False

    def disconnect(self) -> None:
        if self.client is not None and self.connected:
            self.client.publish(self.availability_topic, "offline", retain=True, qos=1)
        self._cleanup_client()
        if self._health_check_task is not None:
            self._health_check_task.cancel()
            self._health_check_task = None

    def _cleanup_client(self) -> None:
        if self.client:
            try:
                self.client.loop_stop()
                self.client.disconnect()
            except (OSError, RuntimeError) as e:
                logger.debug(f"MQTT: cleanup failed: {e}")
            self.client = None
        self.connected = False

    def _on_connect(self, client: Any, userdata: Any, flags: Any, rc: int) -> None:
        if rc == 0:
            logger.info(f"MQTT: Connected (flags={flags})")
            self.connected = True
            self.reconnect_attempts = 0
            self._last_payload_by_topic.clear()
            self.discovery_sent.clear()
            client.publish(self.availability_topic, "online", retain=True, qos=1)
        else:
            rc_msg = self.RC_CODES.get(rc, f"Unknown error ({rc})")
            logger.error(f"MQTT: ❌ Connection refused: {rc_msg}")
            self.connected = False
            self.last_error_msg = rc_msg

    def _on_disconnect(self, client: Any, userdata: Any, rc: int) -> None:
        self.connected = False
        self._last_payload_by_topic.clear()
        if rc == 0:
            logger.info("MQTT: Disconnected")
        else:
            logger.warning(f"MQTT: ⚠️ Unexpected disconnect (rc={rc})")
            self.last_error_msg = f"Unexpected disconnect (rc={rc})"

    def is_ready(self) -> bool:
        return self.client is not None and self.connected

    async def health_check_loop(self) -> None:
        """Periodically reconnects a lost broker connection."""
        logger.info(
            f"MQTT: Health check started (interval {MQTT_HEALTH_CHECK_INTERVAL}s)"
        )
        while True:
            await asyncio.sleep(MQTT_HEALTH_CHECK_INTERVAL)
            if self.connected:
                continue
            self.reconnect_attempts += 1
            logger.warning(
                f"MQTT: 🔄 Health check - reconnect attempt #{self.reconnect_attempts}"
            )
            connected = await asyncio.to_thread(self.connect)
            if not connected:
                logger.warning(
                    f"MQTT: ❌ Reconnect failed, next attempt in "
                    f"{MQTT_HEALTH_CHECK_INTERVAL}s"
                )

    async def start_health_check(self) -> None:
        if self._health_check_task is None or self._health_check_task.done():
            self._health_check_task = asyncio.create_task(self.health_check_loop())

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def _build_discovery_payload(self, key: str) -> tuple[str, dict[str, Any]]:
        unique_id = f"{MQTT_NAMESPACE}_{self.tracker_id}_{key}"
        payload: dict[str, Any] = {
            "name": STAT_NAMES.get(key, key),
            "unique_id": unique_id,
            "state_topic": self.state_topic(key),
            "availability": [{"topic": self.availability_topic}],
            "state_class": "measurement",
            "device": {
                "identifiers": [f"{MQTT_NAMESPACE}_{self.tracker_id}"],
                "name": f"SNES Tracker ({self.tracker_id})",
                "manufacturer": "usb2snes",
            },
        }
        return f"homeassistant/sensor/{unique_id}/config", payload

    def send_discovery(self, key: str) -> None:
        if not self.is_ready() or key in self.discovery_sent:
            return
        topic, payload = self._build_discovery_payload(key)
        self.client.publish(topic, json.dumps(payload), retain=True, qos=1)
        self.discovery_sent.add(key)
        logger.debug(f"MQTT: Discovery {key} → {topic}")

    def _publish(self, topic: str, payload: str, retain: bool) -> bool:
        # De-dupe: same payload as last time on this topic is not re-sent
        if self._last_payload_by_topic.get(topic) == payload:
            return True
        if not self.is_ready():
            self.publish_failed += 1
            return False

        self.publish_count += 1
        result = self.client.publish(topic, payload, qos=MQTT_PUBLISH_QOS, retain=retain)
        if result.rc != 0:
            self.publish_failed += 1
            logger.error(f"MQTT: Publish failed rc={result.rc} ({topic})")
            return False
        self._last_payload_by_topic[topic] = payload
        logger.debug(f"MQTT: → {topic} = {payload}")
        return True

    def publish_value(self, key: str, value: int) -> bool:
        """Value callback for the session."""
        self.send_discovery(key)
        return self._publish(self.state_topic(key), str(value), MQTT_STATE_RETAIN)

    def publish_status(self, status: SessionStatus) -> bool:
        """Status callback for the session."""
        return self._publish(self.status_topic, status.value, True)
